"""
Cooperative cancellation for preview and validation work.

Mutating series operations never take a token: they either commit
fully or fail fully.
"""
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """Flag checked between work units"""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None):
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self):
        if self._cancelled:
            raise OperationCancelled(self.reason or "Operation cancelled")
