"""
Operation Result

Unified result returned by every series mutation. Failures are reported
here instead of raised past the service boundary.
"""
from dataclasses import dataclass, field
from typing import Optional

from ..errors import TimeslotError


@dataclass
class OperationResult:
    """
    Outcome of a series operation.

    data carries operation-specific ids and counters
    (group_id, series_id, instances_created, ...).
    """
    success: bool
    message: str = ""
    error_kind: Optional[str] = None                    # TimeslotError.kind on failure
    data: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: TimeslotError, **data) -> "OperationResult":
        return cls(success=False, message=error.message, error_kind=error.kind, data=data)

    def __getattr__(self, name):
        # Convenience: result.group_id, result.instances_created, ...
        data = self.__dict__.get("data", {})
        if name in data:
            return data[name]
        raise AttributeError(name)

    def to_dict(self) -> dict:
        out = {"success": self.success, "message": self.message}
        if self.error_kind:
            out["error_kind"] = self.error_kind
        out.update(self.data)
        return out
