"""
Timeslot Storage Layer

PostgreSQL storage and the data-access interface used by the series core.
"""
from .base import BaseStorage
from .data_access import DataAccess, PostgresDataAccess, Filter, FilterOp, eq
from .series_storage import SeriesStorage

__all__ = [
    'BaseStorage',
    'DataAccess',
    'PostgresDataAccess',
    'Filter',
    'FilterOp',
    'eq',
    'SeriesStorage',
]
