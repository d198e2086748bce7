"""
Timeslot Data Models

Domain models for recurring time slot series.
"""
from .series_group import SeriesGroup
from .series_version import SeriesVersion, VersionChain
from .series_instance import SeriesInstance, SeriesMembership, ExceptionType
from .conflict import ConflictScope, ConflictInfo
from .result import OperationResult

__all__ = [
    'SeriesGroup',
    'SeriesVersion',
    'VersionChain',
    'SeriesInstance',
    'SeriesMembership',
    'ExceptionType',
    'ConflictScope',
    'ConflictInfo',
    'OperationResult',
]
