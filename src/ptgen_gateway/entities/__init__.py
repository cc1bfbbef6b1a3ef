"""Domain entities for internal representation.

These are frozen dataclasses and plain type aliases used internally by
services, repositories and providers. They are NOT used for API
contracts - use DTOs from the dto package for that.
"""

from .record import Record, is_success, new_record, strip_format
from .resource import SID_PATTERN, ResourceId
from .search import SearchHit

__all__ = [
    "Record",
    "ResourceId",
    "SID_PATTERN",
    "SearchHit",
    "is_success",
    "new_record",
    "strip_format",
]
