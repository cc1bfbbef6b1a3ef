"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request parsing and response serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import QUERY_FIELDS, QueryParams
from .responses import ErrorResponse, SearchHitItem, SearchResponse, build_envelope

__all__ = [
    "QUERY_FIELDS",
    "QueryParams",
    "ErrorResponse",
    "SearchHitItem",
    "SearchResponse",
    "build_envelope",
]
