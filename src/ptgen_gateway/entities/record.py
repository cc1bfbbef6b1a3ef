"""Normalized record helpers.

A record is a plain JSON mapping. Providers accumulate fields on it;
``site`` and ``sid`` are always present and a successful record carries
``success=True``. ``format`` is rendered on the way out and is never stored.
"""

from typing import Any

Record = dict[str, Any]

FORMAT_FIELD = "format"


def new_record(site: str, sid: str) -> Record:
    return {"site": site, "sid": sid}


def is_success(record: Any) -> bool:
    return isinstance(record, dict) and record.get("success") is True


def strip_format(record: Record) -> Record:
    """Return a copy of the record without its rendered description."""
    return {key: value for key, value in record.items() if key != FORMAT_FIELD}
