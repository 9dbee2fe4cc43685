"""
Core domain models and business logic.

This package contains data types, errors and the dedup ledger, none of
which depend on a specific pipeline stage.
"""

from .errors import (
    DecodeError,
    FetchError,
    LedgerError,
    MediaError,
    ParseError,
    PostArchiverError,
    RunCancelledError,
)
from .ledger import DedupLedger, append_ledger, load_ledger
from .types import DateFilter, ExtractResult, Post, extract_post_id, make_date_filter

__all__ = [
    "Post",
    "ExtractResult",
    "DateFilter",
    "make_date_filter",
    "extract_post_id",
    "DedupLedger",
    "load_ledger",
    "append_ledger",
    "PostArchiverError",
    "FetchError",
    "ParseError",
    "DecodeError",
    "MediaError",
    "LedgerError",
    "RunCancelledError",
]
