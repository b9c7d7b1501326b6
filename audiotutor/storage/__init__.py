from .schema import COMPLEXITIES, PACINGS, TLX_KEYS, DTYPES, SessionResultRow
from .store import (
    init_store,
    validate_records,
    append_session_results,
    load_all,
    query_condition,
    export_ndjson,
)

__all__ = [
    "COMPLEXITIES",
    "PACINGS",
    "TLX_KEYS",
    "DTYPES",
    "SessionResultRow",
    "init_store",
    "validate_records",
    "append_session_results",
    "load_all",
    "query_condition",
    "export_ndjson",
]
