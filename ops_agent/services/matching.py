from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Sequence, TypeVar

KNOWN_PREFIXES = ("ITM", "SHP", "TSK", "RPQ", "EST", "STK", "CLM")

_PREFIX_PATTERN = re.compile(r"^(?:%s)-?" % "|".join(KNOWN_PREFIXES), re.IGNORECASE)
_PARTIAL_ID_PATTERN = re.compile(r"^(?:(?:%s)-?)?\d+$" % "|".join(KNOWN_PREFIXES), re.IGNORECASE)
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_NON_DIGITS = re.compile(r"\D")
_DIGIT_RUNS = re.compile(r"\d+")

Row = TypeVar("Row", bound=Mapping[str, Any])


def is_canonical_id(value: str) -> bool:
    return bool(_UUID_PATTERN.match(value.strip()))


def is_partial_id_query(query: str) -> bool:
    """True for bare numbers and prefixed codes like ``SHP-12345``."""
    return bool(_PARTIAL_ID_PATTERN.match(query.strip()))


def numeric_core(value: str) -> str:
    return _NON_DIGITS.sub("", _PREFIX_PATTERN.sub("", value.strip()))


def trailing_number(value: str) -> str:
    runs = _DIGIT_RUNS.findall(value)
    return runs[-1] if runs else ""


def prioritize_matches(rows: Sequence[Row], query: str, code_field: str) -> List[Row]:
    """Return the best non-empty tier of ``rows`` for ``query``.

    Rows are split into exact, suffix and substring tiers against the value in
    ``code_field``. Only one tier is ever returned so that callers have to
    disambiguate when it holds more than one row. Order inside a tier follows
    the input order.
    """
    query_upper = query.strip().upper()
    query_core = numeric_core(query)

    exact: List[Row] = []
    suffix: List[Row] = []
    substring: List[Row] = []

    for row in rows:
        code = str(row.get(code_field) or "")
        code_upper = code.upper()
        code_core = numeric_core(code)
        code_tail = trailing_number(code)

        if code_upper == query_upper or (query_core and query_core in (code_core, code_tail)):
            exact.append(row)
        elif code_upper.endswith(query_upper) or (
            query_core and (code_core.endswith(query_core) or code_tail.endswith(query_core))
        ):
            suffix.append(row)
        elif query_upper in code_upper or (query_core and query_core in code_core):
            substring.append(row)

    if exact:
        return exact
    if suffix:
        return suffix
    return substring


def search_pattern(query: str) -> str:
    """Regex fragment used for the initial contains lookup of a query."""
    if is_partial_id_query(query):
        core = numeric_core(query)
        # digits may be split by separators in stored codes (SHP-2024-45678)
        return r"\D?".join(re.escape(digit) for digit in core)
    return re.escape(query.strip())


def index_candidates(rows: Sequence[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    indexed = []
    for position, row in enumerate(rows[:limit], start=1):
        indexed.append({"index": position, **row})
    return indexed
