from __future__ import annotations

from collections.abc import Iterable as IterableABC
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Sequence

from painel.analytics.periods import start_of_week
from painel.domain.records import parse_record_date


MONTH_ABBREVIATIONS = ("Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez")

GRANULARITIES = ("daily", "weekly", "monthly", "yearly")

_GRANULARITY_ALIASES = {
    "diario": "daily",
    "dia": "daily",
    "semanal": "weekly",
    "semana": "weekly",
    "mensal": "monthly",
    "mes": "monthly",
    "anual": "yearly",
    "ano": "yearly",
}


class AggregationContractError(TypeError, ValueError):
    """Raised when an aggregation is called with arguments it can never honor."""


def normalize_granularity(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        raise AggregationContractError(f"granularity must be a string, got {type(raw_value).__name__}")
    normalized = raw_value.strip().lower()
    if normalized in GRANULARITIES:
        return normalized
    if normalized in _GRANULARITY_ALIASES:
        return _GRANULARITY_ALIASES[normalized]
    raise AggregationContractError(f"unknown granularity: {raw_value!r}")


def _require_callable(value: Any, name: str) -> None:
    if not callable(value):
        raise AggregationContractError(f"{name} must be callable")


def _require_limit(n: Any) -> None:
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise AggregationContractError(f"n must be a non-negative integer, got {n!r}")


def _keys_of(raw_keys: Any) -> List[str]:
    if raw_keys is None:
        return []
    if isinstance(raw_keys, str):
        candidates: Iterable[Any] = (raw_keys,)
    elif isinstance(raw_keys, IterableABC):
        candidates = raw_keys
    else:
        candidates = (raw_keys,)

    keys: List[str] = []
    for candidate in candidates:
        if candidate is None:
            continue
        text = candidate if isinstance(candidate, str) else str(candidate)
        if text.strip():
            keys.append(text)
    return keys


def _safe_weight(raw_value: Any) -> float:
    try:
        return float(raw_value)
    except (TypeError, ValueError):
        return 0.0


def _accumulate(
    records: Iterable[Any],
    extractor: Callable[[Any], Any],
    weight: Callable[[Any], Any] | None,
) -> Dict[str, Any]:
    # dict keeps insertion order, which is the first-seen tie-break.
    totals: Dict[str, Any] = {}
    for record in records:
        keys = _keys_of(extractor(record))
        if not keys:
            continue
        amount = 1 if weight is None else _safe_weight(weight(record))
        for key in keys:
            totals[key] = totals.get(key, 0 if weight is None else 0.0) + amount
    return totals


def count_by(
    records: Iterable[Any],
    extractor: Callable[[Any], Any],
    weight: Callable[[Any], Any] | None = None,
) -> List[Dict[str, Any]]:
    _require_callable(extractor, "extractor")
    if weight is not None:
        _require_callable(weight, "weight")
    totals = _accumulate(records, extractor, weight)
    ranked = sorted(totals.items(), key=lambda entry: entry[1], reverse=True)
    return [{"name": name, "value": value} for name, value in ranked]


def top_n(
    records: Iterable[Any],
    extractor: Callable[[Any], Any],
    n: int,
    weight: Callable[[Any], Any] | None = None,
) -> List[Dict[str, Any]]:
    _require_limit(n)
    return count_by(records, extractor, weight)[:n]


def top_one(
    records: Iterable[Any],
    extractor: Callable[[Any], Any],
    weight: Callable[[Any], Any] | None = None,
) -> Dict[str, Any] | None:
    ranked = top_n(records, extractor, 1, weight)
    return ranked[0] if ranked else None


def bucket_start(day: date, granularity: str) -> date:
    if granularity == "daily":
        return day
    if granularity == "weekly":
        return start_of_week(day)
    if granularity == "monthly":
        return date(day.year, day.month, 1)
    return date(day.year, 1, 1)


def _next_bucket(start: date, granularity: str) -> date:
    if granularity == "daily":
        return start + timedelta(days=1)
    if granularity == "weekly":
        return start + timedelta(days=7)
    if granularity == "monthly":
        if start.month == 12:
            return date(start.year + 1, 1, 1)
        return date(start.year, start.month + 1, 1)
    return date(start.year + 1, 1, 1)


def bucket_label(start: date, granularity: str, multi_year: bool = False) -> str:
    if granularity == "daily":
        return start.strftime("%d/%m/%Y") if multi_year else start.strftime("%d/%m")
    if granularity == "weekly":
        return "Sem " + (start.strftime("%d/%m/%Y") if multi_year else start.strftime("%d/%m"))
    if granularity == "monthly":
        label = MONTH_ABBREVIATIONS[start.month - 1]
        if multi_year:
            label = f"{label}/{start.year % 100:02d}"
        return label
    return str(start.year)


def evolution_series(
    records: Iterable[Any],
    granularity: str,
    date_extractor: Callable[[Any], Any],
) -> List[Dict[str, Any]]:
    """Gap-filled record counts per calendar bucket, in chronological order.

    Buckets span from the earliest to the latest parseable record date.
    Records whose date cannot be parsed are left out of every bucket.
    """
    resolved = normalize_granularity(granularity)
    _require_callable(date_extractor, "date_extractor")

    counts: Dict[date, int] = {}
    for record in records:
        day = parse_record_date(date_extractor(record))
        if day is None:
            continue
        start = bucket_start(day, resolved)
        counts[start] = counts.get(start, 0) + 1

    if not counts:
        return []

    first = min(counts)
    last = max(counts)
    multi_year = first.year != last.year

    series: List[Dict[str, Any]] = []
    cursor = first
    while True:
        series.append(
            {
                "label": bucket_label(cursor, resolved, multi_year),
                "count": counts.get(cursor, 0),
                "start": cursor.isoformat(),
            }
        )
        # Stop on the last bucket; stepping past 9999-12-31 would overflow.
        if cursor >= last:
            break
        cursor = _next_bucket(cursor, resolved)
    return series


def group_tree(
    records: Iterable[Any],
    extractors: Sequence[Callable[[Any], Any]],
    weight: Callable[[Any], Any] | None = None,
) -> List[Dict[str, Any]]:
    """Nested ranking: each level groups the records of its parent node."""
    if not extractors:
        raise AggregationContractError("group_tree needs at least one extractor")
    for extractor in extractors:
        _require_callable(extractor, "extractor")
    if weight is not None:
        _require_callable(weight, "weight")
    return _group_level(list(records), list(extractors), weight)


def _group_level(
    records: List[Any],
    extractors: List[Callable[[Any], Any]],
    weight: Callable[[Any], Any] | None,
) -> List[Dict[str, Any]]:
    head, rest = extractors[0], extractors[1:]
    members: Dict[str, List[Any]] = {}
    for record in records:
        for key in _keys_of(head(record)):
            members.setdefault(key, []).append(record)

    nodes: List[Dict[str, Any]] = []
    for entry in count_by(records, head, weight):
        children = _group_level(members[entry["name"]], rest, weight) if rest else []
        nodes.append({"name": entry["name"], "value": entry["value"], "children": children})
    return nodes
