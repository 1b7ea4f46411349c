from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

from painel.analytics.periods import normalize_period_token, resolve_period
from painel.domain.records import LineItem, OccurrenceRecord, ReturnRecord, parse_record_date


@dataclass(frozen=True)
class FilterSpec:
    search: str = ""
    start_date: str = ""
    end_date: str = ""
    period: str = ""
    client: str = ""
    seller: str = ""
    network: str = ""
    city: str = ""
    state: str = ""
    product: str = ""
    family: str = ""
    group: str = ""
    reason: str = ""
    condition: str = ""
    recurrence: str = ""
    responsible_sector: str = ""
    occurrence_reason: str = ""
    impact: str = ""

    def active_fields(self) -> List[str]:
        return [item.name for item in fields(self) if getattr(self, item.name)]

    def merge(self, other: "FilterSpec") -> "FilterSpec":
        overrides = {name: getattr(other, name) for name in other.active_fields()}
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, str]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


# Fields compared by exact equality; the rest drive the date and search clauses.
EQUALITY_FIELDS: Tuple[str, ...] = (
    "client",
    "seller",
    "network",
    "city",
    "state",
    "product",
    "family",
    "group",
    "reason",
    "condition",
    "recurrence",
    "responsible_sector",
    "occurrence_reason",
    "impact",
)

_ARG_ALIASES: Dict[str, Tuple[str, ...]] = {
    "search": ("search", "busca"),
    "start_date": ("start_date", "startDate", "data_inicio"),
    "end_date": ("end_date", "endDate", "data_fim"),
    "period": ("period", "periodo"),
    "client": ("client", "cliente"),
    "seller": ("seller", "vendedor"),
    "network": ("network", "rede"),
    "city": ("city", "cidade"),
    "state": ("state", "uf"),
    "product": ("product", "produto"),
    "family": ("family", "familia"),
    "group": ("group", "grupo"),
    "reason": ("reason", "motivo"),
    "condition": ("condition", "estado"),
    "recurrence": ("recurrence", "reincidencia"),
    "responsible_sector": ("responsible_sector", "setor_responsavel"),
    "occurrence_reason": ("occurrence_reason", "motivo_ocorrencia"),
    "impact": ("impact", "impactos"),
}


def parse_filter_spec(args: Mapping[str, Any] | None) -> FilterSpec:
    source = args or {}
    values: Dict[str, str] = {}
    for name, aliases in _ARG_ALIASES.items():
        for alias in aliases:
            raw = source.get(alias)
            if raw is None:
                continue
            text = str(raw).strip()
            if text:
                values[name] = text
                break

    start = _parse_bound(values.get("start_date"))
    end = _parse_bound(values.get("end_date"))
    if start and end and start > end:
        start, end = end, start
    values["start_date"] = start.isoformat() if start else ""
    values["end_date"] = end.isoformat() if end else ""
    values["period"] = normalize_period_token(values.get("period"))
    return FilterSpec(**values)


def _parse_bound(raw_value: str | None) -> date | None:
    if not raw_value:
        return None
    return parse_record_date(raw_value)


@dataclass(frozen=True)
class RecordDescriptor:
    """How the predicate engine reads one record type."""

    kind: str
    date_of: Callable[[Any], Any]
    record_fields: Mapping[str, Callable[[Any], Any]]
    item_fields: Mapping[str, Callable[[LineItem], Any]]
    search_fields: Tuple[Callable[[Any], Any], ...]
    item_search_fields: Tuple[Callable[[LineItem], Any], ...] = ()
    items_of: Callable[[Any], Iterable[LineItem]] = lambda _record: ()

    def filterable_fields(self) -> List[str]:
        return [*self.record_fields.keys(), *self.item_fields.keys()]


RETURN_DESCRIPTOR = RecordDescriptor(
    kind="devolucao",
    date_of=lambda record: record.date,
    record_fields={
        "client": lambda record: record.client,
        "seller": lambda record: record.seller,
        "network": lambda record: record.network,
        "city": lambda record: record.city,
        "state": lambda record: record.state,
    },
    item_fields={
        "product": lambda item: item.product,
        "family": lambda item: item.family,
        "group": lambda item: item.group,
        "reason": lambda item: item.reason,
        "condition": lambda item: item.condition,
        "recurrence": lambda item: item.recurrence,
    },
    search_fields=(
        lambda record: record.client,
        lambda record: record.driver,
        lambda record: record.owner_name or record.user_id,
    ),
    item_search_fields=(
        lambda item: item.product,
        lambda item: item.reason,
        lambda item: item.code,
    ),
    items_of=lambda record: record.items,
)

OCCURRENCE_DESCRIPTOR = RecordDescriptor(
    kind="ocorrencia",
    date_of=lambda record: record.date,
    record_fields={
        "client": lambda record: record.client,
        "seller": lambda record: record.seller,
        "network": lambda record: record.network,
        "city": lambda record: record.city,
        "state": lambda record: record.state,
        "recurrence": lambda record: record.recurrence,
        "responsible_sector": lambda record: record.responsible_sector,
        "occurrence_reason": lambda record: record.occurrence_reason,
        "impact": lambda record: record.impact,
    },
    item_fields={},
    search_fields=(
        lambda record: record.client,
        lambda record: record.driver,
        lambda record: record.owner_name or record.user_id,
        lambda record: record.occurrence_reason,
        lambda record: record.summary,
    ),
)


def descriptor_for(record: Any) -> RecordDescriptor:
    if isinstance(record, OccurrenceRecord):
        return OCCURRENCE_DESCRIPTOR
    return RETURN_DESCRIPTOR


def resolve_date_window(spec: FilterSpec, now: date | datetime) -> Tuple[date | None, date | None]:
    period_range = resolve_period(spec.period, now)
    if period_range is not None:
        return period_range.start, period_range.end
    return _parse_bound(spec.start_date), _parse_bound(spec.end_date)


def matches(
    record: Any,
    spec: FilterSpec,
    now: date | datetime,
    descriptor: RecordDescriptor | None = None,
) -> bool:
    active = descriptor or descriptor_for(record)
    start, end = resolve_date_window(spec, now)
    if not _date_clause(record, active, start, end):
        return False
    if not _search_clause(record, active, spec.search):
        return False
    return _equality_clause(record, active, spec)


def filter_records(
    records: Iterable[Any],
    spec: FilterSpec,
    now: date | datetime,
    descriptor: RecordDescriptor | None = None,
) -> Tuple[Any, ...]:
    return tuple(record for record in records if matches(record, spec, now, descriptor))


def _date_clause(record: Any, descriptor: RecordDescriptor, start: date | None, end: date | None) -> bool:
    if start is None and end is None:
        return True
    record_day = parse_record_date(descriptor.date_of(record))
    if record_day is None:
        return False
    if start is not None and record_day < start:
        return False
    if end is not None and record_day > end:
        return False
    return True


def _search_clause(record: Any, descriptor: RecordDescriptor, term: str) -> bool:
    needle = str(term or "").strip().lower()
    if not needle:
        return True
    for accessor in descriptor.search_fields:
        if needle in _text(accessor(record)).lower():
            return True
    for item in descriptor.items_of(record):
        for accessor in descriptor.item_search_fields:
            if needle in _text(accessor(item)).lower():
                return True
    return False


def _equality_clause(record: Any, descriptor: RecordDescriptor, spec: FilterSpec) -> bool:
    for name in EQUALITY_FIELDS:
        expected = getattr(spec, name)
        if not expected:
            continue
        if name in descriptor.record_fields:
            if _text(descriptor.record_fields[name](record)) != expected:
                return False
        elif name in descriptor.item_fields:
            accessor = descriptor.item_fields[name]
            if not any(_text(accessor(item)) == expected for item in descriptor.items_of(record)):
                return False
    return True


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def sort_by_created_desc(records: Sequence[Any]) -> Tuple[Any, ...]:
    return tuple(sorted(records, key=lambda record: str(getattr(record, "created_at", "") or ""), reverse=True))


@dataclass(frozen=True)
class LineItemRow:
    record: ReturnRecord
    item: LineItem
    position: int

    @property
    def quantity(self) -> float:
        return float(self.item.quantity or 0.0)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.item.to_dict()
        payload.update(
            {
                "devolucao_id": self.record.id,
                "posicao": self.position,
                "data": self.record.date,
                "cliente": self.record.client,
                "motorista": self.record.driver,
                "vendedor": self.record.seller,
                "status": self.record.status,
                "anexos": list(self.record.uploaded_urls),
            }
        )
        return payload


def flatten_line_items(records: Iterable[ReturnRecord]) -> Tuple[LineItemRow, ...]:
    return tuple(
        LineItemRow(record=record, item=item, position=position)
        for record in records
        for position, item in enumerate(record.items)
    )


def filter_options(records: Iterable[Any], descriptor: RecordDescriptor) -> Dict[str, List[str]]:
    values: Dict[str, set[str]] = {name: set() for name in descriptor.filterable_fields()}
    for record in records:
        for name, accessor in descriptor.record_fields.items():
            text = _text(accessor(record)).strip()
            if text:
                values[name].add(text)
        for item in descriptor.items_of(record):
            for name, accessor in descriptor.item_fields.items():
                text = _text(accessor(item)).strip()
                if text:
                    values[name].add(text)
    return {name: sorted(found) for name, found in values.items()}
