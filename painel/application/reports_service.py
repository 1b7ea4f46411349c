from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, Sequence

from painel.analytics import reports
from painel.analytics.aggregation import AggregationContractError, normalize_granularity
from painel.analytics.filters import (
    OCCURRENCE_DESCRIPTOR,
    RETURN_DESCRIPTOR,
    FilterSpec,
    filter_options,
    filter_records,
    resolve_date_window,
    sort_by_created_desc,
)
from painel.domain.contracts import ServiceOutput
from painel.domain.records import OccurrenceRecord, ReturnRecord
from painel.errors import ValidationError
from painel.observability import observe_view


def _share(text: str) -> Dict[str, str]:
    return {"text": text, "share_url": reports.whatsapp_share_url(text)}


RETURN_REPORTS: Dict[str, Callable[[Sequence[ReturnRecord]], Any]] = {
    "geral": lambda records: {
        "stats": reports.return_summary_stats(records),
        "rows": reports.return_table_rows(records),
    },
    "cliente_produto_motivo": reports.client_product_reason_report,
    "produto_motivo_estado": reports.product_reason_condition_report,
    "planilha": reports.return_sheet_rows,
}

OCCURRENCE_REPORTS: Dict[str, Callable[[Sequence[OccurrenceRecord]], Any]] = {
    "geral": lambda records: {
        "stats": reports.occurrence_summary_stats(records),
        "rows": reports.occurrence_table_rows(records),
    },
    "cliente_motivo": reports.client_occurrence_reason_report,
    "setor_impacto": reports.sector_impact_report,
    "detalhamento": reports.occurrence_breakdowns,
    "planilha": reports.occurrence_sheet_rows,
}

RETURN_DIGESTS: Dict[str, Callable[[Sequence[ReturnRecord]], str]] = {
    "geral": lambda records: reports.return_summary_digest(reports.return_summary_stats(records)),
    "itens": reports.return_itemized_digest,
    "cliente_produto_motivo": reports.client_product_reason_digest,
    "mes_semana": reports.month_week_digest,
}

OCCURRENCE_DIGESTS: Dict[str, Callable[[Sequence[OccurrenceRecord]], str]] = {
    "geral": lambda records: reports.occurrence_summary_digest(reports.occurrence_summary_stats(records)),
    "itens": reports.occurrence_itemized_digest,
    "mes_semana": reports.month_week_digest,
}


class ReportsService:
    """Builds history, dashboard, report and digest payloads from an owner snapshot."""

    def return_history(self, records: Sequence[ReturnRecord], spec: FilterSpec, now: date | datetime) -> ServiceOutput:
        filtered = filter_records(records, spec, now, RETURN_DESCRIPTOR)
        observe_view("devolucoes", "historico", spec.active_fields(), len(filtered))
        return ServiceOutput(
            payload={
                "items": [record.to_dict() for record in filtered],
                "rows": reports.return_table_rows(filtered),
                "total": len(filtered),
                "total_quantity": sum(record.total_quantity for record in filtered),
                "filters": self._filters_payload(spec, now),
            }
        )

    def occurrence_history(
        self,
        records: Sequence[OccurrenceRecord],
        spec: FilterSpec,
        now: date | datetime,
    ) -> ServiceOutput:
        filtered = sort_by_created_desc(filter_records(records, spec, now, OCCURRENCE_DESCRIPTOR))
        observe_view("ocorrencias", "historico", spec.active_fields(), len(filtered))
        return ServiceOutput(
            payload={
                "items": [record.to_dict() for record in filtered],
                "total": len(filtered),
                "filters": self._filters_payload(spec, now),
            }
        )

    def return_dashboard(
        self,
        records: Sequence[ReturnRecord],
        spec: FilterSpec,
        now: date | datetime,
        granularity: str | None,
    ) -> ServiceOutput:
        resolved = self._granularity(granularity)
        filtered = filter_records(records, spec, now, RETURN_DESCRIPTOR)
        payload = reports.return_dashboard(filtered, resolved)
        observe_view("devolucoes", "dashboard", spec.active_fields(), len(filtered), resolved)
        payload.update({"granularity": resolved, "filters": self._filters_payload(spec, now)})
        return ServiceOutput(payload=payload)

    def occurrence_dashboard(
        self,
        records: Sequence[OccurrenceRecord],
        spec: FilterSpec,
        now: date | datetime,
        granularity: str | None,
    ) -> ServiceOutput:
        resolved = self._granularity(granularity)
        filtered = filter_records(records, spec, now, OCCURRENCE_DESCRIPTOR)
        payload = reports.occurrence_dashboard(filtered, resolved)
        observe_view("ocorrencias", "dashboard", spec.active_fields(), len(filtered), resolved)
        payload.update({"granularity": resolved, "filters": self._filters_payload(spec, now)})
        return ServiceOutput(payload=payload)

    def return_report(self, records, spec: FilterSpec, now: date | datetime, kind: str) -> ServiceOutput:
        builder = self._lookup(RETURN_REPORTS, kind)
        filtered = filter_records(records, spec, now, RETURN_DESCRIPTOR)
        observe_view("devolucoes", "relatorio", spec.active_fields(), len(filtered), kind)
        return ServiceOutput(payload={"kind": kind, "total": len(filtered), "data": builder(filtered)})

    def occurrence_report(self, records, spec: FilterSpec, now: date | datetime, kind: str) -> ServiceOutput:
        builder = self._lookup(OCCURRENCE_REPORTS, kind)
        filtered = filter_records(records, spec, now, OCCURRENCE_DESCRIPTOR)
        observe_view("ocorrencias", "relatorio", spec.active_fields(), len(filtered), kind)
        return ServiceOutput(payload={"kind": kind, "total": len(filtered), "data": builder(filtered)})

    def return_digest(self, records, spec: FilterSpec, now: date | datetime, kind: str) -> ServiceOutput:
        builder = self._lookup(RETURN_DIGESTS, kind)
        filtered = filter_records(records, spec, now, RETURN_DESCRIPTOR)
        observe_view("devolucoes", "resumo", spec.active_fields(), len(filtered), kind)
        return ServiceOutput(payload={"kind": kind, "total": len(filtered), **_share(builder(filtered))})

    def occurrence_digest(self, records, spec: FilterSpec, now: date | datetime, kind: str) -> ServiceOutput:
        builder = self._lookup(OCCURRENCE_DIGESTS, kind)
        filtered = filter_records(records, spec, now, OCCURRENCE_DESCRIPTOR)
        observe_view("ocorrencias", "resumo", spec.active_fields(), len(filtered), kind)
        return ServiceOutput(payload={"kind": kind, "total": len(filtered), **_share(builder(filtered))})

    def return_message(self, record: ReturnRecord) -> ServiceOutput:
        return ServiceOutput(payload={"id": record.id, **_share(reports.return_message(record))})

    def occurrence_message(self, record: OccurrenceRecord) -> ServiceOutput:
        return ServiceOutput(payload={"id": record.id, **_share(reports.occurrence_message(record))})

    def return_filter_options(self, records: Sequence[ReturnRecord]) -> ServiceOutput:
        return ServiceOutput(payload={"options": filter_options(records, RETURN_DESCRIPTOR)})

    def occurrence_filter_options(self, records: Sequence[OccurrenceRecord]) -> ServiceOutput:
        return ServiceOutput(payload={"options": filter_options(records, OCCURRENCE_DESCRIPTOR)})

    @staticmethod
    def _granularity(raw_value: str | None) -> str:
        try:
            return normalize_granularity(raw_value or "monthly")
        except AggregationContractError as exc:
            raise ValidationError(
                code="granularity_invalid",
                message_key="granularity_invalid",
                details=str(exc),
            ) from exc

    @staticmethod
    def _lookup(table: Dict[str, Callable], kind: str) -> Callable:
        builder = table.get(str(kind or "").strip().lower())
        if builder is None:
            raise ValidationError(
                code="report_kind_invalid",
                message_key="report_kind_invalid",
                payload={"available": sorted(table)},
            )
        return builder

    @staticmethod
    def _filters_payload(spec: FilterSpec, now: date | datetime) -> Dict[str, Any]:
        start, end = resolve_date_window(spec, now)
        return {
            "applied": spec.to_dict(),
            "active": spec.active_fields(),
            "window": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            },
        }
