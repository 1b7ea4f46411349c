from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Sequence
from urllib.parse import quote

from painel.analytics.aggregation import (
    MONTH_ABBREVIATIONS,
    count_by,
    evolution_series,
    group_tree,
    top_n,
    top_one,
)
from painel.analytics.filters import LineItemRow, flatten_line_items
from painel.analytics.periods import start_of_week
from painel.domain.records import STATUS_LABELS, OccurrenceRecord, ReturnRecord, parse_record_date


DASHBOARD_TOP_N = 10
DIGEST_ITEM_LIMIT = 5
DIGEST_GROUP_LIMIT = 5

NOT_AVAILABLE = "N/A"
WHATSAPP_SHARE_BASE = "https://wa.me/?text="


def _row_quantity(row: LineItemRow) -> float:
    return row.quantity


def _record_date(record: Any) -> Any:
    return record.date


def _format_day(raw_value: Any) -> str:
    parsed = parse_record_date(raw_value)
    if parsed is None:
        return str(raw_value or "-")
    return parsed.strftime("%d/%m/%Y")


def _format_timestamp(raw_value: Any) -> str:
    text = str(raw_value or "").strip()
    if not text:
        return "-"
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return parsed.strftime("%d/%m/%Y %H:%M:%S")


def _format_quantity(value: float) -> str:
    number = float(value or 0.0)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def _or_dash(value: Any) -> str:
    text = str(value or "").strip()
    return text or "-"


def return_summary_stats(records: Sequence[ReturnRecord]) -> Dict[str, Any]:
    rows = flatten_line_items(records)
    return {
        "total_records": len(records),
        "total_quantity": sum(row.quantity for row in rows),
        "top_product": top_one(rows, lambda row: row.item.product, _row_quantity),
        "top_client": top_one(records, lambda record: record.client),
        "top_reason": top_one(rows, lambda row: row.item.reason),
        "top_seller": top_one(records, lambda record: record.seller),
        "top_network": top_one(records, lambda record: record.network),
        "top_family": top_one(rows, lambda row: row.item.family, _row_quantity),
        "top_group": top_one(rows, lambda row: row.item.group, _row_quantity),
        "top_condition": top_one(rows, lambda row: row.item.condition),
        "top_state": top_one(records, lambda record: record.state),
        "top_city": top_one(records, lambda record: record.city),
    }


def occurrence_summary_stats(records: Sequence[OccurrenceRecord]) -> Dict[str, Any]:
    return {
        "total_records": len(records),
        "top_occurrence_reason": top_one(records, lambda record: record.occurrence_reason),
        "top_sector": top_one(records, lambda record: record.responsible_sector),
        "top_impact": top_one(records, lambda record: record.impact),
        "top_client": top_one(records, lambda record: record.client),
        "top_state": top_one(records, lambda record: record.state),
        "top_city": top_one(records, lambda record: record.city),
        "top_seller": top_one(records, lambda record: record.seller),
        "top_network": top_one(records, lambda record: record.network),
    }


def return_dashboard(records: Sequence[ReturnRecord], granularity: str = "monthly") -> Dict[str, Any]:
    rows = flatten_line_items(records)
    return {
        "stats": return_summary_stats(records),
        "charts": {
            "top_products": top_n(rows, lambda row: row.item.product, DASHBOARD_TOP_N, _row_quantity),
            "top_clients": top_n(records, lambda record: record.client, DASHBOARD_TOP_N),
            "reasons": top_n(rows, lambda row: row.item.reason, DASHBOARD_TOP_N),
            "conditions": top_n(rows, lambda row: row.item.condition, DASHBOARD_TOP_N),
            "evolution": evolution_series(records, granularity, _record_date),
        },
    }


def occurrence_dashboard(records: Sequence[OccurrenceRecord], granularity: str = "monthly") -> Dict[str, Any]:
    return {
        "stats": occurrence_summary_stats(records),
        "charts": {
            "top_sectors": top_n(records, lambda record: record.responsible_sector, DASHBOARD_TOP_N),
            "reasons": top_n(records, lambda record: record.occurrence_reason, DASHBOARD_TOP_N),
            "impacts": top_n(records, lambda record: record.impact, DASHBOARD_TOP_N),
            "evolution": evolution_series(records, granularity, _record_date),
        },
    }


def client_product_reason_report(records: Sequence[ReturnRecord]) -> List[Dict[str, Any]]:
    return group_tree(
        flatten_line_items(records),
        [
            lambda row: row.record.client,
            lambda row: row.item.product,
            lambda row: row.item.reason,
        ],
        _row_quantity,
    )


def product_reason_condition_report(records: Sequence[ReturnRecord]) -> List[Dict[str, Any]]:
    return group_tree(
        flatten_line_items(records),
        [
            lambda row: row.item.product,
            lambda row: row.item.reason,
            lambda row: row.item.condition.strip() or NOT_AVAILABLE,
        ],
        _row_quantity,
    )


def client_occurrence_reason_report(records: Sequence[OccurrenceRecord]) -> List[Dict[str, Any]]:
    return group_tree(records, [lambda record: record.client, lambda record: record.occurrence_reason])


def sector_impact_report(records: Sequence[OccurrenceRecord]) -> List[Dict[str, Any]]:
    return group_tree(records, [lambda record: record.responsible_sector, lambda record: record.impact])


def occurrence_breakdowns(records: Sequence[OccurrenceRecord]) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "sectors": count_by(records, lambda record: record.responsible_sector),
        "reasons": count_by(records, lambda record: record.occurrence_reason),
        "impacts": count_by(records, lambda record: record.impact),
        "sellers": count_by(records, lambda record: record.seller),
    }


def return_table_rows(records: Sequence[ReturnRecord]) -> List[Dict[str, Any]]:
    table: List[Dict[str, Any]] = []
    for row in flatten_line_items(records):
        payload = row.to_dict()
        payload["usuario"] = row.record.owner_name or row.record.user_id
        table.append(payload)
    return table


def occurrence_table_rows(records: Sequence[OccurrenceRecord]) -> List[Dict[str, Any]]:
    return [record.to_dict() for record in records]


def return_sheet_rows(records: Sequence[ReturnRecord]) -> List[Dict[str, Any]]:
    sheet: List[Dict[str, Any]] = []
    for row in flatten_line_items(records):
        record, item = row.record, row.item
        sheet.append(
            {
                "ID Registro": record.id,
                "Data Registro": _format_timestamp(record.created_at),
                "Data Devolucao": _format_day(record.date),
                "Cliente": record.client,
                "Vendedor": record.seller,
                "Rede": record.network,
                "Cidade": record.city,
                "UF": record.state,
                "Motorista": record.driver,
                "Codigo": item.code,
                "Produto": item.product,
                "Familia": item.family,
                "Grupo": item.group,
                "Quantidade": item.quantity,
                "Tipo": item.unit_type,
                "Motivo": item.reason,
                "Estado": item.condition,
                "Reincidencia": item.recurrence,
                "Status": STATUS_LABELS.get(record.status, record.status),
                "Observacao": record.note,
                "Registrado Por": record.owner_name or record.user_id,
            }
        )
    return sheet


def occurrence_sheet_rows(records: Sequence[OccurrenceRecord]) -> List[Dict[str, Any]]:
    return [
        {
            "ID Registro": record.id,
            "Data Registro": _format_timestamp(record.created_at),
            "Data Ocorrencia": _format_day(record.date),
            "Cliente": record.client,
            "Vendedor": record.seller,
            "Rede": record.network,
            "Cidade": record.city,
            "UF": record.state,
            "Motorista": record.driver,
            "Reincidencia": record.recurrence,
            "Setor Responsavel": record.responsible_sector,
            "Motivo Ocorrencia": record.occurrence_reason,
            "Resumo Ocorrencia": record.summary,
            "Tratativa": record.resolution,
            "Impactos": record.impact,
            "Registrado Por": record.owner_name or record.user_id,
        }
        for record in records
    ]


def _top_line(label: str, entry: Dict[str, Any] | None, unit: str) -> str:
    if entry is None:
        return f"*{label}:* - (0 {unit})"
    value = entry["value"]
    shown = _format_quantity(value) if isinstance(value, float) else str(value)
    return f"*{label}:* {entry['name']} ({shown} {unit})"


def _omitted_line(omitted: int, singular: str, plural: str) -> str:
    noun = singular if omitted == 1 else plural
    return f"_... e mais {omitted} {noun} nao listado(s)._"


def return_summary_digest(stats: Dict[str, Any]) -> str:
    lines = [
        "*Resumo Geral de Devolucoes*",
        "",
        f"*Total de Registros:* {stats.get('total_records', 0)}",
        f"*Quantidade Total:* {_format_quantity(stats.get('total_quantity', 0.0))}",
        "",
        _top_line("Top Produto", stats.get("top_product"), "un."),
        _top_line("Top Cliente", stats.get("top_client"), "reg."),
        _top_line("Top Motivo", stats.get("top_reason"), "itens"),
        _top_line("Top Vendedor", stats.get("top_seller"), "reg."),
        _top_line("Top Rede", stats.get("top_network"), "reg."),
    ]
    return "\n".join(lines)


def occurrence_summary_digest(stats: Dict[str, Any]) -> str:
    lines = [
        "*Resumo Geral de Ocorrencias*",
        "",
        f"*Total de Ocorrencias:* {stats.get('total_records', 0)}",
        "",
        _top_line("Top Motivo", stats.get("top_occurrence_reason"), "ocorr."),
        _top_line("Top Setor", stats.get("top_sector"), "ocorr."),
        _top_line("Top Impacto", stats.get("top_impact"), "ocorr."),
        _top_line("Top Cliente", stats.get("top_client"), "ocorr."),
    ]
    return "\n".join(lines)


def return_itemized_digest(records: Sequence[ReturnRecord]) -> str:
    lines = [f"*Devolucoes ({len(records)})*", ""]
    for record in records[:DIGEST_ITEM_LIMIT]:
        products = ", ".join(
            f"{item.product} ({_format_quantity(item.quantity)} {item.unit_type or 'un.'})"
            for item in record.items
        )
        lines.append(f"- {_format_day(record.date)} | {_or_dash(record.client)} | {products}")
    omitted = len(records) - DIGEST_ITEM_LIMIT
    if omitted > 0:
        lines.append("")
        lines.append(_omitted_line(omitted, "registro", "registros"))
    return "\n".join(lines)


def occurrence_itemized_digest(records: Sequence[OccurrenceRecord]) -> str:
    lines = [f"*Ocorrencias ({len(records)})*", ""]
    for record in records[:DIGEST_ITEM_LIMIT]:
        lines.append(
            f"- {_format_day(record.date)} | {_or_dash(record.client)} | "
            f"{_or_dash(record.occurrence_reason)} ({_or_dash(record.responsible_sector)})"
        )
    omitted = len(records) - DIGEST_ITEM_LIMIT
    if omitted > 0:
        lines.append("")
        lines.append(_omitted_line(omitted, "ocorrencia", "ocorrencias"))
    return "\n".join(lines)


def client_product_reason_digest(records: Sequence[ReturnRecord]) -> str:
    tree = client_product_reason_report(records)
    lines = ["*Devolucoes por Cliente x Produto x Motivo*", ""]
    for client in tree[:DIGEST_GROUP_LIMIT]:
        lines.append(f"*{client['name']}* ({_format_quantity(client['value'])} un.)")
        products = client["children"]
        for product in products[:DIGEST_ITEM_LIMIT]:
            reasons = ", ".join(
                f"{reason['name']}: {_format_quantity(reason['value'])}" for reason in product["children"]
            )
            lines.append(f"  - {product['name']} ({_format_quantity(product['value'])}): {reasons}")
        hidden_products = len(products) - DIGEST_ITEM_LIMIT
        if hidden_products > 0:
            lines.append("  " + _omitted_line(hidden_products, "produto", "produtos"))
    hidden_clients = len(tree) - DIGEST_GROUP_LIMIT
    if hidden_clients > 0:
        lines.append("")
        lines.append(_omitted_line(hidden_clients, "cliente", "clientes"))
    return "\n".join(lines)


def month_week_digest(
    records: Iterable[Any],
    date_extractor: Callable[[Any], Any] = _record_date,
) -> str:
    """Record counts per month with a weekly breakdown, latest months only."""
    months: Dict[date, Dict[date, int]] = {}
    for record in records:
        day = parse_record_date(date_extractor(record))
        if day is None:
            continue
        month_key = date(day.year, day.month, 1)
        weeks = months.setdefault(month_key, {})
        week_key = start_of_week(day)
        weeks[week_key] = weeks.get(week_key, 0) + 1

    lines = ["*Registros por Mes e Semana*", ""]
    if not months:
        lines.append("Nenhum registro no periodo.")
        return "\n".join(lines)

    ordered = sorted(months)
    hidden = len(ordered) - DIGEST_GROUP_LIMIT
    for month_key in ordered[-DIGEST_GROUP_LIMIT:]:
        weeks = months[month_key]
        label = f"{MONTH_ABBREVIATIONS[month_key.month - 1]}/{month_key.year}"
        lines.append(f"*{label}:* {sum(weeks.values())} registro(s)")
        for week_key in sorted(weeks):
            lines.append(f"  - Semana de {week_key.strftime('%d/%m')}: {weeks[week_key]}")
    if hidden > 0:
        lines.append("")
        lines.append(_omitted_line(hidden, "mes anterior", "meses anteriores"))
    return "\n".join(lines)


def occurrence_message(record: OccurrenceRecord) -> str:
    lines = [
        "*REGISTRO DE OCORRENCIA*",
        "",
        f"*Data:* {_format_day(record.date)}",
        f"*Cliente:* {_or_dash(record.client)}",
        f"*Motorista:* {_or_dash(record.driver)}",
        f"*Vendedor:* {_or_dash(record.seller)}",
        f"*Rede:* {_or_dash(record.network)}",
        f"*Cidade/UF:* {_or_dash(record.city)}/{_or_dash(record.state)}",
        f"*Reincidencia:* {_or_dash(record.recurrence)}",
        "",
        "*--- Detalhes da Ocorrencia ---*",
        f"*Setor Responsavel:* {_or_dash(record.responsible_sector)}",
        f"*Motivo:* {_or_dash(record.occurrence_reason)}",
        f"*Impactos:* {_or_dash(record.impact)}",
        "",
        "*Resumo da Ocorrencia:*",
        f"_{_or_dash(record.summary)}_",
        "",
        "*Tratativa Aplicada:*",
        f"_{_or_dash(record.resolution)}_",
        "",
        f"*Registrado por:* {record.owner_name or record.user_id}",
    ]
    return "\n".join(lines)


def return_message(record: ReturnRecord) -> str:
    lines = [
        "*REGISTRO DE DEVOLUCAO*",
        "",
        f"*Data:* {_format_day(record.date)}",
        f"*Cliente:* {_or_dash(record.client)}",
        f"*Motorista:* {_or_dash(record.driver)}",
        f"*Vendedor:* {_or_dash(record.seller)}",
        f"*Rede:* {_or_dash(record.network)}",
        f"*Cidade/UF:* {_or_dash(record.city)}/{_or_dash(record.state)}",
        f"*Status:* {STATUS_LABELS.get(record.status, record.status)}",
        "",
        "*--- Produtos ---*",
    ]
    for position, item in enumerate(record.items[:DIGEST_ITEM_LIMIT], start=1):
        lines.append(f"*PRODUTO {position}*")
        if item.code:
            lines.append(f"*Codigo:* {item.code}")
        lines.extend(
            [
                f"*Produto:* {item.product}",
                f"*Familia:* {_or_dash(item.family)}",
                f"*Grupo:* {_or_dash(item.group)}",
                f"*Quantidade:* {_format_quantity(item.quantity)} {item.unit_type or 'un.'}",
                f"*Motivo:* {_or_dash(item.reason)}",
            ]
        )
        if item.condition:
            lines.append(f"*Estado:* {item.condition}")
        lines.extend([f"*Reincidencia:* {_or_dash(item.recurrence)}", ""])
    hidden = len(record.items) - DIGEST_ITEM_LIMIT
    if hidden > 0:
        lines.append(_omitted_line(hidden, "produto", "produtos"))
    lines.append(f"*Quantidade Total:* {_format_quantity(record.total_quantity)}")
    if record.note:
        lines.extend(["", "*Observacao:*", f"_{record.note}_"])
    if record.uploaded_urls:
        lines.extend(["", "*Anexos:*", *record.uploaded_urls])
    lines.extend(["", f"*Registrado por:* {record.owner_name or record.user_id}"])
    return "\n".join(lines)


def whatsapp_share_url(text: str) -> str:
    return WHATSAPP_SHARE_BASE + quote(text or "", safe="!*'()")
