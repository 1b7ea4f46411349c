import unittest
from urllib.parse import unquote

from painel.analytics import reports
from painel.domain.records import STATUS_REVIEWED, LineItem, OccurrenceRecord, ReturnRecord, UploadedAttachment


def _return(record_id: int, day: str, client: str, *items: LineItem, **extra) -> ReturnRecord:
    return ReturnRecord(id=record_id, user_id="ana@demo.com", date=day, client=client, items=items, **extra)


def _occurrence(record_id: int, day: str, client: str, **extra) -> OccurrenceRecord:
    return OccurrenceRecord(id=record_id, user_id="ana@demo.com", date=day, client=client, **extra)


RETURNS = (
    _return(1, "2024-01-05", "Sol", LineItem(product="Arroz", quantity=10, reason="Avaria", condition="Aberto")),
    _return(2, "2024-01-20", "Lua", LineItem(product="Feijao", quantity=5, reason="Vencido")),
    _return(3, "2024-02-03", "Sol", LineItem(product="Arroz", quantity=3, reason="Avaria", condition="Aberto")),
)

OCCURRENCES = (
    _occurrence(1, "2024-01-05", "Sol", responsible_sector="Logistica", occurrence_reason="Atraso", impact="Alto"),
    _occurrence(2, "2024-01-06", "Lua", responsible_sector="Logistica", occurrence_reason="Avaria", impact="Baixo"),
    _occurrence(3, "2024-02-01", "Sol", responsible_sector="Comercial", occurrence_reason="Atraso", impact="Alto"),
)


class SummaryStatsTest(unittest.TestCase):
    def test_return_stats_weight_products_by_quantity(self) -> None:
        stats = reports.return_summary_stats(RETURNS)
        self.assertEqual(stats["total_records"], 3)
        self.assertEqual(stats["total_quantity"], 18.0)
        self.assertEqual(stats["top_product"], {"name": "Arroz", "value": 13.0})
        self.assertEqual(stats["top_client"], {"name": "Sol", "value": 2})
        self.assertEqual(stats["top_reason"], {"name": "Avaria", "value": 2})

    def test_empty_stats(self) -> None:
        stats = reports.return_summary_stats(())
        self.assertEqual(stats["total_records"], 0)
        self.assertIsNone(stats["top_product"])
        digest = reports.return_summary_digest(stats)
        self.assertIn("*Total de Registros:* 0", digest)
        self.assertIn("*Top Produto:* - (0 un.)", digest)

    def test_occurrence_stats(self) -> None:
        stats = reports.occurrence_summary_stats(OCCURRENCES)
        self.assertEqual(stats["top_sector"], {"name": "Logistica", "value": 2})
        self.assertEqual(stats["top_occurrence_reason"], {"name": "Atraso", "value": 2})


class DashboardTest(unittest.TestCase):
    def test_return_dashboard_charts(self) -> None:
        dashboard = reports.return_dashboard(RETURNS, "monthly")
        charts = dashboard["charts"]
        self.assertEqual(charts["top_products"][0], {"name": "Arroz", "value": 13.0})
        self.assertEqual(charts["top_products"][1], {"name": "Feijao", "value": 5.0})
        self.assertEqual([(point["label"], point["count"]) for point in charts["evolution"]], [("Jan", 2), ("Fev", 1)])

    def test_far_future_record_does_not_break_dashboard(self) -> None:
        far_future = (_return(4, "9999-12-31", "Sol", LineItem(product="Arroz", quantity=1)),)
        for granularity in ("daily", "weekly", "monthly", "yearly"):
            evolution = reports.return_dashboard(far_future, granularity)["charts"]["evolution"]
            self.assertEqual([point["count"] for point in evolution], [1], msg=granularity)

        yearly = reports.return_dashboard(RETURNS + far_future, "yearly")["charts"]["evolution"]
        self.assertEqual((yearly[0]["label"], yearly[-1]["label"]), ("2024", "9999"))
        self.assertEqual(sum(point["count"] for point in yearly), 4)

    def test_occurrence_dashboard_charts(self) -> None:
        charts = reports.occurrence_dashboard(OCCURRENCES, "monthly")["charts"]
        self.assertEqual(charts["impacts"][0], {"name": "Alto", "value": 2})
        self.assertEqual(len(charts["evolution"]), 2)


class CrossTabTest(unittest.TestCase):
    def test_client_product_reason_tree(self) -> None:
        tree = reports.client_product_reason_report(RETURNS)
        self.assertEqual(tree[0]["name"], "Sol")
        self.assertEqual(tree[0]["value"], 13.0)
        self.assertEqual(tree[0]["children"][0]["children"][0], {"name": "Avaria", "value": 13.0, "children": []})

    def test_missing_condition_becomes_not_available(self) -> None:
        tree = reports.product_reason_condition_report(RETURNS)
        feijao = next(node for node in tree if node["name"] == "Feijao")
        self.assertEqual(feijao["children"][0]["children"][0]["name"], reports.NOT_AVAILABLE)

    def test_sector_impact_tree(self) -> None:
        tree = reports.sector_impact_report(OCCURRENCES)
        self.assertEqual([node["name"] for node in tree], ["Logistica", "Comercial"])


class DigestTest(unittest.TestCase):
    def test_itemized_digest_reports_omitted_records(self) -> None:
        records = tuple(
            _return(index, "2024-03-01", f"Cliente {index}", LineItem(product="Arroz", quantity=1))
            for index in range(1, 9)
        )
        digest = reports.return_itemized_digest(records)
        self.assertIn("*Devolucoes (8)*", digest)
        self.assertIn("Cliente 5", digest)
        self.assertNotIn("Cliente 6", digest)
        self.assertIn("_... e mais 3 registros nao listado(s)._", digest)

    def test_itemized_digest_singular_omission(self) -> None:
        records = tuple(
            _occurrence(index, "2024-03-01", f"Cliente {index}", occurrence_reason="Atraso") for index in range(1, 7)
        )
        self.assertIn("_... e mais 1 ocorrencia nao listado(s)._", reports.occurrence_itemized_digest(records))

    def test_month_week_digest(self) -> None:
        digest = reports.month_week_digest(RETURNS)
        self.assertIn("*Jan/2024:* 2 registro(s)", digest)
        self.assertIn("  - Semana de 01/01: 1", digest)
        self.assertIn("  - Semana de 15/01: 1", digest)
        self.assertIn("*Fev/2024:* 1 registro(s)", digest)

    def test_month_week_digest_keeps_latest_months(self) -> None:
        records = [
            _return(month, f"2024-{month:02d}-10", "Sol", LineItem(product="Arroz", quantity=1)) for month in range(1, 8)
        ]
        digest = reports.month_week_digest(records)
        self.assertNotIn("Jan/2024", digest)
        self.assertNotIn("Fev/2024", digest)
        self.assertIn("Jul/2024", digest)
        self.assertIn("_... e mais 2 meses anteriores nao listado(s)._", digest)

    def test_empty_month_week_digest(self) -> None:
        self.assertIn("Nenhum registro no periodo.", reports.month_week_digest([]))


class MessageTest(unittest.TestCase):
    def test_return_message(self) -> None:
        record = _return(
            7,
            "2024-03-10",
            "Sol",
            LineItem(
                product="Arroz",
                quantity=2,
                unit_type="cx",
                reason="Avaria",
                condition="Aberto",
                code="A1",
                family="Graos",
                group="Mercearia",
                recurrence="Sim",
            ),
            LineItem(product="Feijao", quantity=1),
            status=STATUS_REVIEWED,
            note="Cliente recusou na entrega",
            attachments=(UploadedAttachment(url="/anexos/ana/foto.jpg"),),
            owner_name="Ana",
        )
        message = reports.return_message(record)
        self.assertIn("*Data:* 10/03/2024", message)
        self.assertIn(
            "*PRODUTO 1*\n*Codigo:* A1\n*Produto:* Arroz\n*Familia:* Graos\n*Grupo:* Mercearia\n"
            "*Quantidade:* 2 cx\n*Motivo:* Avaria\n*Estado:* Aberto\n*Reincidencia:* Sim\n",
            message,
        )
        self.assertIn("*PRODUTO 2*\n*Produto:* Feijao\n*Familia:* -", message)
        self.assertIn("*Quantidade Total:* 3", message)
        self.assertIn("*Status:* Revisado", message)
        self.assertIn("/anexos/ana/foto.jpg", message)
        self.assertTrue(message.endswith("*Registrado por:* Ana"))

    def test_occurrence_message_uses_dash_for_blanks(self) -> None:
        message = reports.occurrence_message(_occurrence(1, "2024-03-10", "Sol"))
        self.assertIn("*Motorista:* -", message)
        self.assertIn("*Cidade/UF:* -/-", message)

    def test_whatsapp_share_url_round_trips_text(self) -> None:
        text = "*Resumo*\nTotal: 3 & mais"
        url = reports.whatsapp_share_url(text)
        self.assertTrue(url.startswith(reports.WHATSAPP_SHARE_BASE))
        self.assertNotIn("\n", url)
        self.assertEqual(unquote(url[len(reports.WHATSAPP_SHARE_BASE) :]), text)


class SheetRowsTest(unittest.TestCase):
    def test_one_sheet_row_per_line_item(self) -> None:
        record = _return(1, "2024-03-10", "Sol", LineItem(product="A", quantity=1), LineItem(product="B", quantity=2))
        rows = reports.return_sheet_rows([record])
        self.assertEqual([row["Produto"] for row in rows], ["A", "B"])
        self.assertEqual(rows[0]["Data Devolucao"], "10/03/2024")
        self.assertEqual(rows[0]["Status"], "Pendente")

    def test_registration_timestamp_is_formatted(self) -> None:
        record = _return(1, "2024-03-10", "Sol", LineItem(product="A", quantity=1), created_at="2024-03-10T14:05:09Z")
        self.assertEqual(reports.return_sheet_rows([record])[0]["Data Registro"], "10/03/2024 14:05:09")
        legacy = _occurrence(2, "2024-03-10", "Sol", created_at="2024-03-10 08:00:00")
        self.assertEqual(reports.occurrence_sheet_rows([legacy])[0]["Data Registro"], "10/03/2024 08:00:00")
        unknown = _occurrence(3, "2024-03-10", "Sol", created_at="ontem")
        self.assertEqual(reports.occurrence_sheet_rows([unknown])[0]["Data Registro"], "ontem")


if __name__ == "__main__":
    unittest.main()
