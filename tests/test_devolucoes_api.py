import io
import json
import unittest
from datetime import datetime, timezone

from painel import create_app
from painel.config import Config
from painel.db import close_db, get_db, transaction
from painel.domain.records import LineItem, ReturnRecord
from painel.infrastructure.repositories import ReturnRepository
from painel.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox


def _fixed_now() -> datetime:
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _payload(**overrides) -> dict:
    payload = {
        "data": "2024-03-12",
        "cliente": "Mercado Sol",
        "vendedor": "Carla",
        "rede": "Rede Norte",
        "cidade": "Recife",
        "uf": "PE",
        "motorista": "Joao",
        "produtos": [
            {"codigo": "A1", "produto": "Arroz 5kg", "quantidade": 10, "tipo": "un", "motivo": "Avaria", "estado": "Aberto"},
            {"codigo": "F2", "produto": "Feijao 1kg", "quantidade": "2,5", "motivo": "Vencido"},
        ],
    }
    payload.update(overrides)
    return payload


class DevolucoesApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="devolucoes_api")
        temp_config = self._temp_db.make_config(
            Config,
            TESTING=True,
            AUTH_ENABLED=False,
            RATE_LIMIT_ENABLED=False,
            NOW_PROVIDER=_fixed_now,
        )
        self.app = create_app(temp_config)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _create(self, **overrides) -> dict:
        response = self.client.post("/api/devolucoes", json=_payload(**overrides))
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        return response.get_json()["devolucao"]

    def test_create_and_list(self) -> None:
        created = self._create()
        self.assertEqual(created["status"], "pendente")
        self.assertEqual(created["created_at"], "2024-03-15T12:00:00Z")
        self.assertEqual([item["quantidade"] for item in created["produtos"]], [10.0, 2.5])

        listing = self.client.get("/api/devolucoes")
        self.assertEqual(listing.status_code, 200)
        payload = listing.get_json()
        self.assertEqual(payload["total"], 1)
        self.assertEqual(payload["total_quantity"], 12.5)
        self.assertEqual(len(payload["rows"]), 2)
        self.assertEqual(payload["items"][0]["cliente"], "Mercado Sol")

    def test_create_validation_errors(self) -> None:
        cases = [
            (_payload(produtos=[]), "items_required"),
            (_payload(cliente="  "), "client_required"),
            (_payload(data="12/03/2024"), "date_invalid"),
            (_payload(produtos=[{"produto": "", "quantidade": 1}]), "product_required"),
            (_payload(produtos=[{"produto": "Arroz", "quantidade": -1}]), "quantity_invalid"),
            (_payload(status="arquivado"), "status_not_editable"),
            (_payload(status="finalizado"), "status_not_editable"),
        ]
        for body, code in cases:
            response = self.client.post("/api/devolucoes", json=body)
            self.assertEqual(response.status_code, 400, msg=code)
            payload = response.get_json()
            self.assertEqual(payload["error"], code)
            self.assertEqual(payload["message"], error_message(code))
            self.assertTrue(payload["request_id"])

    def test_filters_and_period(self) -> None:
        self._create()
        self._create(data="2024-02-10", cliente="Padaria Lua")

        by_client = self.client.get("/api/devolucoes?cliente=Padaria%20Lua").get_json()
        self.assertEqual(by_client["total"], 1)
        self.assertEqual(by_client["filters"]["active"], ["client"])

        current_month = self.client.get("/api/devolucoes?periodo=mes_atual").get_json()
        self.assertEqual([item["cliente"] for item in current_month["items"]], ["Mercado Sol"])
        self.assertEqual(current_month["filters"]["window"], {"start": "2024-03-01", "end": "2024-03-31"})

        by_product = self.client.get("/api/devolucoes?produto=Feijao%201kg").get_json()
        self.assertEqual(by_product["total"], 2)

    def test_update_records_history(self) -> None:
        created = self._create()
        response = self.client.patch(
            f"/api/devolucoes/{created['id']}",
            json={"cliente": "Mercado Sol II", "observacao": "Reentrega"},
        )
        self.assertEqual(response.status_code, 200, msg=response.get_data(as_text=True))
        updated = response.get_json()["devolucao"]
        self.assertEqual(updated["cliente"], "Mercado Sol II")
        history = updated["editHistory"]
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["alteracao"], "Campos alterados: cliente, observacao")
        self.assertEqual(history[0]["data"], "2024-03-15T12:00:00Z")

        unchanged = self.client.patch(f"/api/devolucoes/{created['id']}", json={"cliente": "Mercado Sol II"})
        self.assertEqual(unchanged.status_code, 400)
        self.assertEqual(unchanged.get_json()["error"], "no_changes")

    def test_update_replaces_items(self) -> None:
        created = self._create()
        response = self.client.patch(
            f"/api/devolucoes/{created['id']}",
            json={"produtos": [{"produto": "Oleo", "quantidade": 3}]},
        )
        self.assertEqual(response.status_code, 200)
        updated = response.get_json()["devolucao"]
        self.assertEqual([item["produto"] for item in updated["produtos"]], ["Oleo"])
        self.assertEqual(updated["editHistory"][-1]["alteracao"], "Produtos atualizados (1 itens)")

    def test_status_toggle(self) -> None:
        created = self._create()
        first = self.client.post(f"/api/devolucoes/{created['id']}/status")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["devolucao"]["status"], "revisado")

        second = self.client.post(f"/api/devolucoes/{created['id']}/status", json={"status": "pendente"})
        self.assertEqual(second.get_json()["devolucao"]["status"], "pendente")
        self.assertEqual(len(second.get_json()["devolucao"]["editHistory"]), 2)

    def test_status_in_update_payload_is_rejected(self) -> None:
        created = self._create()
        response = self.client.patch(f"/api/devolucoes/{created['id']}", json={"status": "revisado", "observacao": "ok"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "status_not_editable")

        stored = self.client.get("/api/devolucoes").get_json()["items"][0]
        self.assertEqual(stored["status"], "pendente")
        self.assertEqual(stored["observacao"], "")
        self.assertEqual(stored["editHistory"], [])

    def test_finalized_status_is_locked(self) -> None:
        with self.app.app_context():
            db = get_db()
            with transaction(db):
                return_id = ReturnRepository(owner_id=self.app.config["DEFAULT_OWNER_ID"]).insert(
                    db,
                    ReturnRecord(
                        id=None,
                        user_id=self.app.config["DEFAULT_OWNER_ID"],
                        date="2024-03-12",
                        client="Mercado Sol",
                        status="finalizado",
                        items=(LineItem(product="Arroz", quantity=1),),
                    ),
                )
            close_db()
        response = self.client.post(f"/api/devolucoes/{return_id}/status")
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "status_transition_invalid")
        self.assertEqual(payload["status"], "finalizado")

    def test_multipart_create_stores_attachments(self) -> None:
        response = self.client.post(
            "/api/devolucoes",
            data={
                "payload": json.dumps(_payload()),
                "anexos": (io.BytesIO(b"fake-image-bytes"), "foto avaria.jpg"),
            },
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        urls = response.get_json()["devolucao"]["anexos"]
        self.assertEqual(len(urls), 1)
        self.assertTrue(urls[0].startswith("/anexos/"))
        self.assertTrue(urls[0].endswith("foto_avaria.jpg"))

        served = self.client.get(urls[0])
        try:
            self.assertEqual(served.status_code, 200)
            self.assertEqual(served.data, b"fake-image-bytes")
        finally:
            served.close()

    def test_multipart_with_invalid_payload(self) -> None:
        response = self.client.post(
            "/api/devolucoes",
            data={"payload": "{nao-json"},
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "payload_invalid")

    def test_delete_and_batch_delete(self) -> None:
        first = self._create()
        second = self._create(cliente="Padaria Lua")
        third = self._create(cliente="Mercado Mar")

        deleted = self.client.delete(f"/api/devolucoes/{first['id']}")
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.delete(f"/api/devolucoes/{first['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "return_not_found")

        batch = self.client.post("/api/devolucoes/excluir", json={"ids": [second["id"], third["id"], 9999]})
        self.assertEqual(batch.status_code, 200)
        self.assertEqual(batch.get_json()["deleted"], 2)
        self.assertEqual(self.client.get("/api/devolucoes").get_json()["total"], 0)

        empty = self.client.post("/api/devolucoes/excluir", json={"ids": []})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["error"], "ids_required")

    def test_dashboard(self) -> None:
        self._create()
        self._create(data="2024-01-20", cliente="Padaria Lua", produtos=[{"produto": "Arroz 5kg", "quantidade": 3}])

        response = self.client.get("/api/devolucoes/dashboard?agrupamento=mensal")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["granularity"], "monthly")
        self.assertEqual(payload["charts"]["top_products"][0], {"name": "Arroz 5kg", "value": 13.0})
        self.assertEqual(
            [(point["label"], point["count"]) for point in payload["charts"]["evolution"]],
            [("Jan", 1), ("Fev", 0), ("Mar", 1)],
        )

        invalid = self.client.get("/api/devolucoes/dashboard?granularity=hourly")
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "granularity_invalid")

    def test_reports_and_digests(self) -> None:
        self._create()

        report = self.client.get("/api/devolucoes/relatorios/cliente_produto_motivo")
        self.assertEqual(report.status_code, 200)
        self.assertEqual(report.get_json()["data"][0]["name"], "Mercado Sol")

        unknown = self.client.get("/api/devolucoes/relatorios/pizza")
        self.assertEqual(unknown.status_code, 400)
        self.assertIn("planilha", unknown.get_json()["available"])

        digest = self.client.get("/api/devolucoes/resumos/geral").get_json()
        self.assertIn("*Total de Registros:* 1", digest["text"])
        self.assertTrue(digest["share_url"].startswith("https://wa.me/?text="))

    def test_message_and_filter_options(self) -> None:
        created = self._create()

        message = self.client.get(f"/api/devolucoes/{created['id']}/mensagem")
        self.assertEqual(message.status_code, 200)
        self.assertIn("*Cliente:* Mercado Sol", message.get_json()["text"])

        self.assertEqual(self.client.get("/api/devolucoes/9999/mensagem").status_code, 404)

        options = self.client.get("/api/devolucoes/filtros").get_json()["options"]
        self.assertEqual(options["product"], ["Arroz 5kg", "Feijao 1kg"])


if __name__ == "__main__":
    unittest.main()
