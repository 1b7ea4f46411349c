import io
import unittest
from unittest.mock import patch

from painel import create_app
from painel.config import Config
from painel.db import close_db
from painel.errors import AppError, AuthenticationError, NotFoundError, RateLimitError, StorageError, ValidationError
from painel.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        temp_config = self._temp_db.make_config(
            Config,
            TESTING=True,
            AUTH_ENABLED=False,
            RATE_LIMIT_ENABLED=False,
            PROPAGATE_EXCEPTIONS=False,
        )
        self.app = create_app(temp_config)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_not_found_uses_message_catalog(self) -> None:
        response = self.client.patch("/api/devolucoes/404", json={"cliente": "Sol"})
        self.assertEqual(response.status_code, 404)
        payload = response.get_json()
        self.assertEqual(payload["error"], "return_not_found")
        self.assertEqual(payload["message"], error_message("return_not_found"))
        self.assertEqual(payload["request_id"], response.headers.get("X-Request-Id"))

    def test_incoming_request_id_is_echoed(self) -> None:
        response = self.client.get("/api/devolucoes/999/mensagem", headers={"X-Request-Id": "req-fixo-1"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.headers.get("X-Request-Id"), "req-fixo-1")
        self.assertEqual(response.get_json()["request_id"], "req-fixo-1")

    def test_non_object_json_is_rejected(self) -> None:
        response = self.client.post("/api/devolucoes", json=["nao", "objeto"])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "payload_invalid")

    def test_storage_failure_maps_to_503(self) -> None:
        with patch(
            "painel.infrastructure.attachment_storage.LocalAttachmentStorage.upload",
            side_effect=StorageError(code="attachment_upload_failed", message_key="attachment_upload_failed"),
        ):
            response = self.client.post(
                "/api/devolucoes",
                data={
                    "payload": '{"data": "2024-03-12", "cliente": "Sol", "produtos": [{"produto": "A", "quantidade": 1}]}',
                    "anexos": (io.BytesIO(b"x"), "a.jpg"),
                },
                content_type="multipart/form-data",
            )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.get_json()["message"], error_message("attachment_upload_failed"))
        self.assertEqual(self.client.get("/api/devolucoes").get_json()["total"], 0)

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        with patch(
            "painel.application.reports_service.ReportsService.return_history",
            side_effect=RuntimeError("stack_secret_token"),
        ):
            response = self.client.get("/api/devolucoes")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)

    def test_unknown_route_stays_a_plain_404(self) -> None:
        response = self.client.get("/api/nao-existe")
        self.assertEqual(response.status_code, 404)


class ErrorCatalogTest(unittest.TestCase):
    def test_each_error_has_status_and_catalog_message(self) -> None:
        expected = {
            AppError: (500, "unexpected_error"),
            ValidationError: (400, "payload_invalid"),
            AuthenticationError: (401, "auth_required"),
            NotFoundError: (404, "record_not_found"),
            StorageError: (503, "storage_unavailable"),
        }
        for error_class, (status, code) in expected.items():
            error = error_class()
            self.assertEqual((error.http_status, error.code), (status, code))
            self.assertEqual(error.user_message(), error_message(error.message_key))
            self.assertEqual(error.server_fault, status >= 500)

    def test_payload_cannot_override_error_fields(self) -> None:
        error = ValidationError(
            code="client_required",
            message_key="client_required",
            payload={"error": "x", "field": "cliente"},
        )
        body = error.to_response_payload("req-1")
        self.assertEqual(body["error"], "client_required")
        self.assertEqual(body["field"], "cliente")
        self.assertEqual(body["request_id"], "req-1")

    def test_rate_limit_error_carries_retry_after(self) -> None:
        body = RateLimitError(12).to_response_payload("req-2")
        self.assertEqual(body["error"], "rate_limit_exceeded")
        self.assertEqual(body["retry_after"], 12)
        self.assertEqual(body["message"], error_message("rate_limited"))


if __name__ == "__main__":
    unittest.main()
