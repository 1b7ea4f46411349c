import unittest

from painel import create_app
from painel.config import Config
from painel.db import close_db
from painel.observability import reset_metrics_for_tests
from painel.security import reset_rate_limiter_for_tests
from painel.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox


class SecurityHardeningTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="security_hardening")
        temp_config = self._temp_db.make_config(
            Config,
            TESTING=False,
            DB_AUTO_INIT=True,
            AUTH_ENABLED=False,
            RATE_LIMIT_ENABLED=True,
            RATE_LIMIT_WINDOW_SECONDS=60,
            RATE_LIMIT_MAX_REQUESTS=300,
        )
        self.app = create_app(temp_config)
        self.client = self.app.test_client()
        reset_rate_limiter_for_tests()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_rate_limiter_for_tests()
        reset_metrics_for_tests()

    def test_rate_limit_blocks_excessive_api_calls(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 2

        first = self.client.get("/api/unknown")
        second = self.client.get("/api/unknown")
        third = self.client.get("/api/unknown")

        self.assertEqual(first.status_code, 404)
        self.assertEqual(second.status_code, 404)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limited"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 1)

    def test_health_is_never_rate_limited(self) -> None:
        self.app.config["RATE_LIMIT_MAX_REQUESTS"] = 1
        for _ in range(3):
            self.assertEqual(self.client.get("/health").status_code, 200)

    def test_health_exposes_http_metrics(self) -> None:
        self.client.get("/api/unknown")

        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json() or {}
        self.assertEqual(payload.get("status"), "ok")
        self.assertEqual(payload.get("db"), "sqlite")
        self.assertTrue(payload.get("schema_ready"))
        http_metrics = (payload.get("metrics") or {}).get("http") or {}
        self.assertGreaterEqual(int(http_metrics.get("requests_total", 0)), 1)
        self.assertGreaterEqual(int(http_metrics.get("errors_total", 0)), 1)

    def test_security_headers_present(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertEqual(response.headers.get("Referrer-Policy"), "no-referrer")
        self.assertEqual(
            response.headers.get("Content-Security-Policy"),
            "default-src 'none'; frame-ancestors 'none'",
        )
        self.assertIsNone(response.headers.get("Cache-Control"))
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())
        self.assertTrue((response.headers.get("X-Response-Time-Ms") or "").strip())

    def test_api_responses_are_not_cached(self) -> None:
        response = self.client.get("/api/devolucoes")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("Cache-Control"), "no-store")

    def test_login_attempts_have_their_own_budget(self) -> None:
        self.app.config["LOGIN_RATE_LIMIT_ATTEMPTS"] = 2
        credentials = {"email": "ana@demo.com", "senha": "errada"}

        statuses = [self.client.post("/api/auth/login", json=credentials).status_code for _ in range(3)]

        self.assertEqual(statuses, [401, 401, 429])
        other_user = self.client.post("/api/auth/login", json={"email": "bia@demo.com", "senha": "x"})
        self.assertEqual(other_user.status_code, 401)
        self.assertEqual(self.client.get("/api/devolucoes").status_code, 200)


if __name__ == "__main__":
    unittest.main()
