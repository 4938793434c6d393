"""
Health endpoint, request middleware and error envelope tests.
"""

from types import SimpleNamespace

from taskflow.models import db


class TestHealth:
    def test_healthy(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert "latency_ms" in body["checks"]["database"]

    def test_no_token_needed(self, client):
        res = client.get("/api/v1/health", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 200

    def test_database_down(self, client, monkeypatch):
        from taskflow.blueprints import health_bp

        def _fail(*args, **kwargs):
            raise RuntimeError("connection refused")

        broken_db = SimpleNamespace(
            text=db.text,
            session=SimpleNamespace(execute=_fail, rollback=lambda: None),
        )
        monkeypatch.setattr(health_bp, "db", broken_db)
        res = client.get("/api/v1/health")
        assert res.status_code == 503
        body = res.get_json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"]["status"] == "error"


class TestRequestMiddleware:
    def test_request_id_is_echoed(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_id_is_generated(self, client):
        res = client.get("/api/v1/health")
        assert len(res.headers["X-Request-ID"]) == 12


class TestErrorEnvelope:
    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        body = res.get_json()
        assert body["success"] is False
        assert body["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client):
        res = client.delete("/api/v1/health")
        assert res.status_code == 405
        assert res.get_json()["success"] is False

    def test_unexpected_error_is_masked(self, client, member, auth_headers, monkeypatch):
        from taskflow.services import task_service

        def _explode(*args, **kwargs):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(task_service, "list_tasks", _explode)
        res = client.get("/api/v1/tasks", headers=auth_headers(member))
        assert res.status_code == 500
        body = res.get_json()
        assert body["code"] == "ERR_INTERNAL"
        assert "secret" not in body["error"]
