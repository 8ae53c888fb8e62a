"""
Application-level tests: response envelope, error handlers, health, CORS, CLI.
"""

from inventory_api.models import Notification, Product, User


class TestEnvelope:

    def test_success_shape(self, client, staff_headers):
        resp = client.get("/api/products/stats", headers=staff_headers)
        assert resp.status_code == 200
        assert set(resp.json) == {"success", "message", "data"}
        assert resp.json["success"] is True

    def test_error_shape(self, client, staff_headers):
        resp = client.get("/api/products/12345", headers=staff_headers)
        body = resp.json
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]["type"] == "NotFoundError"
        assert body["error"]["path"] == "/api/products/12345"
        assert body["error"]["method"] == "GET"
        assert body["error"]["timestamp"].endswith("Z")

    def test_unknown_route(self, client, db_session):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.json["message"] == "Route GET /api/does-not-exist not found"

    def test_non_object_json_rejected(self, client, staff_headers):
        resp = client.post("/api/products", json=[1, 2, 3], headers=staff_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Invalid JSON payload"


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "ok"
        assert resp.json["database"]["status"] == "healthy"


class TestCors:

    def test_allowed_origin_echoed(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_other_origin_ignored(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestCli:

    def test_seed_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        first = runner.invoke(args=["system", "seed", "--password", "Stockroom42"])
        assert "PASS Seed complete." in first.output
        assert db_session.query(User).filter_by(role="manager").count() == 1
        assert db_session.query(Product).count() == 4
        assert db_session.query(Notification).filter_by(type="out_of_stock").count() == 1

        second = runner.invoke(args=["system", "seed", "--password", "Stockroom42"])
        assert "SKIP Product LAPTOP-001 already exists" in second.output
        assert db_session.query(Product).count() == 4

    def test_seed_rejects_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "seed", "--password", "password"])
        assert "FAIL Password validation failed" in result.output
        assert db_session.query(User).count() == 0

    def test_create_manager(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--username", "owner",
            "--email", "owner@shop.example",
            "--password", "Stockroom42",
            "--role", "manager",
        ])
        assert "PASS Created user: owner" in result.output
        assert db_session.query(User).filter_by(username="owner").one().role == "manager"

    def test_check_low(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "check-low"])
        assert "0 notification(s) created" in result.output
