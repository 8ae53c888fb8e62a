"""
Audit log tests.

Verifies:
- Filters and pagination on the audit listing
- Product history is newest first with increase/decrease counts
- Staff can only read their own user history
- Retention purge removes only old rows
"""

from datetime import timedelta

import pytest

from inventory_api.errors import ValidationError
from inventory_api.models import InventoryAudit
from inventory_api.services import audit_service, stock_service
from inventory_api.time_utils import utcnow


@pytest.fixture
def history(make_product, staff_user, manager_user):
    """One product with four audit rows: create(+20), -5, +10, -1."""
    product = make_product(quantity=20)
    stock_service.adjust_stock(product_id=product.id, new_quantity=15, user_id=staff_user.id, reason="Sold",
                               operation_type="sale")
    stock_service.adjust_stock(product_id=product.id, new_quantity=25, user_id=manager_user.id, reason="Delivery",
                               operation_type="purchase")
    stock_service.adjust_stock(product_id=product.id, new_quantity=24, user_id=staff_user.id, reason="Broken",
                               operation_type="damage")
    return product


class TestAuditListing:

    def test_filter_by_operation_type(self, client, staff_headers, history):
        resp = client.get("/api/audit?operation_type=damage", headers=staff_headers)
        assert resp.status_code == 200
        audits = resp.json["data"]["audits"]
        assert len(audits) == 1
        assert audits[0]["quantity_change"] == -1
        assert resp.json["data"]["filters"]["operation_type"] == "damage"

    def test_pagination(self, client, staff_headers, history):
        resp = client.get("/api/audit?limit=3&offset=0", headers=staff_headers)
        pagination = resp.json["data"]["pagination"]
        assert pagination == {"total": 4, "limit": 3, "offset": 0, "pages": 2}
        assert len(resp.json["data"]["audits"]) == 3

    def test_invalid_operation_type(self, client, staff_headers, history):
        resp = client.get("/api/audit?operation_type=theft", headers=staff_headers)
        assert resp.status_code == 400

    def test_invalid_date(self, client, staff_headers):
        resp = client.get("/api/audit?date_from=yesterday", headers=staff_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Invalid date_from format. Use YYYY-MM-DD"

    def test_date_range_includes_today(self, client, staff_headers, history):
        today = utcnow().date().isoformat()
        resp = client.get(f"/api/audit/date-range?date_from={today}&date_to={today}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["summary"]["total_changes"] == 4

    def test_date_range_requires_both_ends(self, client, staff_headers):
        resp = client.get("/api/audit/date-range?date_from=2026-01-01", headers=staff_headers)
        assert resp.status_code == 400


class TestHistories:

    def test_product_history(self, client, staff_headers, history):
        resp = client.get(f"/api/audit/product/{history.id}", headers=staff_headers)
        data = resp.json["data"]
        assert data["product"]["quantity"] == 24
        assert data["summary"]["total_changes"] == 4
        assert data["summary"]["increases"] == 2
        assert data["summary"]["decreases"] == 2
        newest = data["history"][0]
        assert newest["change"] == {"from": 25, "to": 24, "difference": -1, "type": "decrease"}
        assert newest["user"] == "staff (staff)"

    def test_staff_reads_own_history(self, client, staff_headers, staff_user, history):
        resp = client.get(f"/api/audit/user/{staff_user.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["summary"]["total_changes"] == 2

    def test_staff_cannot_read_other_history(self, client, staff_headers, manager_user, history):
        resp = client.get(f"/api/audit/user/{manager_user.id}", headers=staff_headers)
        assert resp.status_code == 403

    def test_manager_reads_any_history(self, client, manager_headers, staff_user, history):
        resp = client.get(f"/api/audit/user/{staff_user.id}", headers=manager_headers)
        assert resp.status_code == 200

    def test_single_record(self, client, staff_headers, history, db_session):
        audit = db_session.query(InventoryAudit).filter_by(operation_type="purchase", reason="Delivery").one()
        resp = client.get(f"/api/audit/{audit.id}", headers=staff_headers)
        assert resp.json["data"]["reason"] == "Delivery"
        assert resp.json["data"]["user"] == "manager (manager)"


class TestAggregates:

    def test_operation_stats(self, history):
        stats = {row["operation_type"]: row for row in audit_service.stats_by_operation_type()}
        assert stats["purchase"]["total_operations"] == 2
        assert stats["sale"]["total_operations"] == 1

    def test_daily_summary_counts_today(self, history):
        days = audit_service.daily_summary(7)
        assert len(days) == 1
        assert days[0]["total_changes"] == 4
        assert days[0]["users_involved"] == 2

    def test_daily_summary_bounds(self, db_session):
        with pytest.raises(ValidationError):
            audit_service.daily_summary(0)


class TestRetention:

    def test_purge_removes_only_old_rows(self, db_session, history, staff_user):
        db_session.add(InventoryAudit(
            product_id=history.id,
            user_id=staff_user.id,
            old_quantity=1,
            new_quantity=2,
            reason="Ancient recount",
            operation_type="correction",
            created_at=utcnow() - timedelta(days=400),
        ))
        db_session.commit()

        assert audit_service.delete_old_records(days_old=365) == 1
        assert db_session.query(InventoryAudit).count() == 4

    def test_purge_minimum_retention(self, db_session):
        with pytest.raises(ValidationError):
            audit_service.delete_old_records(days_old=10)

    def test_cleanup_route(self, client, manager_headers, history):
        resp = client.delete("/api/audit/cleanup?days_old=90", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["data"] == {"deleted_count": 0, "days_old": 90}
