"""
Notification tests.

Verifies:
- One unread low-stock alert per product, however many adjustments follow
- A new alert is raised once the previous one has been read
- Read / unread bookkeeping through the API
- Cleanup only removes old READ notifications
"""

from datetime import timedelta

import pytest

from inventory_api.errors import ConflictError, ValidationError
from inventory_api.models import Notification
from inventory_api.services import notification_service, stock_service
from inventory_api.time_utils import utcnow


def _alerts(db_session, product_id, unread_only=False):
    query = db_session.query(Notification).filter(
        Notification.product_id == product_id,
        Notification.type.in_(("low_stock", "out_of_stock")),
    )
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.all()


class TestLowStockDeduplication:

    def test_repeated_low_adjustments_create_one_alert(self, db_session, make_product, staff_user):
        product = make_product(quantity=40, reorder_level=10)

        first = stock_service.adjust_stock(product_id=product.id, new_quantity=8, user_id=staff_user.id, reason="Sold")
        second = stock_service.adjust_stock(product_id=product.id, new_quantity=5, user_id=staff_user.id, reason="Sold")
        third = stock_service.adjust_stock(product_id=product.id, new_quantity=0, user_id=staff_user.id, reason="Sold")

        assert first["status"]["notification_created"] is True
        assert second["status"]["notification_created"] is False
        assert third["status"]["notification_created"] is False
        alerts = _alerts(db_session, product.id)
        assert len(alerts) == 1
        assert alerts[0].type == "low_stock"
        assert alerts[0].message == "Product quantity (8) is below reorder level (10)"

    def test_new_alert_after_previous_is_read(self, db_session, make_product, staff_user):
        product = make_product(quantity=40, reorder_level=10)
        stock_service.adjust_stock(product_id=product.id, new_quantity=8, user_id=staff_user.id, reason="Sold")
        notification_service.mark_as_read(_alerts(db_session, product.id)[0].id)

        result = stock_service.adjust_stock(product_id=product.id, new_quantity=0, user_id=staff_user.id, reason="Sold")

        assert result["status"]["notification_created"] is True
        unread = _alerts(db_session, product.id, unread_only=True)
        assert [n.type for n in unread] == ["out_of_stock"]
        assert len(_alerts(db_session, product.id)) == 2

    def test_healthy_stock_creates_nothing(self, db_session, make_product, staff_user):
        product = make_product(quantity=40, reorder_level=10)
        stock_service.adjust_stock(product_id=product.id, new_quantity=11, user_id=staff_user.id, reason="Sold")
        assert _alerts(db_session, product.id) == []

    def test_reorder_required_is_not_deduplicated(self, db_session, make_product):
        product = make_product()
        for _ in range(2):
            notification_service.create_notification(
                product_id=product.id,
                message="Supplier lead time is increasing",
                notification_type="reorder_required",
            )
        assert db_session.query(Notification).filter_by(type="reorder_required").count() == 2

    def test_manual_stock_alert_respects_unread_alert(self, db_session, make_product):
        product = make_product(quantity=3)  # alerted on creation
        with pytest.raises(ConflictError):
            notification_service.create_notification(
                product_id=product.id,
                message="Shelf count looks lower than recorded",
                notification_type="low_stock",
            )
        assert len(_alerts(db_session, product.id)) == 1

    def test_check_all_low_stock_skips_products_with_unread_alert(self, db_session, make_product):
        make_product(quantity=2)  # alerted on creation
        assert notification_service.check_all_low_stock() == 0


class TestNotificationRoutes:

    def test_list_includes_summary(self, client, staff_headers, make_product):
        make_product(quantity=0)
        make_product(quantity=3)
        resp = client.get("/api/notifications", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["summary"] == {"total": 2, "unread": 2, "critical": 1}
        assert resp.json["meta"]["item_count"] == 2

    def test_critical_summary_counts_beyond_current_page(self, client, staff_headers, make_product):
        make_product(quantity=0)
        make_product(quantity=3)
        resp = client.get("/api/notifications?take=1&order=ASC", headers=staff_headers)
        assert len(resp.json["data"]) == 1
        assert resp.json["data"][0]["type"] == "out_of_stock"
        assert resp.json["summary"]["critical"] == 1

        resp = client.get("/api/notifications?take=1&order=DESC", headers=staff_headers)
        assert resp.json["data"][0]["type"] == "low_stock"
        assert resp.json["summary"]["critical"] == 1

    def test_invalid_type_filter(self, client, staff_headers):
        resp = client.get("/api/notifications?type=bogus", headers=staff_headers)
        assert resp.status_code == 400

    def test_mark_read_flow(self, client, staff_headers, make_product):
        make_product(quantity=0)
        make_product(quantity=3)
        ids = [n["id"] for n in client.get("/api/notifications", headers=staff_headers).json["data"]]

        resp = client.put(f"/api/notifications/{ids[0]}/read", headers=staff_headers)
        assert resp.json["data"]["is_read"] is True
        count = client.get("/api/notifications/unread-count", headers=staff_headers)
        assert count.json["data"]["unread_count"] == 1

        resp = client.put("/api/notifications/mark-read", json={"ids": ids}, headers=staff_headers)
        assert resp.json["data"]["updated_count"] == 1

    def test_mark_read_requires_ids(self, client, staff_headers):
        resp = client.put("/api/notifications/mark-read", json={"ids": []}, headers=staff_headers)
        assert resp.status_code == 400

    def test_manager_creates_notification(self, client, manager_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/notifications",
            json={"product_id": product.id, "message": "Reorder before the holiday rush", "type": "reorder_required"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["formatted_message"].startswith(f"[{product.sku}]")

    def test_short_message_rejected(self, client, manager_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/notifications",
            json={"product_id": product.id, "message": "short", "type": "reorder_required"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_missing_notification(self, client, staff_headers):
        resp = client.get("/api/notifications/777", headers=staff_headers)
        assert resp.status_code == 404
        assert resp.json["message"] == "Notification not found"


class TestCleanup:

    def test_only_old_read_notifications_removed(self, db_session, make_product):
        product = make_product()
        old = utcnow() - timedelta(days=45)
        db_session.add_all([
            Notification(product_id=product.id, message="old read alert", type="low_stock", is_read=True, created_at=old),
            Notification(product_id=product.id, message="old unread alert", type="low_stock", is_read=False, created_at=old),
            Notification(product_id=product.id, message="fresh read alert", type="low_stock", is_read=True),
        ])
        db_session.commit()

        assert notification_service.delete_old_read(days_old=30) == 1
        remaining = {n.message for n in db_session.query(Notification).all()}
        assert remaining == {"old unread alert", "fresh read alert"}

    def test_minimum_age_enforced(self, db_session):
        with pytest.raises(ValidationError):
            notification_service.delete_old_read(days_old=3)
