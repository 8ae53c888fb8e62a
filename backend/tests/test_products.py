"""
Product API tests.

Verifies:
- Create validates input and enforces unique SKU (409)
- Initial stock is recorded as an audit row
- Quantity edits through PUT are audited
- Staff may only delete empty products
"""

from decimal import Decimal

from inventory_api.models import InventoryAudit, Notification, Product


def _payload(**overrides):
    payload = {
        "sku": "widget-01",
        "name": "Blue Widget",
        "category": "Hardware",
        "price": "19.99",
        "quantity": 40,
        "reorder_level": 5,
        "location": "Aisle 3",
    }
    payload.update(overrides)
    return payload


class TestCreateProduct:

    def test_create_normalizes_sku_and_audits_initial_stock(self, client, staff_headers, staff_user, db_session):
        resp = client.post("/api/products", json=_payload(), headers=staff_headers)
        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["sku"] == "WIDGET-01"
        assert data["price"] == 19.99
        assert data["status"]["stock_level"] == "normal"

        audits = db_session.query(InventoryAudit).filter_by(product_id=data["id"]).all()
        assert len(audits) == 1
        assert audits[0].old_quantity == 0
        assert audits[0].new_quantity == 40
        assert audits[0].operation_type == "purchase"
        assert audits[0].reason == "Initial product creation"
        assert audits[0].user_id == staff_user.id

    def test_duplicate_sku_conflict(self, client, staff_headers, db_session):
        assert client.post("/api/products", json=_payload(), headers=staff_headers).status_code == 201
        resp = client.post("/api/products", json=_payload(name="Other Widget"), headers=staff_headers)
        assert resp.status_code == 409
        assert resp.json["error"]["type"] == "ConflictError"
        assert db_session.query(Product).count() == 1

    def test_missing_required_fields(self, client, staff_headers):
        resp = client.post("/api/products", json={"sku": "ABC-1"}, headers=staff_headers)
        assert resp.status_code == 400
        assert "category" in resp.json["message"]
        assert "price" in resp.json["message"]

    def test_unknown_field_rejected(self, client, staff_headers):
        resp = client.post("/api/products", json=_payload(supplier="Acme"), headers=staff_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Field not allowed: supplier"

    def test_negative_quantity_rejected(self, client, staff_headers, db_session):
        resp = client.post("/api/products", json=_payload(quantity=-1), headers=staff_headers)
        assert resp.status_code == 400
        assert db_session.query(Product).count() == 0

    def test_zero_stock_product_raises_out_of_stock_alert(self, client, staff_headers, db_session):
        resp = client.post("/api/products", json=_payload(quantity=0), headers=staff_headers)
        assert resp.status_code == 201
        alerts = db_session.query(Notification).filter_by(product_id=resp.json["data"]["id"]).all()
        assert [n.type for n in alerts] == ["out_of_stock"]
        assert db_session.query(InventoryAudit).count() == 0


class TestReadProducts:

    def test_list_is_paged(self, client, staff_headers, make_product):
        for _ in range(3):
            make_product()
        resp = client.get("/api/products?take=2&page=1", headers=staff_headers)
        assert resp.status_code == 200
        assert len(resp.json["data"]) == 2
        meta = resp.json["meta"]
        assert meta["total_pages"] == 2
        assert meta["has_next_page"] is True
        assert meta["has_previous_page"] is False

    def test_low_stock_filter(self, client, staff_headers, make_product):
        make_product(quantity=50)
        low = make_product(quantity=3)
        resp = client.get("/api/products?low_stock=true", headers=staff_headers)
        assert [p["id"] for p in resp.json["data"]] == [low.id]

    def test_get_missing_product(self, client, staff_headers):
        resp = client.get("/api/products/9999", headers=staff_headers)
        assert resp.status_code == 404
        assert resp.json["message"] == "Product not found"

    def test_search_requires_two_characters(self, client, staff_headers):
        resp = client.get("/api/products/search?q=a", headers=staff_headers)
        assert resp.status_code == 400

    def test_search_matches_name(self, client, staff_headers, make_product):
        make_product(name="Cordless Drill")
        make_product(name="Hammer")
        resp = client.get("/api/products/search?q=drill", headers=staff_headers)
        assert resp.json["data"]["count"] == 1
        assert resp.json["data"]["results"][0]["name"] == "Cordless Drill"

    def test_stats(self, client, staff_headers, make_product):
        make_product(quantity=10, price=Decimal("2.50"), category="Tools")
        make_product(quantity=0, category="Paint")
        resp = client.get("/api/products/stats", headers=staff_headers)
        stats = resp.json["data"]
        assert stats["total_products"] == 2
        assert stats["total_quantity"] == 10
        assert stats["total_value"] == 25.0
        assert stats["out_of_stock_count"] == 1
        assert stats["categories_count"] == 2


class TestUpdateProduct:

    def test_quantity_change_is_audited_with_reason(self, client, staff_headers, make_product, db_session):
        product = make_product(quantity=20)
        resp = client.put(
            f"/api/products/{product.id}",
            json={"quantity": 25, "reason": "Found extra box"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["quantity_changed"] is True

        audit = (
            db_session.query(InventoryAudit)
            .filter_by(product_id=product.id, operation_type="manual_adjustment")
            .one()
        )
        assert (audit.old_quantity, audit.new_quantity) == (20, 25)
        assert audit.reason == "Found extra box"

    def test_field_edit_without_quantity_writes_no_audit(self, client, staff_headers, make_product, db_session):
        product = make_product()
        before = db_session.query(InventoryAudit).count()
        resp = client.put(f"/api/products/{product.id}", json={"name": "Renamed"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["name"] == "Renamed"
        assert resp.json["data"]["quantity_changed"] is False
        assert db_session.query(InventoryAudit).count() == before

    def test_sku_taken_by_other_product(self, client, staff_headers, make_product):
        first = make_product()
        second = make_product()
        resp = client.put(f"/api/products/{second.id}", json={"sku": first.sku}, headers=staff_headers)
        assert resp.status_code == 409

    def test_empty_update_rejected(self, client, staff_headers, make_product):
        product = make_product()
        resp = client.put(f"/api/products/{product.id}", json={"reason": "nothing"}, headers=staff_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "No valid fields provided for update"


class TestDeleteProduct:

    def test_staff_cannot_delete_stocked_product(self, client, staff_headers, make_product, db_session):
        product = make_product(quantity=5)
        resp = client.delete(f"/api/products/{product.id}", headers=staff_headers)
        assert resp.status_code == 403
        assert db_session.get(Product, product.id) is not None

    def test_staff_can_delete_empty_product(self, client, staff_headers, make_product, db_session):
        product = make_product(quantity=0)
        product_id = product.id
        resp = client.delete(f"/api/products/{product_id}", headers=staff_headers)
        assert resp.status_code == 200
        assert db_session.get(Product, product_id) is None

    def test_manager_delete_cascades(self, client, manager_headers, make_product, db_session):
        product = make_product(quantity=5)
        product_id, sku = product.id, product.sku
        resp = client.delete(f"/api/products/{product_id}", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["sku"] == sku
        assert db_session.query(InventoryAudit).filter_by(product_id=product_id).count() == 0
        assert db_session.query(Notification).filter_by(product_id=product_id).count() == 0
