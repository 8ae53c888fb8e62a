"""
Bulk CSV import / export tests.

Verifies:
- Upload validates headers and reports sample rows
- Import creates and (optionally) updates products with audit rows
- validate_only and skip_errors=false write nothing
- Exports are downloadable until they expire
"""

import io
import os
import time

from openpyxl import load_workbook

from inventory_api.models import InventoryAudit, Product
from inventory_api.services import maintenance_service
from inventory_api.services.file_storage import EXPORTS_DIR, storage_dir


CSV_HEADER = "sku,name,category,price,quantity,reorder_level,location\n"


def _upload(client, headers, body, name="products.csv"):
    return client.post(
        "/api/bulk/upload",
        data={"file": (io.BytesIO(body.encode("utf-8")), name)},
        content_type="multipart/form-data",
        headers=headers,
    )


def _uploaded_filename(client, headers, body):
    resp = _upload(client, headers, body)
    assert resp.status_code == 200, resp.json
    return resp.json["data"]["file_info"]["filename"]


class TestUpload:

    def test_upload_reports_validation(self, client, staff_headers):
        body = CSV_HEADER + "LAMP-01,Desk Lamp,Lighting,24.50,12,4,Aisle 1\n"
        resp = _upload(client, staff_headers, body)
        assert resp.status_code == 200
        validation = resp.json["data"]["validation"]
        assert validation["valid"] is True
        assert validation["total_rows"] == 1
        assert validation["sample_rows"][0]["sku"] == "LAMP-01"
        assert resp.json["data"]["file_info"]["filename"].endswith("_products.csv")

    def test_missing_headers_flagged(self, client, staff_headers):
        resp = _upload(client, staff_headers, "sku,name\nLAMP-01,Desk Lamp\n")
        validation = resp.json["data"]["validation"]
        assert validation["valid"] is False
        assert "Missing required headers: category, price, quantity" in validation["errors"]

    def test_non_csv_rejected(self, client, staff_headers):
        resp = _upload(client, staff_headers, "hello", name="notes.txt")
        assert resp.status_code == 400

    def test_no_file(self, client, staff_headers):
        resp = client.post("/api/bulk/upload", data={}, content_type="multipart/form-data", headers=staff_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "No CSV file uploaded"


class TestImport:

    def test_import_creates_products(self, client, staff_headers, staff_user, db_session):
        body = CSV_HEADER + (
            "lamp-01,Desk Lamp,Lighting,24.50,12,4,Aisle 1\n"
            "BULB-02,LED Bulb,Lighting,3.99,200,,\n"
        )
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post("/api/bulk/import", json={"filename": filename}, headers=staff_headers)
        assert resp.status_code == 200
        results = resp.json["data"]["import_results"]
        assert results["created_products"] == 2
        assert results["successful_imports"] == 2
        assert resp.json["data"]["performance"]["success_rate"] == 100.0

        bulb = db_session.query(Product).filter_by(sku="BULB-02").one()
        assert bulb.reorder_level == 20
        assert bulb.location == "Unknown"
        audit = db_session.query(InventoryAudit).filter_by(product_id=bulb.id).one()
        assert audit.reason == "Bulk CSV import - Product created"
        assert audit.user_id == staff_user.id
        assert db_session.query(Product).filter_by(sku="LAMP-01").count() == 1

    def test_existing_sku_reported_without_update_flag(self, client, staff_headers, make_product, db_session):
        product = make_product(quantity=50)
        body = CSV_HEADER + f"{product.sku},Renamed,General,10.00,60,10,Shelf A\n"
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post("/api/bulk/import", json={"filename": filename}, headers=staff_headers)
        results = resp.json["data"]["import_results"]
        assert results["failed_imports"] == 1
        assert "already exists" in results["errors"][0]["error"]
        assert db_session.get(Product, product.id).quantity == 50

    def test_update_existing_audits_quantity_change(self, client, staff_headers, make_product, db_session):
        product = make_product(quantity=50)
        body = CSV_HEADER + f"{product.sku},Renamed Item,General,11.00,60,10,Shelf B\n"
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post(
            "/api/bulk/import",
            json={"filename": filename, "update_existing": True},
            headers=staff_headers,
        )
        assert resp.json["data"]["import_results"]["updated_products"] == 1
        refreshed = db_session.get(Product, product.id)
        assert refreshed.quantity == 60
        assert refreshed.name == "Renamed Item"
        correction = db_session.query(InventoryAudit).filter_by(
            product_id=product.id, operation_type="correction"
        ).one()
        assert (correction.old_quantity, correction.new_quantity) == (50, 60)

    def test_invalid_rows_collected(self, client, staff_headers, db_session):
        body = CSV_HEADER + (
            "OK-001,Valid Item,General,5.00,3,1,Bin 1\n"
            "X,Bad Sku,General,5.00,3,1,Bin 1\n"
            "OK-002,Bad Price,General,abc,3,1,Bin 1\n"
            "OK-001,Duplicate,General,5.00,3,1,Bin 1\n"
        )
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post("/api/bulk/import", json={"filename": filename}, headers=staff_headers)
        results = resp.json["data"]["import_results"]
        assert results["total_rows"] == 4
        assert results["created_products"] == 1
        assert [e["row"] for e in results["validation_errors"]] == [2, 3, 4]
        assert "Duplicate SKU" in results["validation_errors"][2]["error"]

    def test_price_and_location_limits(self, client, staff_headers, db_session):
        long_location = "L" * 101
        body = CSV_HEADER + (
            "BIG-001,Gold Widget,Tools,99999999999,3,1,Bin 1\n"
            f"FAR-001,Far Widget,Tools,5.00,3,1,{long_location}\n"
            "MAX-001,Max Widget,Tools,9999999.99,3,1,Bin 1\n"
        )
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post("/api/bulk/import", json={"filename": filename}, headers=staff_headers)
        assert resp.status_code == 200
        results = resp.json["data"]["import_results"]
        assert results["created_products"] == 1
        errors = {e["row"]: e["error"] for e in results["validation_errors"]}
        assert errors[1].startswith("Price cannot exceed")
        assert errors[2] == "Location cannot exceed 100 characters"
        assert db_session.query(Product).filter_by(sku="BIG-001").count() == 0

    def test_upper_case_extension_is_importable(self, client, staff_headers, db_session):
        body = CSV_HEADER + "LAMP-01,Desk Lamp,Lighting,24.50,12,4,Aisle 1\n"
        resp = _upload(client, staff_headers, body, name="Products.CSV")
        assert resp.status_code == 200
        filename = resp.json["data"]["file_info"]["filename"]
        assert filename.endswith("_Products.csv")

        resp = client.post("/api/bulk/import", json={"filename": filename}, headers=staff_headers)
        assert resp.status_code == 200
        assert db_session.query(Product).filter_by(sku="LAMP-01").count() == 1

    def test_validate_only_writes_nothing(self, client, staff_headers, db_session):
        body = CSV_HEADER + "LAMP-01,Desk Lamp,Lighting,24.50,12,4,Aisle 1\n"
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post(
            "/api/bulk/import",
            json={"filename": filename, "validate_only": True},
            headers=staff_headers,
        )
        assert resp.json["message"] == "CSV validation completed successfully"
        assert resp.json["data"]["import_results"]["validation_summary"] == {"valid_rows": 1, "invalid_rows": 0}
        assert db_session.query(Product).count() == 0

    def test_skip_errors_false_rolls_back(self, client, staff_headers, make_product, db_session):
        product = make_product()
        body = CSV_HEADER + (
            "FRESH-01,Fresh Item,General,5.00,3,1,Bin 1\n"
            f"{product.sku},Clash,General,5.00,3,1,Bin 1\n"
        )
        filename = _uploaded_filename(client, staff_headers, body)

        resp = client.post(
            "/api/bulk/import",
            json={"filename": filename, "skip_errors": False},
            headers=staff_headers,
        )
        assert resp.status_code == 400
        assert resp.json["message"].startswith("Import aborted at row 2")
        assert db_session.query(Product).filter_by(sku="FRESH-01").count() == 0

    def test_unknown_upload(self, client, staff_headers):
        resp = client.post("/api/bulk/import", json={"filename": "missing.csv"}, headers=staff_headers)
        assert resp.status_code == 404

    def test_path_traversal_rejected(self, client, staff_headers):
        resp = client.post("/api/bulk/import", json={"filename": "../secret.csv"}, headers=staff_headers)
        assert resp.status_code == 400


class TestTemplate:

    def test_template_download(self, client, staff_headers):
        resp = client.get("/api/bulk/template", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        first_line = resp.data.decode("utf-8").splitlines()[0]
        assert first_line == "sku,name,description,category,price,quantity,reorder_level,location,supplier"

    def test_template_info(self, client, staff_headers):
        resp = client.get("/api/bulk/template/info", headers=staff_headers)
        assert resp.json["data"]["required_fields"] == ["sku", "name", "category", "price", "quantity"]


class TestExport:

    def test_export_and_download_csv(self, client, staff_headers, make_product):
        make_product(sku="ZETA-1")
        make_product(sku="ALPHA-1")
        resp = client.post("/api/bulk/export/products", json={}, headers=staff_headers)
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["record_count"] == 2

        download = client.get(data["download_url"], headers=staff_headers)
        assert download.status_code == 200
        lines = download.data.decode("utf-8").splitlines()
        assert lines[0].startswith("SKU,Product Name,Description,Category")
        assert lines[1].startswith("ALPHA-1,")

    def test_export_xlsx(self, client, staff_headers, make_product):
        make_product(quantity=2)
        resp = client.post(
            "/api/bulk/export/low-stock",
            json={"file_type": "xlsx"},
            headers=staff_headers,
        )
        filename = resp.json["data"]["filename"]
        assert filename.endswith(".xlsx")

        workbook = load_workbook(os.path.join(storage_dir(EXPORTS_DIR), filename))
        rows = list(workbook.active.iter_rows(values_only=True))
        assert len(rows) == 2
        assert "SKU" in rows[0]

    def test_empty_export_rejected(self, client, staff_headers, db_session):
        resp = client.post("/api/bulk/export/products", json={}, headers=staff_headers)
        assert resp.status_code == 400

    def test_bad_file_type(self, client, staff_headers, make_product):
        make_product()
        resp = client.post("/api/bulk/export/products", json={"file_type": "pdf"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_download_bad_name(self, client, staff_headers):
        resp = client.get("/api/bulk/download/evil$name.csv", headers=staff_headers)
        assert resp.status_code == 400

    def test_download_missing(self, client, staff_headers):
        resp = client.get("/api/bulk/download/products_export_none.csv", headers=staff_headers)
        assert resp.status_code == 404

    def test_expired_export_is_gone(self, app, client, staff_headers, make_product):
        make_product()
        data = client.post("/api/bulk/export/products", json={}, headers=staff_headers).json["data"]
        path = os.path.join(storage_dir(EXPORTS_DIR), data["filename"])
        stale = time.time() - (app.config["EXPORT_RETENTION_HOURS"] + 1) * 3600
        os.utime(path, (stale, stale))

        resp = client.get(data["download_url"], headers=staff_headers)
        assert resp.status_code == 410
        assert not os.path.exists(path)

    def test_cleanup_removes_stale_exports(self, app, client, manager_headers, make_product):
        make_product()
        data = client.post("/api/bulk/export/summary", json={}, headers=manager_headers).json["data"]
        path = os.path.join(storage_dir(EXPORTS_DIR), data["filename"])
        stale = time.time() - (app.config["EXPORT_RETENTION_HOURS"] + 1) * 3600
        os.utime(path, (stale, stale))

        result = maintenance_service.cleanup_files(target="exports")
        assert result["deleted_files"] >= 1
        assert not os.path.exists(path)

    def test_cleanup_rejects_unknown_type(self, client, manager_headers):
        resp = client.post("/api/bulk/cleanup", json={"type": "everything"}, headers=manager_headers)
        assert resp.status_code == 400
