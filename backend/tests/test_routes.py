"""
HTTP route tests.

Verifies:
- Health endpoint reports database status
- Unit creation reports partial success (201 + errors) and full failure (400)
- Status transitions out of 'sold' are rejected (400)
- Transfer, delete and effective-stock endpoints
- Integrity report / repair round trip
- Acquisition success (201), rollback (409) and bad input (400)
"""

import pytest

from stockrecon.models import Product, ProductUnit

from conftest import add_sql_sale, add_sql_unit


# =============================================================================
# SYSTEM
# =============================================================================


class TestHealth:
    def test_health_reports_counts(self, client, serialized_product):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["products"] == 1


# =============================================================================
# UNITS
# =============================================================================


class TestUnitRoutes:
    def test_create_units_partial_success(self, client, serialized_product):
        resp = client.post(
            f"/api/products/{serialized_product.id}/units",
            json={
                "units": [{"serial": "A1"}, {"serial": "A2", "color": "blue", "price_cents": 45000}, {"serial": "A1"}],
                "default_pricing": {"price_cents": 40000},
            },
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert [u["serial_number"] for u in body["created"]] == ["A1", "A2"]
        assert len(body["errors"]) == 1
        assert all(u["status"] == "available" for u in body["created"])
        assert [u["price_cents"] for u in body["created"]] == [40000, 45000]

    def test_create_units_all_failed_is_400(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")

        resp = client.post(f"/api/products/{serialized_product.id}/units", json={"units": [{"serial": "A1"}]})

        assert resp.status_code == 400
        assert resp.get_json()["created"] == []

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"units": []},
            {"units": ["A1"]},
            {"units": [{"serial": "A1", "battery_level": 140}]},
            {"units": [{"serial": "A1", "status": "sold"}]},
            {"units": [{"serial": "A1"}], "default_pricing": {"discount": 5}},
        ],
    )
    def test_create_units_rejects_bad_payloads(self, client, serialized_product, payload):
        resp = client.post(f"/api/products/{serialized_product.id}/units", json=payload)
        assert resp.status_code == 400, payload

    def test_create_units_unknown_product(self, client, db_session):
        resp = client.post("/api/products/404/units", json={"units": [{"serial": "A1"}]})
        assert resp.status_code == 404

    def test_list_units_by_status(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")
        add_sql_unit(db_session, serialized_product.id, "A2", status="damaged")

        resp = client.get(f"/api/products/{serialized_product.id}/units?status=damaged")

        assert resp.status_code == 200
        assert [u["serial_number"] for u in resp.get_json()["units"]] == ["A2"]

    def test_status_change(self, client, serialized_product, db_session):
        unit_id = add_sql_unit(db_session, serialized_product.id, "A1").id

        resp = client.post(f"/api/units/{unit_id}/status", json={"status": "reserved"})

        assert resp.status_code == 200
        assert resp.get_json()["unit"]["status"] == "reserved"

    def test_sold_cannot_be_reserved(self, client, serialized_product, db_session):
        unit_id = add_sql_unit(db_session, serialized_product.id, "A1", status="sold").id

        resp = client.post(f"/api/units/{unit_id}/status", json={"status": "reserved"})

        assert resp.status_code == 400
        assert "not allowed" in resp.get_json()["error"]

    def test_status_requires_value(self, client, db_session):
        assert client.post("/api/units/1/status", json={}).status_code == 400

    def test_status_unknown_unit(self, client, db_session):
        assert client.post("/api/units/999/status", json={"status": "sold"}).status_code == 404

    def test_transfer(self, client, serialized_product, db_session):
        target = Product(brand="Samsung", model="Galaxy S21 FE", stock=0, has_serial=True)
        db_session.add(target)
        db_session.commit()
        target_id = target.id
        unit_id = add_sql_unit(db_session, serialized_product.id, "A1").id

        resp = client.post(f"/api/units/{unit_id}/transfer", json={"target_product_id": target_id})

        assert resp.status_code == 200
        assert resp.get_json()["unit"]["product_id"] == target_id
        db_session.expire_all()
        assert db_session.get(Product, target_id).stock == 1

    def test_transfer_to_non_serialized_product(self, client, serialized_product, bulk_product, db_session):
        unit_id = add_sql_unit(db_session, serialized_product.id, "A1").id

        resp = client.post(f"/api/units/{unit_id}/transfer", json={"target_product_id": bulk_product.id})

        assert resp.status_code == 400

    def test_transfer_requires_integer_target(self, client, db_session):
        assert client.post("/api/units/1/transfer", json={"target_product_id": "7"}).status_code == 400

    def test_delete(self, client, serialized_product, db_session):
        unit_id = add_sql_unit(db_session, serialized_product.id, "A1").id

        resp = client.delete(f"/api/units/{unit_id}")

        assert resp.status_code == 204
        assert db_session.query(ProductUnit).count() == 0
        assert client.delete(f"/api/units/{unit_id}").status_code == 404

    def test_backfill_and_validate_barcodes(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")

        before = client.get("/api/units/barcodes/validate").get_json()
        assert before["missing"] == ["A1"]

        resp = client.post("/api/units/backfill-barcodes")
        assert resp.status_code == 200
        assert resp.get_json()["updated"] == 1

        after = client.get(f"/api/units/barcodes/validate?product_id={serialized_product.id}").get_json()
        assert after == {"valid": 1, "invalid": [], "missing": []}


# =============================================================================
# STOCK
# =============================================================================


class TestStockRoutes:
    def test_effective_stock_serialized(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")
        add_sql_unit(db_session, serialized_product.id, "A2", status="sold")

        resp = client.get(f"/api/products/{serialized_product.id}/effective-stock")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["has_serial"] is True
        assert body["effective_stock"] == 1
        assert body["stored_stock"] == 0

    def test_effective_stock_non_serialized(self, client, bulk_product):
        body = client.get(f"/api/products/{bulk_product.id}/effective-stock").get_json()
        assert body["effective_stock"] == 12
        assert body["is_low_stock"] is False

    def test_effective_stock_missing_product(self, client, db_session):
        assert client.get("/api/products/404/effective-stock").status_code == 404

    def test_batch(self, client, serialized_product, bulk_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")

        resp = client.post(
            "/api/stock/effective",
            json={"product_ids": [serialized_product.id, bulk_product.id]},
        )

        assert resp.status_code == 200
        assert resp.get_json()["effective_stock"] == {
            str(serialized_product.id): 1,
            str(bulk_product.id): 12,
        }

    @pytest.mark.parametrize("payload", [{}, {"product_ids": "1"}, {"product_ids": [1, "2"]}, {"product_ids": list(range(201))}])
    def test_batch_rejects_bad_input(self, client, db_session, payload):
        assert client.post("/api/stock/effective", json=payload).status_code == 400


# =============================================================================
# INTEGRITY
# =============================================================================


class TestIntegrityRoutes:
    def test_report_then_repair(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1", status="sold")
        add_sql_unit(db_session, serialized_product.id, "A2")

        report = client.get("/api/integrity/report")
        assert report.status_code == 200
        body = report.get_json()
        assert body["is_clean"] is False
        assert len(body["stock_mismatches"]) == 1
        assert body["inconsistent_statuses"][0]["serial_number"] == "A1"
        assert body["suggestions"]

        repair = client.post("/api/integrity/repair")
        assert repair.status_code == 200
        body = repair.get_json()
        assert body["repair"]["errors"] == []
        assert body["report"]["is_clean"] is True

    def test_invalid_serial_sale_is_reported(self, client, bulk_product, db_session):
        add_sql_sale(db_session, bulk_product.id, "NOPE")

        body = client.get("/api/integrity/report").get_json()

        assert len(body["invalid_serial_sales"]) == 1
        assert body["invalid_serial_sales"][0]["sale_number"] == "S-0001"


# =============================================================================
# ACQUISITIONS
# =============================================================================


class TestAcquisitionRoutes:
    def test_new_product_with_units(self, client, db_session):
        resp = client.post(
            "/api/acquisitions",
            json={"items": [{
                "product": {"brand": "Apple", "model": "iPhone 15", "has_serial": True, "price_cents": 80000},
                "units": [{"serial": "A1"}, {"serial": "A2"}],
            }]},
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert len(body["unit_ids"]) == 2
        db_session.expire_all()
        assert db_session.get(Product, body["product_ids"][0]).stock == 2

    def test_failure_is_rolled_back(self, client, db_session):
        resp = client.post(
            "/api/acquisitions",
            json={"items": [
                {"product": {"brand": "Apple", "model": "iPhone 15", "has_serial": True}, "units": [{"serial": "A1"}]},
                {"product_id": 999, "quantity": 2},
            ]},
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["success"] is False
        assert body["transaction"]["failed_step"] == "resolve_product[1]"
        assert db_session.query(Product).count() == 0
        assert db_session.query(ProductUnit).count() == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"items": []},
            {"items": [{"quantity": 1}]},
            {"items": [{"product_id": "1", "quantity": 1}]},
            {"items": [{"product": {"brand": "Apple"}}]},
            {"allow_partial": "false", "items": [{"product_id": 1, "quantity": 1}]},
            {"allow_partial": 1, "items": [{"product_id": 1, "quantity": 1}]},
            {"items": [{"product_id": 1, "quantity": 1, "default_pricing": {"cost_cents": 5}}]},
            {"items": [{"product_id": 1, "quantity": 1, "default_pricing": {"price_cents": "12"}}]},
            {"items": [{"product_id": 1, "quantity": 1, "default_pricing": {"price_cents": -1}}]},
            {"items": [{"product_id": 1, "quantity": 1,
                        "default_pricing": {"min_price_cents": 500, "max_price_cents": 400}}]},
        ],
    )
    def test_bad_input(self, client, db_session, payload):
        assert client.post("/api/acquisitions", json=payload).status_code == 400
        assert db_session.query(Product).count() == 0

    def test_item_default_pricing_reaches_units(self, client, db_session):
        resp = client.post(
            "/api/acquisitions",
            json={"items": [{
                "product": {"brand": "Apple", "model": "iPhone 15", "has_serial": True, "price_cents": 80000},
                "units": [{"serial": "A1"}, {"serial": "A2", "price_cents": 70000}],
                "default_pricing": {"price_cents": 1234, "min_price_cents": 1000},
            }]},
        )

        assert resp.status_code == 201
        db_session.expire_all()
        units = {
            unit.serial_number: unit
            for unit in (db_session.get(ProductUnit, uid) for uid in resp.get_json()["unit_ids"])
        }
        assert (units["A1"].price_cents, units["A1"].min_price_cents) == (1234, 1000)
        assert (units["A2"].price_cents, units["A2"].min_price_cents) == (70000, 1000)

    def test_allow_partial_string_is_not_truthy(self, client, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")

        resp = client.post(
            "/api/acquisitions",
            json={"allow_partial": "false", "items": [{
                "product_id": serialized_product.id,
                "units": [{"serial": "A2"}, {"serial": "A1"}],
            }]},
        )

        assert resp.status_code == 400
        assert "allow_partial" in resp.get_json()["error"]
        assert db_session.query(ProductUnit).count() == 1


# =============================================================================
# CLI
# =============================================================================


class TestCli:
    def test_integrity_check_exit_code(self, app, serialized_product, db_session):
        runner = app.test_cli_runner()

        clean = runner.invoke(args=["integrity", "check"])
        assert clean.exit_code == 0

        add_sql_unit(db_session, serialized_product.id, "A1", status="sold")
        dirty = runner.invoke(args=["integrity", "check", "--json"])
        assert dirty.exit_code == 1
        assert '"inconsistent_statuses"' in dirty.output

    def test_integrity_repair(self, app, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1", status="sold")

        result = app.test_cli_runner().invoke(args=["integrity", "repair"])

        assert result.exit_code == 0
        assert "Inventory is consistent" in result.output

    def test_backfill_barcodes(self, app, serialized_product, db_session):
        add_sql_unit(db_session, serialized_product.id, "A1")

        result = app.test_cli_runner().invoke(args=["units", "backfill-barcodes"])

        assert "Assigned 1 barcode(s)" in result.output
