# Overview: Pytest coverage for the tenant-scoped product catalogue.

import pytest

from infopos.events.envelope import Channel, InventoryEventType
from infopos.models import Product
from infopos.services import products_service, stock_service
from infopos.services.sales_service import create_sale
from infopos.validation import ConflictError, NotFoundError


class TestCreateProduct:
    def test_create_stamps_tenant_and_publishes(self, db_session, bus):
        product = products_service.create_product(
            patch={"name": "Tea", "price_cents": 450, "sku": "TEA-1", "stock_quantity": 8},
            tenant_id="t1",
            created_by=7,
        )

        assert product["tenant_id"] == "t1"
        assert product["stock_quantity"] == 8
        assert product["alert_threshold"] == 5
        events = bus.published(Channel.INVENTORY)
        assert [e.event_type for e in events] == [InventoryEventType.PRODUCT_CREATED]
        assert events[0].created_by == "7"

    def test_duplicate_sku_in_tenant_conflicts(self, db_session, product_t1):
        with pytest.raises(ConflictError):
            products_service.create_product(patch={"name": "Other", "price_cents": 100, "sku": "COF-1"}, tenant_id="t1")

    def test_same_sku_in_another_tenant_allowed(self, db_session, product_t1):
        created = products_service.create_product(
            patch={"name": "Coffee", "price_cents": 900, "sku": "COF-1"}, tenant_id="t3",
        )
        assert created["sku"] == "COF-1"
        assert db_session.query(Product).filter_by(sku="COF-1").count() == 2


class TestUpdateProduct:
    def test_partial_update(self, db_session, product_t1, bus):
        updated = products_service.update_product(
            product_id=product_t1.id, patch={"price_cents": 1100}, tenant_id="t1",
        )

        assert updated["price_cents"] == 1100
        assert updated["name"] == "Coffee"
        assert [e.event_type for e in bus.published(Channel.INVENTORY)] == [InventoryEventType.PRODUCT_UPDATED]

    def test_stock_count_goes_through_ledger(self, db_session, product_t1, bus):
        products_service.update_product(product_id=product_t1.id, patch={"stock_quantity": 4}, tenant_id="t1")

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 4
        events = bus.published(Channel.INVENTORY)
        assert [e.event_type for e in events] == [
            InventoryEventType.DISCREPANCY_DETECTED,
            InventoryEventType.STOCK_ALERT,
            InventoryEventType.PRODUCT_UPDATED,
        ]
        assert events[0].payload["quantity_change"] == -16

    def test_matching_count_publishes_update_only(self, db_session, product_t1, bus):
        products_service.update_product(product_id=product_t1.id, patch={"stock_quantity": 20}, tenant_id="t1")
        assert [e.event_type for e in bus.published(Channel.INVENTORY)] == [InventoryEventType.PRODUCT_UPDATED]

    def test_count_difference_follows_concurrent_sale(self, db_session, product_t1, bus, monkeypatch):
        real_cas = stock_service.compare_and_swap
        calls = []

        def sale_lands_first(model, *, match, expected, values):
            calls.append(1)
            if len(calls) == 1:
                real_cas(model, match=match, expected=expected, values={"stock_quantity": 17})
                return False
            return real_cas(model, match=match, expected=expected, values=values)

        monkeypatch.setattr(stock_service, "compare_and_swap", sale_lands_first)
        products_service.update_product(product_id=product_t1.id, patch={"stock_quantity": 4}, tenant_id="t1")

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 4
        discrepancy = bus.published(Channel.INVENTORY)[0]
        assert discrepancy.event_type == InventoryEventType.DISCREPANCY_DETECTED
        assert discrepancy.payload["quantity_change"] == -13

    def test_sku_collision_on_update(self, db_session, product_t1, make_product):
        other = make_product("t1", name="Tea", sku="TEA-1")
        with pytest.raises(ConflictError):
            products_service.update_product(product_id=other.id, patch={"sku": "COF-1"}, tenant_id="t1")

    def test_other_tenants_product_not_found(self, db_session, product_t1, product_t2):
        with pytest.raises(NotFoundError):
            products_service.update_product(product_id=product_t2.id, patch={"name": "Mine"}, tenant_id="t1")
        db_session.refresh(product_t2)
        assert product_t2.name == "Coffee"


class TestListAndDelete:
    def test_search_matches_name_sku_and_barcode(self, db_session, product_t1, make_product):
        make_product("t1", name="Green Tea", sku="TEA-1", barcode="500002", category="Tea")

        assert [p["sku"] for p in products_service.list_products("t1", q="cof")["items"]] == ["COF-1"]
        assert [p["sku"] for p in products_service.list_products("t1", q="5000")["items"]] == ["TEA-1"]
        assert products_service.list_products("t1", category="Tea")["count"] == 1
        assert products_service.list_products("t2", q="tea")["count"] == 0

    def test_delete_without_history(self, db_session, product_t1):
        assert products_service.delete_product(product_id=product_t1.id, tenant_id="t1") is True
        assert db_session.query(Product).filter_by(tenant_id="t1").count() == 0

    def test_delete_with_sale_history_refused(self, db_session, product_t1):
        create_sale("t1", 7, {"items": [{"product_id": product_t1.id, "quantity": 1}]})

        with pytest.raises(ConflictError):
            products_service.delete_product(product_id=product_t1.id, tenant_id="t1")

    def test_delete_other_tenants_product_not_found(self, db_session, product_t2):
        with pytest.raises(NotFoundError):
            products_service.delete_product(product_id=product_t2.id, tenant_id="t1")
