# Overview: Pytest coverage for sale creation, status lifecycle and reports.

import pytest

from infopos.events.envelope import (
    Channel,
    InventoryEventType,
    PaymentEventType,
    SaleEventType,
)
from infopos.models import Sale
from infopos.services import reporting_service
from infopos.services.sales_service import (
    create_sale,
    get_sale,
    list_sales,
    update_sale_status,
)
from infopos.tenant_context import tenant_scope
from infopos.validation import (
    ConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def _payload(*lines, **fields):
    data = {"items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines]}
    data.update(fields)
    return data


class TestCreateSale:
    def test_creates_sale_and_consumes_stock(self, db_session, product_t1, bus):
        sale = create_sale("t1", 7, _payload((product_t1.id, 3), payment_method="card"))

        assert sale["status"] == "COMPLETED"
        assert sale["payment_method"] == "CARD"
        assert sale["user_id"] == 7
        assert sale["offline_created"] is False
        assert sale["total_cents"] == 3000
        assert sale["items"][0]["product_name"] == "Coffee"
        assert sale["items"][0]["product_sku"] == "COF-1"

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 17

        assert [e.event_type for e in bus.published(Channel.SALES)] == [SaleEventType.CREATED]
        assert [e.event_type for e in bus.published(Channel.INVENTORY)] == [InventoryEventType.STOCK_DECREASED]

    def test_invoice_numbers_are_sequential_per_tenant(self, db_session, product_t1, product_t2):
        first = create_sale("t1", 7, _payload((product_t1.id, 1)))
        second = create_sale("t1", 7, _payload((product_t1.id, 1)))
        other = create_sale("t2", 7, _payload((product_t2.id, 1)))

        assert first["invoice_number"] == "INV-000001"
        assert second["invoice_number"] == "INV-000002"
        assert other["invoice_number"] == "INV-000001"

    def test_tenant_defaults_to_context(self, db_session, product_t1):
        with tenant_scope("t1"):
            sale = create_sale(None, 7, _payload((product_t1.id, 1)))
        assert sale["tenant_id"] == "t1"

    def test_pending_sale_allowed(self, db_session, product_t1):
        sale = create_sale("t1", 7, _payload((product_t1.id, 1), status="pending"))
        assert sale["status"] == "PENDING"

    def test_sale_cannot_start_refunded(self, db_session, product_t1):
        with pytest.raises(InvalidStateError):
            create_sale("t1", 7, _payload((product_t1.id, 1), status="REFUNDED"))

    def test_insufficient_stock_creates_nothing(self, db_session, product_t1, bus):
        with pytest.raises(InsufficientStockError) as exc:
            create_sale("t1", 7, _payload((product_t1.id, 21)))

        assert exc.value.details["items"][0]["requested_quantity"] == 21
        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 20
        assert db_session.query(Sale).count() == 0
        assert bus.published(Channel.SALES) == []

    def test_reused_client_reference_conflicts(self, db_session, product_t1):
        create_sale("t1", 7, _payload((product_t1.id, 1), client_reference_id="C-1"))

        with pytest.raises(ConflictError):
            create_sale("t1", 7, _payload((product_t1.id, 1), client_reference_id="C-1"))

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 19

    def test_other_tenants_product_not_found(self, db_session, product_t1, product_t2):
        with pytest.raises(NotFoundError):
            create_sale("t1", 7, _payload((product_t2.id, 1)))

    def test_empty_items_rejected(self, db_session):
        with pytest.raises(ValidationError):
            create_sale("t1", 7, {"items": []})

    def test_unknown_payment_method_rejected(self, db_session, product_t1):
        with pytest.raises(ValidationError):
            create_sale("t1", 7, _payload((product_t1.id, 1), payment_method="CHEQUE"))


class TestReadSales:
    def test_get_sale_is_tenant_scoped(self, db_session, product_t1):
        sale = create_sale("t1", 7, _payload((product_t1.id, 2)))

        assert get_sale("t1", sale["id"])["items"][0]["quantity"] == 2
        with pytest.raises(NotFoundError):
            get_sale("t2", sale["id"])

    def test_list_filters_by_status_and_range(self, db_session, product_t1, product_t2):
        create_sale("t1", 7, _payload((product_t1.id, 1), created_at="2026-02-01T09:00:00Z"))
        create_sale("t1", 7, _payload((product_t1.id, 1), created_at="2026-02-03T09:00:00Z", status="PENDING"))
        create_sale("t2", 7, _payload((product_t2.id, 1), created_at="2026-02-01T09:00:00Z"))

        assert list_sales("t1")["count"] == 2
        assert list_sales("t1", status="pending")["items"][0]["status"] == "PENDING"
        in_range = list_sales("t1", start="2026-02-01T00:00:00Z", end="2026-02-02T00:00:00Z")
        assert [s["created_at"] for s in in_range["items"]] == ["2026-02-01T09:00:00Z"]

    def test_list_rejects_bad_bounds(self, db_session):
        with pytest.raises(ValidationError):
            list_sales("t1", start="yesterday")
        with pytest.raises(InvalidStateError):
            list_sales("t1", status="SHIPPED")


class TestStatusLifecycle:
    def test_refund_restocks_and_publishes_refund(self, db_session, product_t1, bus):
        sale = create_sale("t1", 7, _payload((product_t1.id, 4)))
        bus.reset()

        updated = update_sale_status("t1", sale["id"], "refunded", user_id=8)

        assert updated["status"] == "REFUNDED"
        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 20
        assert [e.event_type for e in bus.published(Channel.SALES)] == [SaleEventType.UPDATED]
        payments = bus.published(Channel.PAYMENT)
        assert [e.event_type for e in payments] == [PaymentEventType.REFUND_COMPLETED]
        assert payments[0].payload["amount_cents"] == 4000
        assert [e.event_type for e in bus.published(Channel.INVENTORY)] == [InventoryEventType.STOCK_INCREASED]

    def test_cancel_restocks_and_is_terminal(self, db_session, product_t1, bus):
        sale = create_sale("t1", 7, _payload((product_t1.id, 2)))

        update_sale_status("t1", sale["id"], "CANCELLED")

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 20
        assert bus.published(Channel.SALES)[-1].event_type == SaleEventType.CANCELED
        with pytest.raises(InvalidStateError):
            update_sale_status("t1", sale["id"], "REFUNDED")
        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 20

    def test_completing_pending_sale_publishes_payment(self, db_session, product_t1, bus):
        sale = create_sale("t1", 7, _payload((product_t1.id, 1), status="PENDING", payment_method="CARD"))
        bus.reset()

        update_sale_status("t1", sale["id"], "COMPLETED")

        db_session.refresh(product_t1)
        assert product_t1.stock_quantity == 19
        assert [e.event_type for e in bus.published(Channel.SALES)] == [SaleEventType.PROCESSED]
        payment = bus.published(Channel.PAYMENT)[0]
        assert payment.event_type == PaymentEventType.PAYMENT_COMPLETED
        assert payment.payload["payment_method"] == "CARD"
        assert bus.published(Channel.INVENTORY) == []

    def test_pending_cannot_be_refunded(self, db_session, product_t1):
        sale = create_sale("t1", 7, _payload((product_t1.id, 1), status="PENDING"))
        with pytest.raises(InvalidStateError):
            update_sale_status("t1", sale["id"], "REFUNDED")

    def test_unknown_status_rejected(self, db_session, product_t1):
        sale = create_sale("t1", 7, _payload((product_t1.id, 1)))
        with pytest.raises(InvalidStateError):
            update_sale_status("t1", sale["id"], "FOO")

    def test_other_tenant_cannot_change_status(self, db_session, product_t1):
        sale = create_sale("t1", 7, _payload((product_t1.id, 1)))
        with pytest.raises(NotFoundError):
            update_sale_status("t2", sale["id"], "CANCELLED")


class TestReports:
    @pytest.fixture
    def february(self, db_session, product_t1, product_t2):
        create_sale("t1", 7, _payload((product_t1.id, 1), created_at="2026-02-01T09:00:00Z"))
        create_sale("t1", 7, _payload((product_t1.id, 2), created_at="2026-02-01T15:00:00Z", payment_method="CARD"))
        create_sale("t1", 7, _payload((product_t1.id, 3), created_at="2026-02-02T10:00:00Z"))
        create_sale("t1", 7, _payload((product_t1.id, 5), created_at="2026-02-02T11:00:00Z", status="PENDING"))
        create_sale("t2", 7, _payload((product_t2.id, 1), created_at="2026-02-01T09:00:00Z"))

    def test_daily_report_counts_completed_sales(self, db_session, february):
        report = reporting_service.daily_report("t1")

        assert report["rows"] == [
            {"date": "2026-02-01", "sales_count": 2, "total_cents": 3000},
            {"date": "2026-02-02", "sales_count": 1, "total_cents": 3000},
        ]

    def test_summary_respects_range(self, db_session, february):
        report = reporting_service.sales_summary("t1", start="2026-02-01T00:00:00Z", end="2026-02-01T23:59:59Z")

        assert report["sale_count"] == 2
        assert report["total_revenue_cents"] == 3000
        assert report["start"] == "2026-02-01T00:00:00Z"

    def test_payment_method_totals(self, db_session, february):
        report = reporting_service.sales_by_payment_method("t1")
        assert report["totals_cents"] == {"CARD": 2000, "CASH": 4000}

    def test_reversed_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.sales_summary("t1", start="2026-02-02T00:00:00Z", end="2026-02-01T00:00:00Z")

    def test_empty_tenant_reports_zero(self, db_session):
        report = reporting_service.sales_summary("t9")
        assert report["sale_count"] == 0
        assert report["total_revenue_cents"] == 0
