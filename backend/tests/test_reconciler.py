# Overview: Pytest coverage for last-write-wins reconciliation.

from datetime import datetime

import pytest

from infopos.models import Product
from infopos.services.reconciler import (
    PRODUCT_SYNC_FIELDS,
    PRODUCT_UPDATE_FIELDS,
    apply_snapshot,
    is_newer,
    reconcile,
)

T1 = "2026-03-01T10:00:00.000000Z"
T2 = "2026-03-01T10:00:00.000001Z"


def _record(updated_at, **fields):
    data = {"id": 1, "name": "Coffee", "price_cents": 1000, "stock_quantity": 5}
    data.update(fields)
    data["updated_at"] = updated_at
    return data


class TestReconcile:
    def test_first_write_applies_incoming(self):
        incoming = _record(T1)
        result = reconcile(None, incoming)
        assert result.apply_incoming is True
        assert result.merged_record == incoming
        assert result.reason == "first_write"

    def test_newer_incoming_wins_wholesale(self):
        existing = _record(T1, name="Old", price_cents=900)
        incoming = _record(T2, name="New", price_cents=1100)

        result = reconcile(existing, incoming)

        assert result.apply_incoming is True
        assert result.merged_record["name"] == "New"
        assert result.merged_record["price_cents"] == 1100
        assert result.merged_record["updated_at"] == T2

    def test_equal_timestamps_keep_existing(self):
        existing = _record(T1, name="Existing")
        incoming = _record(T1, name="Incoming")

        result = reconcile(existing, incoming)

        assert result.apply_incoming is False
        assert result.merged_record == existing

    def test_older_incoming_is_dropped(self):
        result = reconcile(_record(T2), _record(T1, name="Stale"))
        assert result.apply_incoming is False
        assert result.merged_record["name"] == "Coffee"

    def test_incoming_without_timestamp_never_wins(self):
        incoming = _record(None, name="No clock")
        result = reconcile(_record(T1), incoming)
        assert result.apply_incoming is False

    def test_existing_without_timestamp_loses(self):
        assert reconcile(_record(None), _record(T1)).apply_incoming is True

    def test_datetime_and_string_timestamps_compare(self):
        existing = _record(datetime(2026, 3, 1, 10, 0, 0))
        assert is_newer(_record("2026-03-01T10:00:01Z"), existing) is True
        assert is_newer(_record("2026-03-01T10:00:00Z"), existing) is False

    def test_offset_timestamps_are_normalized(self):
        # 12:00+02:00 is 10:00Z
        assert is_newer(_record("2026-03-01T12:00:00+02:00"), _record(T1)) is False

    def test_different_fields_from_two_sources_lose_one_side(self):
        base = _record(T1, name="Base", price_cents=1000)
        edit_a = dict(base, name="Renamed by A", updated_at="2026-03-01T10:05:00Z")
        edit_b = dict(base, price_cents=1500, updated_at="2026-03-01T10:06:00Z")

        after_a = reconcile(base, edit_a).merged_record
        after_b = reconcile(after_a, edit_b).merged_record

        # B's wholesale snapshot carries the old name; A's rename is gone
        assert after_b["price_cents"] == 1500
        assert after_b["name"] == "Base"

    def test_garbage_timestamp_raises(self):
        with pytest.raises(ValueError):
            reconcile(_record(T1), _record("not a date"))


class TestApplySnapshot:
    def test_copies_fields_and_reports_changes(self):
        product = Product(name="Coffee", price_cents=1000, stock_quantity=5)
        changed = apply_snapshot(
            product,
            {"name": "Coffee", "price_cents": 1200, "stock_quantity": 2, "updated_at": T2},
            PRODUCT_SYNC_FIELDS,
        )
        assert set(changed) == {"price_cents", "stock_quantity", "updated_at"}
        assert product.price_cents == 1200
        assert product.updated_at == datetime(2026, 3, 1, 10, 0, 0, 1)

    def test_update_field_set_excludes_stock(self):
        product = Product(name="Coffee", price_cents=1000, stock_quantity=5)
        apply_snapshot(product, {"stock_quantity": 99, "name": "Beans"}, PRODUCT_UPDATE_FIELDS)
        assert product.stock_quantity == 5
        assert product.name == "Beans"
