# Overview: Pytest coverage for the append-only stock ledger.

"""
Stock Ledger Tests

Verifies the ledger invariants:
1. An item's quantity always equals the sum of its movements
2. A movement that would make the balance negative is rejected and writes nothing
3. A movement with an idempotency_key is applied at most once
4. History is returned newest first
"""

from datetime import timedelta

import pytest

from stockledger.errors import InsufficientStock, ItemNotFound, ValidationError
from stockledger.extensions import db
from stockledger.models import InventoryItem, StockMovement
from stockledger.services import ledger_service
from stockledger.time_utils import utcnow

ACTOR = "tester"


def _reload(code):
    db.session.expire_all()
    return db.session.query(InventoryItem).filter_by(code=code).one()


def _movement_count(code):
    return db.session.query(StockMovement).filter_by(item_code=code).count()


class TestApplyMovement:
    def test_in_out_adjustment_keep_balance_equal_to_ledger_sum(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)

        ledger_service.apply_movement("MN01", "in", 5, None, "Restock", actor=ACTOR)
        ledger_service.apply_movement("MN01", "out", 3, None, "Sale", actor=ACTOR)
        ledger_service.apply_movement("MN01", "adjustment", -2, None, "Broken", actor=ACTOR)
        db_session.commit()

        item = _reload("MN01")
        assert item.quantity == 10
        assert ledger_service.get_quantity_on_hand("MN01") == 10
        assert _movement_count("MN01") == 4

    def test_out_is_stored_negative(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)
        movement = ledger_service.record_movement("MN01", "out", 4, None, "Sale", actor=ACTOR)
        db_session.commit()

        assert movement.quantity == -4
        assert movement.balance_after == 6
        assert movement.created_by == ACTOR

    def test_unit_price_defaults_to_item_price(self, db_session, make_item):
        make_item("Teh", code="MN01", price_cents=2500)
        movement = ledger_service.record_movement("MN01", "in", 1, None, None, actor=ACTOR)
        assert movement.unit_price_cents == 2500

    def test_insufficient_stock_writes_nothing(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=3)

        with pytest.raises(InsufficientStock) as exc:
            ledger_service.apply_movement("MN01", "out", 5, None, "Sale", actor=ACTOR)
        db_session.rollback()

        assert exc.value.on_hand == 3
        assert exc.value.requested_delta == -5
        assert _reload("MN01").quantity == 3
        assert _movement_count("MN01") == 1

    def test_negative_adjustment_to_exactly_zero_is_allowed(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=3)
        item = ledger_service.apply_movement("MN01", "adjustment", -3, None, "Count", actor=ACTOR)
        db_session.commit()
        assert item.quantity == 0

    @pytest.mark.parametrize("movement_type, quantity", [
        ("in", 0),
        ("in", -1),
        ("out", 0),
        ("adjustment", 0),
        ("transfer", 1),
    ])
    def test_invalid_type_or_quantity(self, db_session, make_item, movement_type, quantity):
        make_item("Teh", code="MN01", quantity=3)
        with pytest.raises(ValidationError):
            ledger_service.apply_movement("MN01", movement_type, quantity, None, None, actor=ACTOR)

    def test_actor_is_required(self, db_session, make_item):
        make_item("Teh", code="MN01")
        with pytest.raises(ValidationError):
            ledger_service.apply_movement("MN01", "in", 1, None, None, actor=" ")

    def test_unknown_item(self, db_session):
        with pytest.raises(ItemNotFound):
            ledger_service.apply_movement("NOPE", "in", 1, None, None, actor=ACTOR)


class TestIdempotency:
    def test_same_key_is_applied_once(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)

        first = ledger_service.record_movement(
            "MN01", "out", 2, None, "Sale", actor=ACTOR, idempotency_key="sale-1:line-1"
        )
        db_session.commit()
        again = ledger_service.record_movement(
            "MN01", "out", 2, None, "Sale", actor=ACTOR, idempotency_key="sale-1:line-1"
        )
        db_session.commit()

        assert again.id == first.id
        assert _reload("MN01").quantity == 8
        assert _movement_count("MN01") == 2

    def test_key_reused_for_another_item_is_rejected(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)
        make_item("Kopi", code="MN02", quantity=10)
        ledger_service.apply_movement("MN01", "in", 1, None, None, actor=ACTOR, idempotency_key="k1")
        db_session.commit()

        with pytest.raises(ValidationError):
            ledger_service.apply_movement("MN02", "in", 1, None, None, actor=ACTOR, idempotency_key="k1")


class TestTransactionsForItem:
    def test_newest_first(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)
        ledger_service.apply_movement("MN01", "out", 1, None, "a", actor=ACTOR)
        ledger_service.apply_movement("MN01", "out", 2, None, "b", actor=ACTOR)
        db_session.commit()

        movements = ledger_service.transactions_for_item("MN01")
        assert [m.reason for m in movements] == ["b", "a", "Opening stock"]
        assert [m.balance_after for m in movements] == [7, 9, 10]

    def test_limit_offset_and_date_filters(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)
        for _ in range(3):
            ledger_service.apply_movement("MN01", "out", 1, None, None, actor=ACTOR)
        db_session.commit()

        assert len(ledger_service.transactions_for_item("MN01", limit=2)) == 2
        assert len(ledger_service.transactions_for_item("MN01", limit=10, offset=3)) == 1

        future = utcnow() + timedelta(days=1)
        assert ledger_service.transactions_for_item("MN01", since=future) == []
        assert len(ledger_service.transactions_for_item("MN01", until=future)) == 4

    def test_unknown_item(self, db_session):
        with pytest.raises(ItemNotFound):
            ledger_service.transactions_for_item("NOPE")


class TestVerifyBalances:
    def test_detects_and_repairs_drift(self, db_session, make_item):
        make_item("Teh", code="MN01", quantity=10)
        make_item("Kopi", code="MN02", quantity=4)

        # Corrupt the cache behind the ledger's back
        db_session.execute(
            InventoryItem.__table__.update().where(InventoryItem.code == "MN01").values(quantity=99)
        )
        db_session.commit()

        drift = ledger_service.verify_balances()
        assert drift == [{"code": "MN01", "cached_quantity": 99, "ledger_quantity": 10}]

        ledger_service.verify_balances(fix=True)
        db_session.commit()
        assert ledger_service.verify_balances() == []
        assert _reload("MN01").quantity == 10
