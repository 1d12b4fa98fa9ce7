# Overview: Pytest coverage for receivable creation rules.

from datetime import datetime

import pytest

from storepos.models import Receivable, Sale
from storepos.services.receivable_manager import (
    ReceivableError,
    ReceivableManager,
    receivable_status,
    should_create_receivable,
)


@pytest.mark.parametrize("status,member_id,total,payment,expected", [
    ("PAID", 1, 100, 0, False),
    ("UNPAID", 1, 100, 0, True),
    ("PARTIALLY_PAID", 1, 100, 40, True),
    ("CREDIT", 1, 100, 0, True),
    ("CREDIT_PAID", 1, 100, 10, True),
    ("UNPAID", None, 100, 0, False),
    ("PARTIALLY_PAID", 1, 100, 100, False),
    ("PARTIALLY_PAID", 1, 100, 150, False),
])
def test_should_create_receivable(status, member_id, total, payment, expected):
    assert should_create_receivable(status, member_id, total, payment) is expected


def test_receivable_status_follows_amount_paid():
    assert receivable_status(0) == "UNPAID"
    assert receivable_status(1) == "PARTIALLY_PAID"


@pytest.fixture
def unpaid_sale(db_session, store, cashier, attendant, member):
    sale = Sale(
        store_id=store.id,
        invoice_number="2026101900001",
        cashier_id=cashier.id,
        attendant_id=attendant.id,
        member_id=member.id,
        total=90000,
        payment=50000,
        status="PARTIALLY_PAID",
        date=datetime(2026, 10, 19, 9, 0),
    )
    db_session.add(sale)
    db_session.flush()
    return sale


class TestReceivableManager:
    def test_creates_partially_paid_receivable(self, db_session, unpaid_sale, member):
        manager = ReceivableManager(db_session)
        receivable = manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=50000)
        db_session.commit()

        assert receivable.amount_due == 90000
        assert receivable.amount_paid == 50000
        assert receivable.remaining == 40000
        assert receivable.status == "PARTIALLY_PAID"
        assert receivable.store_id == unpaid_sale.store_id
        assert unpaid_sale.receivable.id == receivable.id

    def test_creates_unpaid_receivable(self, db_session, unpaid_sale, member):
        manager = ReceivableManager(db_session)
        receivable = manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=0)
        assert receivable.status == "UNPAID"

    def test_second_receivable_for_sale_is_rejected(self, db_session, unpaid_sale, member):
        manager = ReceivableManager(db_session)
        manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=50000)

        with pytest.raises(ReceivableError):
            manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=50000)
        db_session.rollback()

    def test_fully_paid_amount_is_rejected(self, db_session, unpaid_sale, member):
        manager = ReceivableManager(db_session)
        with pytest.raises(ReceivableError):
            manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=90000)
        db_session.rollback()

    def test_delete_for_sale(self, db_session, unpaid_sale, member):
        manager = ReceivableManager(db_session)
        manager.create_receivable(unpaid_sale, member, amount_due=90000, amount_paid=50000)
        db_session.commit()

        assert manager.delete_for_sale(unpaid_sale) is True
        db_session.commit()

        assert db_session.query(Receivable).count() == 0
        assert manager.delete_for_sale(unpaid_sale) is False
