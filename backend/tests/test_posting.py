"""Ledger-posting service tests: totals, atomicity, balances, edits and cancellation."""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone

import pytest
from sqlmodel import Session, func, select

from ricemill.core.database import engine, unit_of_work
from ricemill.core.errors import DuplicateError, NotFoundError, ValidationError
from ricemill.models import (
    Employee,
    Party,
    ProductionItem,
    Purchase,
    PurchaseItem,
    SalaryLine,
    Sale,
    StockMovement,
)
from ricemill.models.common import as_utc, utcnow
from ricemill.services import posting
from ricemill.services.balances import (
    employee_balance_from_salary,
    money,
    party_balance_from_documents,
    recompute_party_balance,
)

DAY = date(2025, 3, 14)


def _items(refs, *pairs):
    return [
        {
            "category_id": refs["category"],
            "product_id": refs["product"],
            "godown_id": refs["godown"],
            "quantity": qty,
            "rate": rate,
        }
        for qty, rate in pairs
    ]


def _purchase(session, refs, items, **header):
    with unit_of_work(session):
        doc = posting.create_document(
            session,
            posting.PURCHASE,
            {"date": DAY, "party_id": refs["party"], "purchase_type": "paddy", **header},
            items,
        )
    return doc


def _balance(model, pk):
    with Session(engine) as s:
        return s.get(model, pk).balance


def _count(model, *where):
    with Session(engine) as s:
        return s.exec(select(func.count()).select_from(model).where(*where)).one()


class TestTotals:
    def test_line_total_by_quantity_and_weight(self):
        assert posting.line_total(10, 400, 500) == 5000
        assert posting.line_total(10, 400, 30, "weight") == 12000

    def test_line_total_rejects_unknown_basis(self):
        with pytest.raises(ValidationError):
            posting.line_total(1, 1, 1, "volume")

    def test_compute_totals_zero_discount_zero_previous(self):
        items = [{"quantity": 2, "net_weight": 0, "total_price": 150.0}, {"quantity": 3, "total_price": 50.0}]
        t = posting.compute_totals(items)
        assert t.invoice_amount == 200
        assert t.total_amount == 200
        assert t.net_amount == 200
        assert t.current_balance == 200
        assert t.total_quantity == 5

    def test_compute_totals_invariants(self):
        items = [{"quantity": 1, "total_price": 1234.565}]
        t = posting.compute_totals(items, discount=34.56, previous_balance=100, settled=500.01)
        assert t.total_amount == money(t.invoice_amount - 34.56)
        assert t.net_amount == money(t.total_amount + 100)
        assert t.current_balance == money(t.net_amount - 500.01)

    def test_salary_payable(self):
        line = {"salary": 10000, "bonus_ot": 500, "absent_fine": 300, "deduction": 200}
        assert posting.salary_payable(line) == 10000


class TestCreatePurchase:
    def test_example_scenario(self, session, refs):
        before = _balance(Party, refs["party"])
        doc = _purchase(
            session, refs, _items(refs, (10, 500), (5, 1000)),
            discount=200, previous_balance=0, paid_amount=3000,
        )

        assert doc.invoice_amount == 10000
        assert doc.total_amount == 9800
        assert doc.net_payable == 9800
        assert doc.current_balance == 6800
        assert doc.total_quantity == 15
        assert doc.status == "completed"
        assert doc.balance_applied is True
        assert doc.reference_no.startswith("PUR-2025-")

        assert _count(Purchase, Purchase.id == doc.id) == 1
        assert _count(PurchaseItem, PurchaseItem.purchase_id == doc.id) == 2
        assert _count(
            StockMovement, StockMovement.reference_type == "purchase", StockMovement.reference_id == doc.id
        ) == 2
        assert _balance(Party, refs["party"]) == before - 6800

    def test_stock_movements_are_inbound(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (7, 10)))
        with Session(engine) as s:
            mv = s.exec(
                select(StockMovement).where(
                    StockMovement.reference_type == "purchase", StockMovement.reference_id == doc.id
                )
            ).one()
        assert mv.quantity_in == 7
        assert mv.quantity_out == 0
        assert mv.movement_type == "purchase"

    def test_bad_third_item_rolls_back_everything(self, session, refs):
        before_balance = _balance(Party, refs["party"])
        before_headers = _count(Purchase)
        before_items = _count(PurchaseItem)
        before_moves = _count(StockMovement)

        items = _items(refs, (1, 100), (2, 100), (3, 100), (4, 100))
        items[2]["product_id"] = 999_999

        with pytest.raises(NotFoundError) as exc:
            _purchase(session, refs, items, reference_no="ATOMIC-1")
        assert "Item 3" in exc.value.message

        assert _count(Purchase) == before_headers
        assert _count(Purchase, Purchase.reference_no == "ATOMIC-1") == 0
        assert _count(PurchaseItem) == before_items
        assert _count(StockMovement) == before_moves
        assert _balance(Party, refs["party"]) == before_balance

    def test_duplicate_explicit_reference_rejected(self, session, refs):
        _purchase(session, refs, _items(refs, (1, 1)), reference_no="INV-DUP-1")
        before = _balance(Party, refs["party"])
        with pytest.raises(DuplicateError):
            _purchase(session, refs, _items(refs, (1, 1)), reference_no="INV-DUP-1")
        assert _count(Purchase, Purchase.reference_no == "INV-DUP-1") == 1
        assert _balance(Party, refs["party"]) == before

    def test_inactive_party_rejected(self, session, refs):
        with Session(engine) as s:
            party = s.get(Party, refs["party"])
            party.status = "inactive"
            s.add(party)
            s.commit()
        with pytest.raises(ValidationError):
            _purchase(session, refs, _items(refs, (1, 1)))

    def test_empty_items_rejected(self, session, refs):
        with pytest.raises(ValidationError):
            _purchase(session, refs, [])

    def test_generated_numbers_increase(self, session, refs):
        a = _purchase(session, refs, _items(refs, (1, 1)))
        b = _purchase(session, refs, _items(refs, (1, 1)))
        assert int(b.reference_no.rsplit("-", 1)[1]) > int(a.reference_no.rsplit("-", 1)[1])

    def test_generated_number_skips_hand_typed_one(self, session, refs):
        day = date(2031, 1, 5)
        _purchase(session, refs, _items(refs, (1, 1)), date=day, reference_no="PUR-2031-00001")
        generated = [_purchase(session, refs, _items(refs, (1, 1)), date=day).reference_no for _ in range(3)]
        assert generated == ["PUR-2031-00002", "PUR-2031-00003", "PUR-2031-00004"]


class TestConcurrentPosting:
    def _create_in_own_session(self, refs, **header):
        with Session(engine) as s:
            try:
                return _purchase(s, refs, _items(refs, (2, 100)), **header).reference_no
            except DuplicateError as exc:
                return exc

    def test_same_explicit_reference_only_one_wins(self, refs):
        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(lambda _: self._create_in_own_session(refs, reference_no="RACE-1"), range(2)))

        assert sum(isinstance(r, DuplicateError) for r in results) == 1
        assert results.count("RACE-1") == 1
        assert _count(Purchase, Purchase.reference_no == "RACE-1") == 1

    def test_parallel_postings_for_one_party_all_count(self, refs):
        before = _balance(Party, refs["party"])
        n = 6
        with ThreadPoolExecutor(max_workers=n) as pool:
            numbers = list(pool.map(lambda _: self._create_in_own_session(refs), range(n)))

        assert len(set(numbers)) == n
        # each purchase leaves 200 owed to the supplier
        assert _balance(Party, refs["party"]) == before - 200 * n
        with Session(engine) as s:
            assert party_balance_from_documents(s, refs["party"]) == s.get(Party, refs["party"]).balance


class TestSale:
    def test_sale_moves_stock_out_and_raises_balance(self, session, refs):
        before = _balance(Party, refs["party"])
        with unit_of_work(session):
            doc = posting.create_document(
                session,
                posting.SALE,
                {"date": DAY, "party_id": refs["party"], "received_amount": 1000},
                _items(refs, (4, 500)),
            )
        assert doc.net_receivable == 2000
        assert doc.current_balance == 1000
        assert doc.reference_no.startswith("SAL-2025-")
        assert _balance(Party, refs["party"]) == before + 1000

        with Session(engine) as s:
            mv = s.exec(
                select(StockMovement).where(
                    StockMovement.reference_type == "sale", StockMovement.reference_id == doc.id
                )
            ).one()
        assert mv.quantity_out == 4
        assert mv.quantity_in == 0


class TestUpdate:
    def test_update_recomputes_and_applies_difference(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (10, 100)), paid_amount=200)
        before = _balance(Party, refs["party"])
        with unit_of_work(session):
            doc = posting.update_document(session, posting.PURCHASE, doc.id, {"paid_amount": 500, "discount": 100})

        assert doc.total_amount == 900
        assert doc.net_payable == 900
        assert doc.current_balance == 400
        # was 800, now 400: supplier is owed 400 less
        assert _balance(Party, refs["party"]) == before + 400

    def test_update_does_not_touch_stock(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (10, 100)))
        moves = _count(StockMovement, StockMovement.reference_id == doc.id, StockMovement.reference_type == "purchase")
        with unit_of_work(session):
            posting.update_document(session, posting.PURCHASE, doc.id, {"notes": "checked"})
        assert _count(
            StockMovement, StockMovement.reference_id == doc.id, StockMovement.reference_type == "purchase"
        ) == moves

    def test_null_clears_optional_fields_but_not_required_ones(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (1, 100)), notes="wet paddy", paid_amount=40)
        with unit_of_work(session):
            doc = posting.update_document(
                session, posting.PURCHASE, doc.id, {"notes": None, "paid_amount": None}
            )
        assert doc.notes is None
        assert doc.paid_amount == 40
        assert doc.current_balance == 60

    def test_cancelled_document_cannot_be_updated(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (1, 10)))
        with unit_of_work(session):
            posting.cancel_document(session, posting.PURCHASE, doc.id)
        with pytest.raises(ValidationError):
            with unit_of_work(session):
                posting.update_document(session, posting.PURCHASE, doc.id, {"notes": "late"})

    def test_status_cannot_go_backwards(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (1, 10)))
        with pytest.raises(ValidationError):
            with unit_of_work(session):
                posting.update_document(session, posting.PURCHASE, doc.id, {"status": "active"})


class TestReplaceItems:
    def test_replace_appends_reversals_and_applies_difference(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (10, 100)))
        before = _balance(Party, refs["party"])

        with unit_of_work(session):
            doc = posting.replace_items(session, posting.PURCHASE, doc.id, _items(refs, (4, 100), (2, 50)))

        assert doc.invoice_amount == 500
        assert doc.current_balance == 500
        assert _balance(Party, refs["party"]) == before + 500  # owed 1000 -> 500
        assert _count(PurchaseItem, PurchaseItem.purchase_id == doc.id) == 2

        with Session(engine) as s:
            moves = s.exec(
                select(StockMovement)
                .where(StockMovement.reference_type == "purchase", StockMovement.reference_id == doc.id)
                .order_by(StockMovement.id)
            ).all()
        assert [m.movement_type for m in moves] == ["purchase", "reversal", "purchase", "purchase"]
        assert moves[1].quantity_out == 10
        assert sum(m.quantity_in - m.quantity_out for m in moves) == 6


class TestCancel:
    def test_cancel_twice_is_idempotent(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (3, 100)))
        before = _balance(Party, refs["party"])

        with unit_of_work(session):
            assert posting.cancel_document(session, posting.PURCHASE, doc.id) is True
        with unit_of_work(session):
            assert posting.cancel_document(session, posting.PURCHASE, doc.id) is False

        with Session(engine) as s:
            assert s.get(Purchase, doc.id).status == "cancelled"
        assert _balance(Party, refs["party"]) == before

    def test_bulk_cancel_requires_every_id(self, session, refs):
        doc = _purchase(session, refs, _items(refs, (1, 1)))
        with pytest.raises(NotFoundError):
            with unit_of_work(session):
                posting.bulk_cancel(session, posting.PURCHASE, [doc.id, 987_654])
        with Session(engine) as s:
            assert s.get(Purchase, doc.id).status == "completed"

    def test_bulk_cancel_counts_changes(self, session, refs):
        a = _purchase(session, refs, _items(refs, (1, 1)))
        b = _purchase(session, refs, _items(refs, (1, 1)))
        with unit_of_work(session):
            posting.cancel_document(session, posting.PURCHASE, a.id)
        with unit_of_work(session):
            assert posting.bulk_cancel(session, posting.PURCHASE, [a.id, b.id]) == 1


class TestProductionAndSalary:
    def test_production_order(self, session, refs):
        with unit_of_work(session):
            doc = posting.create_document(
                session,
                posting.PRODUCTION,
                {"date": DAY, "description": "Batch 1"},
                [
                    {"product_id": refs["product"], "silo_id": refs["silo"], "quantity": 20, "net_weight": 1000},
                    {"product_id": refs["product2"], "godown_id": refs["godown"], "quantity": 5, "net_weight": 250},
                ],
            )
        assert doc.status == "active"
        assert doc.total_quantity == 25
        assert doc.total_weight == 1250
        assert doc.reference_no.startswith("PRD-2025-")
        assert _count(ProductionItem, ProductionItem.production_id == doc.id) == 2
        assert _count(
            StockMovement, StockMovement.reference_type == "production", StockMovement.reference_id == doc.id
        ) == 2

    def test_salary_run_posts_unpaid_amount(self, session, refs):
        before = _balance(Employee, refs["employee"])
        with unit_of_work(session):
            doc = posting.create_document(
                session,
                posting.SALARY,
                {"date": DAY, "year": 2025, "month": 3},
                [{"employee_id": refs["employee"], "salary": 12000, "bonus_ot": 1000, "deduction": 500, "payment": 10000}],
            )
        assert doc.total_payable == 12500
        assert doc.total_salary == 10000
        assert doc.total_employees == 1
        assert doc.reference_no.startswith("SLR-2025-")
        assert _balance(Employee, refs["employee"]) == before + 2500
        with Session(engine) as s:
            assert employee_balance_from_salary(s, refs["employee"]) == 2500
            line = s.exec(select(SalaryLine).where(SalaryLine.salary_run_id == doc.id)).one()
        assert line.payable == 12500

    def test_salary_payment_defaults_to_payable(self, session, refs):
        before = _balance(Employee, refs["employee"])
        with unit_of_work(session):
            doc = posting.create_document(
                session,
                posting.SALARY,
                {"date": DAY, "year": 2025, "month": 4},
                [{"employee_id": refs["employee"], "salary": 12000}],
            )
        assert doc.total_salary == 12000
        assert _balance(Employee, refs["employee"]) == before


class TestBalanceAudit:
    def test_rebuilt_balance_matches_running_balance(self, session, refs):
        _purchase(session, refs, _items(refs, (10, 100)), paid_amount=100)
        with unit_of_work(session):
            posting.create_document(
                session, posting.SALE, {"date": DAY, "party_id": refs["party"]}, _items(refs, (2, 300))
            )
        with Session(engine) as s:
            assert party_balance_from_documents(s, refs["party"]) == s.get(Party, refs["party"]).balance
        with unit_of_work(session):
            old, new = recompute_party_balance(session, refs["party"])
        assert old == new == -300


class TestTimestamps:
    def test_posting_writes_timezone_aware_times(self, session, refs):
        with unit_of_work(session):
            doc = posting.create_document(
                session, posting.PURCHASE, {"date": DAY, "party_id": refs["party"]}, _items(refs, (1, 10))
            )
            assert doc.created_at.tzinfo is not None
            posting.update_document(session, posting.PURCHASE, doc.id, {"paid_amount": 5})
            assert doc.updated_at.tzinfo is not None
        with Session(engine) as s:
            stored = s.get(Purchase, doc.id)
            assert as_utc(stored.updated_at) <= utcnow()
            assert s.get(Party, refs["party"]).updated_at is not None

    def test_naive_stored_time_is_read_as_utc(self):
        assert as_utc(datetime(2025, 1, 1, 6, 30)) == datetime(2025, 1, 1, 6, 30, tzinfo=timezone.utc)
        aware = utcnow()
        assert as_utc(aware) is aware
