"""Party payments, production details, the empty-bag trade and the due/debt register."""
from datetime import date

import pytest
from sqlmodel import Session

from ricemill.core.database import engine, unit_of_work
from ricemill.core.errors import DuplicateError, NotFoundError, ReferenceInUseError, ValidationError
from ricemill.models import Party, Production, ProductionDetail
from ricemill.services import accounts, emptybags, posting, production, reference, reporting
from ricemill.services.balances import party_balance_from_documents

from conftest import unique

DAY = date(2025, 8, 1)


def _balance(party_id):
    with Session(engine) as s:
        return s.get(Party, party_id).balance


def _pay(session, refs, payment_type="payment", amount=500.0, **extra):
    with unit_of_work(session):
        payment = accounts.create_party_payment(
            session,
            {"date": DAY, "type": payment_type, "party_id": refs["party"], "amount": amount, **extra},
        )
    return payment


class TestPartyPayments:
    def test_payment_raises_and_receive_lowers_balance(self, session, refs):
        before = _balance(refs["party"])
        _pay(session, refs, "payment", 500)
        assert _balance(refs["party"]) == before + 500
        _pay(session, refs, "receive", 200)
        assert _balance(refs["party"]) == before + 300

    def test_edit_moves_only_the_difference(self, session, refs):
        payment = _pay(session, refs, "payment", 500)
        before = _balance(refs["party"])
        with unit_of_work(session):
            accounts.update_party_payment(session, payment.id, {"amount": 800})
        assert _balance(refs["party"]) == before + 300
        with unit_of_work(session):
            accounts.update_party_payment(session, payment.id, {"type": "receive"})
        assert _balance(refs["party"]) == before - 500 - 800

    def test_moving_to_another_party_reverses_the_first(self, session, refs):
        with unit_of_work(session):
            other = reference.create_entity(session, "party", {"name": unique("Broker")})
        payment = _pay(session, refs, "payment", 250)
        before = _balance(refs["party"])
        with unit_of_work(session):
            accounts.update_party_payment(session, payment.id, {"party_id": other.id})
        assert _balance(refs["party"]) == before - 250
        assert _balance(other.id) == 250

    def test_delete_is_soft_and_keeps_balance(self, session, refs):
        payment = _pay(session, refs, "receive", 100)
        before = _balance(refs["party"])
        with unit_of_work(session):
            assert accounts.delete_party_payments(session, [payment.id]) == 1
        assert _balance(refs["party"]) == before
        with pytest.raises(NotFoundError):
            accounts.get_party_payment(session, payment.id)

    def test_rebuilt_balance_includes_payments(self, session, refs):
        _pay(session, refs, "payment", 700)
        _pay(session, refs, "receive", 150)
        with Session(engine) as s:
            assert party_balance_from_documents(s, refs["party"]) == s.get(Party, refs["party"]).balance

    def test_party_with_payments_cannot_be_deleted(self, session, refs):
        _pay(session, refs)
        with pytest.raises(ReferenceInUseError):
            with unit_of_work(session):
                reference.deactivate_entities(session, "party", [refs["party"]])

    def test_invalid_type_rejected(self, session, refs):
        with pytest.raises(ValidationError):
            _pay(session, refs, "refund")


class TestPartyLedger:
    def test_cancelled_entries_are_flagged_and_add_up(self, session, refs):
        with unit_of_work(session):
            kept = posting.create_document(
                session,
                posting.SALE,
                {"date": DAY, "party_id": refs["party"]},
                [{"product_id": refs["product"], "quantity": 2, "rate": 100}],
            )
        with unit_of_work(session):
            dropped = posting.create_document(
                session,
                posting.SALE,
                {"date": DAY, "party_id": refs["party"]},
                [{"product_id": refs["product"], "quantity": 1, "rate": 50}],
            )
        with unit_of_work(session):
            posting.cancel_document(session, posting.SALE, dropped.id)
        _pay(session, refs, "receive", 30)

        ledger = reporting.party_ledger(session, refs["party"])
        by_id = {(e["kind"], e["id"]): e for e in ledger["entries"]}
        assert by_id[("sale", kept.id)]["cancelled"] is False
        assert by_id[("sale", dropped.id)]["cancelled"] is True
        assert ledger["cancelled_effect"] == 50
        assert ledger["balance"] == 200 + 50 - 30
        assert ledger["active_balance"] == 200 - 30
        assert sum(e["balance_effect"] for e in ledger["entries"]) == ledger["balance"] - ledger["opening_balance"]


class TestProductionDetails:
    def _order(self, session, refs):
        with unit_of_work(session):
            return posting.create_document(
                session,
                posting.PRODUCTION,
                {"date": DAY},
                [{"product_id": refs["product"], "silo_id": refs["silo"], "quantity": 10, "net_weight": 500}],
            )

    def test_details_add_to_and_come_off_the_order(self, session, refs):
        order = self._order(session, refs)
        with unit_of_work(session):
            a = production.add_detail(
                session, {"production_id": order.id, "date": DAY, "quantity_produced": 4, "weight_produced": 200}
            )
            b = production.add_detail(
                session, {"production_id": order.id, "date": DAY, "quantity_produced": 1, "weight_produced": 50}
            )
        with Session(engine) as s:
            fresh = s.get(Production, order.id)
            assert (fresh.total_quantity, fresh.total_weight) == (15, 750)

        with unit_of_work(session):
            assert production.delete_details(session, [a.id]) == 1
        with Session(engine) as s:
            fresh = s.get(Production, order.id)
            assert (fresh.total_quantity, fresh.total_weight) == (11, 550)
            assert s.get(ProductionDetail, a.id) is None
            assert s.get(ProductionDetail, b.id) is not None

        rows, total = production.list_details(session, production_id=order.id)
        assert total == 1
        assert rows[0]["production_reference_no"] == order.reference_no

    def test_unknown_order_is_not_found(self, session):
        with pytest.raises(NotFoundError):
            with unit_of_work(session):
                production.add_detail(
                    session, {"production_id": 989898, "date": DAY, "quantity_produced": 1, "weight_produced": 1}
                )

    def test_cancelled_order_takes_no_details(self, session, refs):
        order = self._order(session, refs)
        with unit_of_work(session):
            posting.cancel_document(session, posting.PRODUCTION, order.id)
        with pytest.raises(ValidationError):
            with unit_of_work(session):
                production.add_detail(
                    session, {"production_id": order.id, "date": DAY, "quantity_produced": 1, "weight_produced": 1}
                )

    def test_delete_with_unknown_id_changes_nothing(self, session, refs):
        order = self._order(session, refs)
        with unit_of_work(session):
            detail = production.add_detail(
                session, {"production_id": order.id, "date": DAY, "quantity_produced": 2, "weight_produced": 2}
            )
        with pytest.raises(NotFoundError):
            with unit_of_work(session):
                production.delete_details(session, [detail.id, 777777])
        with Session(engine) as s:
            assert s.get(Production, order.id).total_quantity == 12


class TestEmptyBags:
    def _entry(self, session, refs, entry_type, bags, **extra):
        with unit_of_work(session):
            return emptybags.create_entry(
                session,
                entry_type,
                {"date": DAY, "party_id": refs["party"], "product_id": refs["product2"], "bags": bags, **extra},
            )

    def test_amount_follows_rate_and_number_is_generated(self, session, refs):
        entry = self._entry(session, refs, "purchase", 100, rate=12.5)
        assert entry.amount == 1250
        assert entry.reference_no.startswith("EBP-2025-")

    def test_stock_is_in_minus_out(self, session, refs):
        self._entry(session, refs, "purchase", 100)
        self._entry(session, refs, "receive", 20)
        self._entry(session, refs, "sale", 30)
        gone = self._entry(session, refs, "payment", 5)
        self._entry(session, refs, "payment", 10)
        with unit_of_work(session):
            emptybags.delete_entries(session, "payment", [gone.id])

        row = next(r for r in emptybags.bag_stocks(session, refs["product2"]))
        assert (row["purchase"], row["receive"], row["sales"], row["payment"]) == (100, 20, 30, 10)
        assert row["stock"] == 80

    def test_duplicate_reference_within_type(self, session, refs):
        ref = unique("EB").replace(" ", "-")
        self._entry(session, refs, "sale", 1, reference_no=ref)
        with pytest.raises(DuplicateError):
            self._entry(session, refs, "sale", 1, reference_no=ref)
        # same number under another type is fine
        assert self._entry(session, refs, "receive", 1, reference_no=ref).reference_no == ref

    def test_unknown_type_rejected(self, session, refs):
        with pytest.raises(ValidationError):
            self._entry(session, refs, "gift", 1)

    def test_generated_number_skips_hand_typed_ones(self, session, refs):
        day = date(2033, 2, 1)
        for ref in ("EBR-2033-00001", "EBR-2033-00002"):
            self._entry(session, refs, "receive", 1, date=day, reference_no=ref)
        assert self._entry(session, refs, "receive", 1, date=day).reference_no == "EBR-2033-00003"

    def test_generation_gives_up_after_skip_limit(self, session, refs, monkeypatch):
        day = date(2034, 2, 1)
        for ref in ("EBY-2034-00001", "EBY-2034-00002"):
            self._entry(session, refs, "payment", 1, date=day, reference_no=ref)
        monkeypatch.setattr(emptybags, "MAX_REFERENCE_SKIPS", 2)
        with pytest.raises(ValidationError):
            self._entry(session, refs, "payment", 1, date=day)
        monkeypatch.undo()
        assert self._entry(session, refs, "payment", 1, date=day).reference_no == "EBY-2034-00003"


class TestDueRegister:
    def test_due_and_debt_are_scoped_by_kind(self, session):
        name = unique("Karim Traders")
        with unit_of_work(session):
            due = reference.create_entity(session, "party_due", {"name": name, "kind": "due", "amount": 1500})
            debt = reference.create_entity(session, "party_due", {"name": name, "kind": "debt", "amount": 900})
        assert (due.kind, debt.kind) == ("due", "debt")
        with pytest.raises(DuplicateError):
            with unit_of_work(session):
                reference.create_entity(session, "party_due", {"name": name, "kind": "due", "amount": 1})

    def test_negative_amount_rejected(self, session):
        with pytest.raises(ValidationError):
            with unit_of_work(session):
                reference.create_entity(session, "party_due", {"name": unique("X"), "kind": "due", "amount": -5})
