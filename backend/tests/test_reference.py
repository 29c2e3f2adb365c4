"""Reference-data CRUD and the referential-usage guard."""
from datetime import date

import pytest
from sqlmodel import Session

from ricemill.core.database import engine, unit_of_work
from ricemill.core.errors import DuplicateError, NotFoundError, ReferenceInUseError
from ricemill.models import Category, Party
from ricemill.services import posting, reference

from conftest import unique


def _post_purchase(session, refs):
    with unit_of_work(session):
        posting.create_document(
            session,
            posting.PURCHASE,
            {"date": date(2025, 5, 1), "party_id": refs["party"]},
            [{"category_id": refs["category"], "product_id": refs["product"], "quantity": 1, "rate": 10}],
        )


class TestService:
    def test_referenced_category_stays_active(self, session, refs):
        _post_purchase(session, refs)
        with pytest.raises(ReferenceInUseError):
            with unit_of_work(session):
                reference.deactivate_entities(session, "category", [refs["category"]])
        with Session(engine) as s:
            assert s.get(Category, refs["category"]).status == "active"

    def test_category_with_active_products_is_in_use(self, session, refs):
        counts = reference.usage_counts(session, "category", [refs["category"]])
        assert counts == {"products": 2}

    def test_unreferenced_entity_deactivates(self, session):
        with unit_of_work(session):
            godown = reference.create_entity(session, "godown", {"name": unique("Spare")})
        with unit_of_work(session):
            assert reference.deactivate_entities(session, "godown", [godown.id]) == 1
        with unit_of_work(session):
            assert reference.deactivate_entities(session, "godown", [godown.id]) == 0

    def test_mixed_batch_changes_nothing(self, session, refs):
        _post_purchase(session, refs)
        with unit_of_work(session):
            free = reference.create_entity(session, "category", {"name": unique("Bran")})
        with pytest.raises(ReferenceInUseError):
            with unit_of_work(session):
                reference.deactivate_entities(session, "category", [free.id, refs["category"]])
        with Session(engine) as s:
            assert s.get(Category, free.id).status == "active"

    def test_unknown_id_is_not_found(self, session):
        with pytest.raises(NotFoundError):
            with unit_of_work(session):
                reference.deactivate_entities(session, "silo", [424242])

    def test_name_unique_among_active_rows(self, session):
        name = unique("Husk")
        with unit_of_work(session):
            first = reference.create_entity(session, "category", {"name": name})
        with pytest.raises(DuplicateError):
            with unit_of_work(session):
                reference.create_entity(session, "category", {"name": name.upper()})
        with unit_of_work(session):
            reference.deactivate_entities(session, "category", [first.id])
        with unit_of_work(session):
            again = reference.create_entity(session, "category", {"name": name})
        assert again.id != first.id

    def test_account_head_names_scoped_by_kind(self, session):
        name = unique("Cash")
        with unit_of_work(session):
            reference.create_entity(session, "account_head", {"name": name, "kind": "income"})
            reference.create_entity(session, "account_head", {"name": name, "kind": "expense"})
        with pytest.raises(DuplicateError):
            with unit_of_work(session):
                reference.create_entity(session, "account_head", {"name": name, "kind": "income"})

    def test_party_opening_balance_seeds_and_shifts_balance(self, session):
        with unit_of_work(session):
            party = reference.create_entity(session, "party", {"name": unique("Buyer"), "opening_balance": 500})
        assert party.balance == 500
        with unit_of_work(session):
            reference.update_entity(session, "party", party.id, {"opening_balance": 800})
        with Session(engine) as s:
            assert s.get(Party, party.id).balance == 800


class TestRoutes:
    def test_create_list_get_update(self, client):
        r = client.post("/api/categories", json={"name": unique("Rice"), "unit": "kg"})
        assert r.status_code == 201
        body = r.json()
        assert body["success"] is True
        cat = body["data"]
        assert cat["unit"] == "kg"
        assert "createdAt" in cat

        r = client.get("/api/categories", params={"search": cat["name"]})
        assert r.status_code == 200
        assert r.json()["meta"]["total"] == 1
        assert r.json()["meta"]["pageSize"] == 25

        r = client.put(f"/api/categories/{cat['id']}", json={"description": "Polished"})
        assert r.status_code == 200
        assert r.json()["data"]["description"] == "Polished"

        assert client.get(f"/api/categories/{cat['id']}").status_code == 200

    def test_duplicate_name_is_400(self, client):
        name = unique("Broken")
        assert client.post("/api/categories", json={"name": name}).status_code == 201
        r = client.post("/api/categories", json={"name": name})
        assert r.status_code == 400
        assert r.json()["success"] is False
        assert "already exists" in r.json()["error"]

    def test_missing_name_is_400(self, client):
        r = client.post("/api/settings/godown", json={"capacity": 10})
        assert r.status_code == 400
        assert r.json()["success"] is False

    def test_get_unknown_is_404(self, client):
        r = client.get("/api/products/987654")
        assert r.status_code == 404
        assert r.json()["error"] == "Product not found"

    def test_delete_referenced_category_is_400(self, client, refs):
        r = client.request("DELETE", "/api/categories", json={"ids": [refs["category"]]})
        assert r.status_code == 400
        assert "in use" in r.json()["error"]
        assert client.get(f"/api/categories/{refs['category']}").json()["data"]["status"] == "active"

    def test_products_filter_by_category(self, client, refs):
        r = client.get("/api/products", params={"categoryId": refs["category"]})
        assert r.json()["meta"]["total"] == 2

    def test_account_heads_are_split_by_kind(self, client):
        name = unique("Electricity")
        r = client.post("/api/accounts/head-expense", json={"name": name})
        assert r.status_code == 201
        head = r.json()["data"]
        assert head["kind"] == "expense"
        assert client.get(f"/api/accounts/head-income/{head['id']}").status_code == 404
        r = client.get("/api/accounts/head-expense", params={"search": name})
        assert r.json()["meta"]["total"] == 1

    def test_party_with_type(self, client):
        t = client.post("/api/party/types", json={"name": unique("Wholesaler")}).json()["data"]
        r = client.post(
            "/api/party/parties",
            json={"name": unique("Karim Traders"), "partyTypeId": t["id"], "openingBalance": 1200},
        )
        assert r.status_code == 201
        party = r.json()["data"]
        assert party["typeId"] == t["id"]
        assert party["balance"] == 1200

    def test_employee_with_unknown_designation_is_404(self, client):
        r = client.post("/api/hr/employee", json={"name": unique("Rahim"), "designationId": 99999})
        assert r.status_code == 404

    def test_employee_and_party_create_then_edit(self, client):
        r = client.post("/api/hr/employee", json={"name": unique("Rahim"), "salary": 15000, "phone": "01711000000"})
        assert r.status_code == 201
        employee = r.json()["data"]
        r = client.put(f"/api/hr/employee/{employee['id']}", json={"phone": None, "salary": 16000})
        assert r.status_code == 200
        assert (r.json()["data"]["phone"], r.json()["data"]["salary"]) == (None, 16000)

        r = client.post("/api/party/parties", json={"name": unique("Miller"), "address": "Naogaon"})
        assert r.status_code == 201
        party = r.json()["data"]
        r = client.put(f"/api/party/parties/{party['id']}", json={"name": unique("Miller")})
        assert r.status_code == 200
        assert r.json()["data"]["address"] == "Naogaon"
