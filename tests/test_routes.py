"""
JSON API tests over the Flask test client.

Create / list / copy / convert / delete flows, error mapping and company isolation.
"""

from boqdesk.extensions import db
from boqdesk.models import Boq, Company, Unit, User
from tests.conftest import TEST_PASSWORD, make_sample_document, sample_payload


def _create(client, **kwargs):
    response = client.post("/boqs/", json=sample_payload(**kwargs))
    assert response.status_code == 201, response.get_json()
    return response.get_json()["boq"]


class TestAuth:
    def test_requires_login(self, client, user):
        response = client.get("/boqs/")
        assert response.status_code == 401
        assert response.get_json()["error"] == "unauthorized"

    def test_wrong_password(self, client, user):
        response = client.post("/auth/login", json={"username": user.username, "password": "nope"})
        assert response.status_code == 401

    def test_logout(self, auth_client):
        assert auth_client.post("/auth/logout").status_code == 200
        assert auth_client.get("/boqs/").status_code == 401

    def test_seed_admin_bootstraps_company(self, client, app):
        response = client.post(
            "/auth/seed-admin",
            json={"username": "admin", "password": "pw", "company_name": "First Co"},
        )

        assert response.status_code == 201
        admin = User.query.filter_by(username="admin").one()
        assert admin.is_admin
        assert admin.company.name == "First Co"

    def test_seed_admin_only_once(self, client, user):
        response = client.post("/auth/seed-admin", json={"username": "x", "password": "y"})
        assert response.status_code == 409

    def test_csrf_token(self, client, app):
        assert client.get("/auth/csrf-token").get_json()["csrf_token"]


class TestBoqRoutes:
    def test_create_assigns_number_and_totals(self, auth_client):
        boq = _create(auth_client)

        assert boq["number"].startswith("BOQ-")
        assert boq["subtotal"] == "1000.00"
        assert boq["status"] == "draft"
        cement = boq["document"]["sections"][0]["subsections"][0]["items"][0]
        assert cement["unit_name"] == "Sm"
        # the blank row was dropped
        assert len(boq["document"]["sections"][0]["subsections"][1]["items"]) == 1

    def test_create_keeps_supplied_number(self, auth_client):
        assert _create(auth_client, number="BOQ-20240115-0042")["number"] == "BOQ-20240115-0042"

    def test_duplicate_number_conflict(self, auth_client):
        _create(auth_client, number="BOQ-20240115-0042")
        response = auth_client.post("/boqs/", json=sample_payload(number="BOQ-20240115-0042"))

        assert response.status_code == 409
        assert response.get_json()["error"] == "store_error"

    def test_partial_item_rejected(self, auth_client):
        payload = sample_payload()
        payload["sections"][0]["subsections"][0]["items"].append({"description": "Sand", "quantity": "", "rate": "30"})

        response = auth_client.post("/boqs/", json=payload)

        assert response.status_code == 400
        assert response.get_json()["error"] == "validation_error"
        assert Boq.query.count() == 0

    def test_malformed_tree_rejected(self, auth_client):
        string_client = sample_payload()
        string_client["client"] = "Kamau Holdings"
        string_section = sample_payload()
        string_section["sections"] = ["General"]

        for payload in (string_client, string_section):
            response = auth_client.post("/boqs/", json=payload)
            assert response.status_code == 400
            assert response.get_json()["error"] == "validation_error"
        assert Boq.query.count() == 0

    def test_list_and_filter(self, auth_client):
        _create(auth_client)
        _create(auth_client, client_name="Otieno Farms")

        assert len(auth_client.get("/boqs/").get_json()["boqs"]) == 2
        filtered = auth_client.get("/boqs/?q=otieno").get_json()["boqs"]
        assert [b["client_name"] for b in filtered] == ["Otieno Farms"]

    def test_next_number_preview(self, auth_client):
        first = auth_client.get("/boqs/next-number").get_json()["number"]
        created = _create(auth_client)
        assert created["number"] == first
        assert auth_client.get("/boqs/next-number").get_json()["number"] != first

    def test_update_draft(self, auth_client):
        boq = _create(auth_client)
        payload = sample_payload()
        payload["sections"][0]["subsections"][0]["items"][0]["quantity"] = "20"

        response = auth_client.put(f"/boqs/{boq['id']}", json=payload)

        assert response.status_code == 200
        updated = response.get_json()["boq"]
        assert updated["subtotal"] == "1500.00"
        assert updated["number"] == boq["number"]

    def test_copy(self, auth_client):
        boq = _create(auth_client)

        response = auth_client.post("/boqs/copy", json={"source_number": boq["number"], "percentage": 40})

        assert response.status_code == 201
        assert response.get_json()["boq"]["subtotal"] == "400.00"

    def test_copy_rejects_bad_percentage(self, auth_client):
        boq = _create(auth_client)
        response = auth_client.post("/boqs/copy", json={"source_number": boq["number"], "percentage": 0})
        assert response.status_code == 400

    def test_invoice_preview(self, auth_client):
        boq = _create(auth_client)
        preview = auth_client.get(f"/boqs/{boq['id']}/invoice-preview").get_json()

        assert [row["description"] for row in preview["items"]] == ["A: Materials", "Cement", "B: Labor", "Mason"]
        assert preview["subtotal"] == "1000"

    def test_other_company_record_is_forbidden(self, auth_client, other_company):
        foreign = Boq.from_document(make_sample_document(), company_id=other_company.id)
        db.session.add(foreign)
        db.session.commit()

        assert auth_client.get(f"/boqs/{foreign.id}").status_code == 403
        assert auth_client.post(f"/boqs/{foreign.id}/delete").status_code == 404


class TestConversionFlow:
    def test_convert_then_guards(self, auth_client):
        boq = _create(auth_client)

        response = auth_client.post(f"/boqs/{boq['id']}/convert")
        assert response.status_code == 201
        invoice = response.get_json()["invoice"]
        assert invoice["subtotal"] == "1000.00"
        assert len(invoice["items"]) == 4

        assert auth_client.post(f"/boqs/{boq['id']}/convert").status_code == 409
        assert auth_client.put(f"/boqs/{boq['id']}", json=sample_payload()).status_code == 409

        blocked = auth_client.post(f"/boqs/{boq['id']}/delete")
        assert blocked.status_code == 409
        assert blocked.get_json()["error"] == "guard_error"

    def test_delete_invoice_then_boq(self, auth_client):
        boq = _create(auth_client)
        invoice = auth_client.post(f"/boqs/{boq['id']}/convert").get_json()["invoice"]

        deleted = auth_client.post(f"/invoices/{invoice['id']}/delete")
        assert deleted.status_code == 200
        assert deleted.get_json()["success"] is True
        assert auth_client.get(f"/boqs/{boq['id']}").get_json()["boq"]["status"] == "draft"

        assert auth_client.post(f"/boqs/{boq['id']}/delete").get_json()["success"] is True
        assert auth_client.get("/boqs/").get_json()["boqs"] == []

    def test_invoice_and_customer_lists(self, auth_client):
        boq = _create(auth_client)
        auth_client.post(f"/boqs/{boq['id']}/convert")

        invoices = auth_client.get("/invoices/").get_json()["invoices"]
        customers = auth_client.get("/customers/").get_json()["customers"]
        assert len(invoices) == 1
        assert [c["name"] for c in customers] == ["Kamau Holdings"]
        assert invoices[0]["customer_id"] == customers[0]["id"]

        assert auth_client.post(f"/customers/{customers[0]['id']}/delete").status_code == 409


class TestUnitRoutes:
    def test_seeded_units_listed(self, auth_client):
        names = [u["name"] for u in auth_client.get("/units/").get_json()["units"]]
        assert names == ["Item", "Sm", "Lm", "No", "Cm"]

    def test_create_and_duplicate(self, auth_client):
        assert auth_client.post("/units/", json={"name": "Kg"}).status_code == 201
        assert auth_client.post("/units/", json={"name": "Kg"}).status_code == 409

    def test_delete(self, auth_client):
        unit_id = auth_client.post("/units/", json={"name": "Kg"}).get_json()["unit"]["id"]
        assert auth_client.post(f"/units/{unit_id}/delete").get_json()["success"] is True


class TestAuditRoutes:
    def test_list_and_restore(self, auth_client):
        boq = _create(auth_client)
        auth_client.post(f"/boqs/{boq['id']}/delete")

        entries = auth_client.get("/audit/?action=delete").get_json()["entries"]
        assert len(entries) == 1
        assert entries[0]["entity_number"] == boq["number"]
        assert entries[0]["actor"]["name"] == "Jane Wanjiru"

        restored = auth_client.post(f"/audit/{entries[0]['id']}/restore")
        assert restored.status_code == 201
        assert auth_client.get(f"/boqs/{boq['id']}").status_code == 200

    def test_admin_only(self, app, company, user):
        clerk = User(username="clerk", full_name="Clerk", company_id=company.id, is_admin=False)
        clerk.set_password(TEST_PASSWORD)
        db.session.add(clerk)
        db.session.commit()

        client = app.test_client()
        client.post("/auth/login", json={"username": "clerk", "password": TEST_PASSWORD})

        assert client.get("/audit/").status_code == 403


class TestCli:
    def test_create_company_seeds_units(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["create-company", "Beta Ltd"])

        assert result.exit_code == 0, result.output
        company = Company.query.filter_by(name="Beta Ltd").one()
        assert Unit.query.filter_by(company_id=company.id).count() == 5

        again = runner.invoke(args=["seed-units", str(company.id)])
        assert "0 added" in again.output

    def test_seed_units_unknown_company(self, app):
        result = app.test_cli_runner().invoke(args=["seed-units", "999"])
        assert result.exit_code != 0
