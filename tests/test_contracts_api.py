"""
API tests for the contract registry and the approval route endpoints
"""

import uuid
from decimal import Decimal

from fastapi.testclient import TestClient

CONTRACT_PAYLOAD = {
    "number": "CN-2026-001",
    "title": "Поставка серверного оборудования",
    "counterparty": 'ООО "Ромашка"',
    "amount": "750000.00",
    "type": "SUPPLY",
    "start_date": "2026-02-01",
    "end_date": "2026-12-31",
    "description": "Годовой договор поставки",
}


def create_contract(client, headers, **overrides):
    payload = {**CONTRACT_PAYLOAD, **overrides}
    response = client.post("/v1/contracts", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestContractRegistry:
    def test_create_contract(self, client: TestClient, auth_headers, test_user):
        data = create_contract(client, auth_headers)

        assert data["status"] == "DRAFT"
        assert data["initiator_id"] == str(test_user.id)
        assert Decimal(data["amount"]) == Decimal("750000")

    def test_create_writes_history_and_notification(self, client: TestClient, auth_headers):
        contract = create_contract(client, auth_headers)

        history = client.get(f"/v1/contracts/{contract['id']}/history", headers=auth_headers)
        assert history.status_code == 200
        assert [h["action"] for h in history.json()] == ["CONTRACT_CREATED"]

        count = client.get("/v1/notifications/unread-count", headers=auth_headers)
        assert count.json()["unread"] == 1

    def test_duplicate_number_rejected(self, client: TestClient, auth_headers):
        create_contract(client, auth_headers)

        response = client.post("/v1/contracts", json=CONTRACT_PAYLOAD, headers=auth_headers)
        assert response.status_code == 400

    def test_end_before_start_is_invalid(self, client: TestClient, auth_headers):
        payload = {**CONTRACT_PAYLOAD, "end_date": "2026-01-01"}

        response = client.post("/v1/contracts", json=payload, headers=auth_headers)
        assert response.status_code == 422

    def test_list_filters_and_paginates(self, client: TestClient, auth_headers):
        create_contract(client, auth_headers, number="CN-1", counterparty="ООО Альфа")
        create_contract(client, auth_headers, number="CN-2", counterparty="АО Бета")
        create_contract(client, auth_headers, number="CN-3", counterparty="ООО Альфа-Строй")

        response = client.get(
            "/v1/contracts",
            params={"counterparty": "Альфа", "limit": 1, "sort_by": "number", "sort_order": "asc"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"] == {"total": 2, "page": 1, "limit": 1, "total_pages": 2}
        assert data["items"][0]["number"] == "CN-1"

    def test_list_rejects_unknown_sort_field(self, client: TestClient, auth_headers):
        response = client.get(
            "/v1/contracts", params={"sort_by": "hashed_password"}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_get_unknown_contract(self, client: TestClient, auth_headers):
        response = client.get(f"/v1/contracts/{uuid.uuid4()}", headers=auth_headers)
        assert response.status_code == 404

    def test_update_draft(self, client: TestClient, auth_headers):
        contract = create_contract(client, auth_headers)

        response = client.put(
            f"/v1/contracts/{contract['id']}",
            json={"amount": "800000", "description": "Уточнённая сумма"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("800000")

    def test_illegal_status_transition(self, client: TestClient, auth_headers):
        contract = create_contract(client, auth_headers)

        response = client.patch(
            f"/v1/contracts/{contract['id']}/status",
            json={"status": "SIGNED"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_archive_draft(self, client: TestClient, auth_headers):
        contract = create_contract(client, auth_headers)

        response = client.patch(
            f"/v1/contracts/{contract['id']}/status",
            json={"status": "ARCHIVED", "comment": "Не актуален"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ARCHIVED"

    def test_delete_only_drafts(self, client: TestClient, auth_headers):
        draft = create_contract(client, auth_headers, number="CN-DRAFT")
        archived = create_contract(client, auth_headers, number="CN-ARCH")
        client.patch(
            f"/v1/contracts/{archived['id']}/status",
            json={"status": "ARCHIVED"},
            headers=auth_headers,
        )

        assert client.delete(f"/v1/contracts/{draft['id']}", headers=auth_headers).status_code == 200
        assert (
            client.delete(f"/v1/contracts/{archived['id']}", headers=auth_headers).status_code
            == 400
        )
        assert client.get(f"/v1/contracts/{draft['id']}", headers=auth_headers).status_code == 404


class TestApprovalRouteApi:
    def test_route_through_api(
        self,
        client: TestClient,
        auth_headers,
        token_headers,
        standard_workflow,
        manager_user,
        lawyer_user,
        director_user,
    ):
        contract = create_contract(client, auth_headers)

        started = client.post(
            f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers
        )
        assert started.status_code == 200, started.text
        assert started.json()["step_number"] == 1
        assert started.json()["approvals_created"] == 1

        for user, expected_status in (
            (manager_user, "IN_REVIEW"),
            (lawyer_user, "IN_REVIEW"),
            (director_user, "APPROVED"),
        ):
            headers = token_headers(user)
            pending = client.get(
                "/v1/approvals", params={"mine": True, "status": "PENDING"}, headers=headers
            ).json()["items"]
            assert len(pending) == 1

            decision = client.put(
                f"/v1/approvals/{pending[0]['id']}",
                json={"status": "APPROVED", "comment": "Согласовано"},
                headers=headers,
            )
            assert decision.status_code == 200, decision.text
            assert decision.json()["contract_status"] == expected_status

        detail = client.get(f"/v1/contracts/{contract['id']}", headers=auth_headers).json()
        assert detail["status"] == "APPROVED"
        assert len(detail["approvals"]) == 3

    def test_decision_by_body(
        self, client: TestClient, auth_headers, token_headers, standard_workflow, manager_user
    ):
        contract = create_contract(client, auth_headers)
        approval_id = client.post(
            "/v1/contracts/start-approval",
            json={"contract_id": contract["id"]},
            headers=auth_headers,
        ).json()["approvals"][0]["id"]

        response = client.put(
            "/v1/approvals",
            json={"approval_id": approval_id, "status": "REJECTED", "comment": "Нет бюджета"},
            headers=token_headers(manager_user),
        )

        assert response.status_code == 200
        assert response.json()["contract_status"] == "REJECTED"

    def test_stranger_cannot_decide(
        self, client: TestClient, auth_headers, standard_workflow, manager_user
    ):
        contract = create_contract(client, auth_headers)
        approval_id = client.post(
            f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers
        ).json()["approvals"][0]["id"]

        response = client.put(
            f"/v1/approvals/{approval_id}", json={"status": "APPROVED"}, headers=auth_headers
        )
        assert response.status_code == 403

    def test_auto_assign_is_idempotent(
        self, client: TestClient, auth_headers, standard_workflow, manager_user
    ):
        contract = create_contract(client, auth_headers)
        client.post(f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers)

        response = client.post(
            f"/v1/contracts/{contract['id']}/auto-assign", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["approvals_created"] == 0
        approvals = client.get(
            f"/v1/approvals/contract/{contract['id']}", headers=auth_headers
        ).json()
        assert len(approvals) == 1

    def test_progress(self, client: TestClient, auth_headers, standard_workflow, manager_user):
        contract = create_contract(client, auth_headers)
        client.post(f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers)

        response = client.get(f"/v1/contracts/{contract['id']}/progress", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["current_step"] == 1
        assert [s["step_number"] for s in data["steps"]] == [1, 2, 3]

    def test_review_outcome_cannot_be_set_by_hand(
        self, client: TestClient, auth_headers, admin_auth_headers, standard_workflow, manager_user
    ):
        contract = create_contract(client, auth_headers)
        client.post(f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers)

        for headers in (auth_headers, admin_auth_headers):
            for target in ("APPROVED", "REJECTED"):
                response = client.patch(
                    f"/v1/contracts/{contract['id']}/status",
                    json={"status": target},
                    headers=headers,
                )
                assert response.status_code == 400

        detail = client.get(f"/v1/contracts/{contract['id']}", headers=auth_headers).json()
        assert detail["status"] == "IN_REVIEW"
        assert [a["status"] for a in detail["approvals"]] == ["PENDING"]

    def test_withdraw_from_review_supersedes_approvals(
        self, client: TestClient, auth_headers, standard_workflow, manager_user
    ):
        contract = create_contract(client, auth_headers)
        client.post(f"/v1/contracts/{contract['id']}/start-approval", headers=auth_headers)

        response = client.patch(
            f"/v1/contracts/{contract['id']}/status",
            json={"status": "ARCHIVED", "comment": "Отозван"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        detail = client.get(f"/v1/contracts/{contract['id']}", headers=auth_headers).json()
        assert detail["approvals"] == []

    def test_unknown_status_filter(self, client: TestClient, auth_headers):
        response = client.get(
            "/v1/approvals", params={"status": "PENDING,LOST"}, headers=auth_headers
        )
        assert response.status_code == 400
