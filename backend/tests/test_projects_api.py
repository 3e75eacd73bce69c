"""
Tests for project board endpoints and share management.
"""
import pytest
import uuid

from httpx import AsyncClient


async def _create_project(async_client: AsyncClient, auth_headers: dict, **payload) -> dict:
    response = await async_client.post(
        "/api/v1/projects",
        json={"name": "Refonte site", **payload},
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestProjectBoard:

    @pytest.mark.asyncio
    async def test_create_with_default_columns(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)

        assert project["share_enabled"] is False
        assert [(c["name"], c["position"]) for c in project["columns"]] == [
            ("To do", 0),
            ("In progress", 1),
            ("Done", 2),
        ]

    @pytest.mark.asyncio
    async def test_create_for_client(self, async_client: AsyncClient, auth_headers, prospect):
        project = await _create_project(
            async_client, auth_headers, client_id=str(prospect.id), columns=["Backlog"]
        )

        assert project["client_id"] == str(prospect.id)
        assert [c["name"] for c in project["columns"]] == ["Backlog"]

    @pytest.mark.asyncio
    async def test_unknown_client(self, async_client: AsyncClient, auth_headers):
        response = await async_client.post(
            "/api/v1/projects",
            json={"name": "Refonte site", "client_id": str(uuid.uuid4())},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "CLIENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_columns_and_cards(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers, columns=["A faire"])

        column = await async_client.post(
            f"/api/v1/projects/{project['id']}/columns", json={"name": "Recette"}, headers=auth_headers
        )
        assert column.status_code == 201
        assert column.json()["position"] == 1

        first_column_id = project["columns"][0]["id"]
        for title in ("Maquettes", "Intégration"):
            card = await async_client.post(
                f"/api/v1/projects/{project['id']}/columns/{first_column_id}/cards",
                json={"title": title, "priority": "high"},
                headers=auth_headers,
            )
            assert card.status_code == 201

        board = await async_client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers)
        columns = board.json()["columns"]
        assert [c["name"] for c in columns] == ["A faire", "Recette"]
        assert [(card["title"], card["position"]) for card in columns[0]["cards"]] == [
            ("Maquettes", 0),
            ("Intégration", 1),
        ]

    @pytest.mark.asyncio
    async def test_card_in_unknown_column(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)

        response = await async_client.post(
            f"/api/v1/projects/{project['id']}/columns/{uuid.uuid4()}/cards",
            json={"title": "Perdue"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "COLUMN_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_priority(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)
        column_id = project["columns"][0]["id"]

        response = await async_client.post(
            f"/api/v1/projects/{project['id']}/columns/{column_id}/cards",
            json={"title": "Carte", "priority": "someday"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestProjectShare:

    @pytest.mark.asyncio
    async def test_share_lifecycle(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)
        url = f"/api/v1/projects/{project['id']}/share"

        status = await async_client.get(url, headers=auth_headers)
        assert status.json() == {"share_enabled": False, "share_token": None, "share_url": None, "guests": []}

        enabled = (await async_client.post(url, json={"action": "enable"}, headers=auth_headers)).json()
        assert enabled["share_enabled"] is True
        assert enabled["share_url"].endswith(f"/shared/project/{enabled['share_token']}")

        disabled = (await async_client.post(url, json={"action": "disable"}, headers=auth_headers)).json()
        assert disabled["share_enabled"] is False
        assert disabled["share_token"] == enabled["share_token"]

        regenerated = (await async_client.post(url, json={"action": "regenerate"}, headers=auth_headers)).json()
        assert regenerated["share_enabled"] is True
        assert regenerated["share_token"] != enabled["share_token"]

    @pytest.mark.asyncio
    async def test_unknown_action(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)

        response = await async_client.post(
            f"/api/v1/projects/{project['id']}/share", json={"action": "publish"}, headers=auth_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_guests(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)
        guests_url = f"/api/v1/projects/{project['id']}/guests"

        invited = await async_client.post(
            guests_url, json={"email": "Paul@Example.com", "name": "Paul"}, headers=auth_headers
        )
        assert invited.status_code == 201
        guest = invited.json()
        assert guest["email"] == "paul@example.com"
        assert "token" not in guest

        status = await async_client.get(f"/api/v1/projects/{project['id']}/share", headers=auth_headers)
        assert [g["id"] for g in status.json()["guests"]] == [guest["id"]]

        removed = await async_client.delete(f"{guests_url}/{guest['id']}", headers=auth_headers)
        assert removed.status_code == 204

        status = await async_client.get(f"/api/v1/projects/{project['id']}/share", headers=auth_headers)
        assert status.json()["guests"] == []

    @pytest.mark.asyncio
    async def test_invalid_guest_email(self, async_client: AsyncClient, auth_headers):
        project = await _create_project(async_client, auth_headers)

        response = await async_client.post(
            f"/api/v1/projects/{project['id']}/guests", json={"email": "not-an-email"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_project(self, async_client: AsyncClient, auth_headers):
        response = await async_client.get(f"/api/v1/projects/{uuid.uuid4()}/share", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["code"] == "PROJECT_NOT_FOUND"
