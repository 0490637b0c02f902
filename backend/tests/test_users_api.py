"""Current user endpoint tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_get_me(client: AsyncClient, current_user):
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "user@test.com"
    assert data["id"] == str(current_user.id)
    assert data["has_push_token"] is False


@pytest.mark.asyncio
async def test_register_push_token(client: AsyncClient, current_user, fake_session):
    response = await client.put(
        "/api/v1/users/me/push-token",
        json={"expo_push_token": "ExponentPushToken[abc123]"},
    )
    assert response.status_code == 200
    assert response.json()["has_push_token"] is True
    assert current_user.expo_push_token == "ExponentPushToken[abc123]"
    assert fake_session.commits == 1


@pytest.mark.asyncio
async def test_clear_push_token(client: AsyncClient, current_user):
    current_user.expo_push_token = "ExponentPushToken[abc123]"

    response = await client.put("/api/v1/users/me/push-token", json={"expo_push_token": None})
    assert response.status_code == 200
    assert response.json()["has_push_token"] is False
    assert current_user.expo_push_token is None
