"""Tests for daily check-in API endpoints."""

import pytest
from httpx import AsyncClient


class TestCheckin:
    """Tests for POST /api/v1/checkin"""

    @pytest.mark.asyncio
    async def test_checkin_success(self, test_client: AsyncClient, auth_headers: dict):
        response = await test_client.post("/api/v1/checkin", headers=auth_headers)

        assert response.status_code == 200
        result = response.json()
        assert result["streak_days"] == 1
        assert result["reward_amount"] == 10
        assert result["new_balance"] == 10
        assert result["bonus_rewards"] == []
        assert "next_claim_at" in result

    @pytest.mark.asyncio
    async def test_checkin_twice_conflict(self, test_client: AsyncClient, auth_headers: dict):
        first = await test_client.post("/api/v1/checkin", headers=auth_headers)

        response = await test_client.post("/api/v1/checkin", headers=auth_headers)

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "REWARD_ALREADY_CLAIMED_TODAY"
        assert error["details"]["nextClaimAt"].startswith(first.json()["next_claim_at"][:10])

    @pytest.mark.asyncio
    async def test_checkin_requires_auth(self, test_client: AsyncClient):
        response = await test_client.post("/api/v1/checkin")

        assert response.status_code == 401


class TestCheckinStatus:
    """Tests for GET /api/v1/checkin/status and /history"""

    @pytest.mark.asyncio
    async def test_status_before_and_after(self, test_client: AsyncClient, auth_headers: dict):
        before = await test_client.get("/api/v1/checkin/status", headers=auth_headers)
        await test_client.post("/api/v1/checkin", headers=auth_headers)
        after = await test_client.get("/api/v1/checkin/status", headers=auth_headers)

        assert before.status_code == 200
        assert before.json()["can_checkin"] is True
        assert before.json()["streak_days"] == 0
        assert after.json()["can_checkin"] is False
        assert after.json()["streak_days"] == 1
        assert after.json()["next_bonus"] == {"type": "week_streak", "days_remaining": 6, "bonus": 20}

    @pytest.mark.asyncio
    async def test_history(self, test_client: AsyncClient, auth_headers: dict):
        await test_client.post("/api/v1/checkin", headers=auth_headers)

        response = await test_client.get(
            "/api/v1/checkin/history", params={"limit": 5}, headers=auth_headers
        )

        assert response.status_code == 200
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["reward_amount"] == 10
