"""Tests for the HTTP host: session, review and word bank routes."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from conftest import START, make_words
from httpx import ASGITransport, AsyncClient

from backend.main import app
from backend.models import ErrorRecord
from backend.srs.scheduler import ReviewScheduler
from backend.srs.session import SessionEngine
from backend.storage import Storage


@pytest_asyncio.fixture
async def client(engine: SessionEngine) -> AsyncGenerator[AsyncClient, None]:
    app.state.engine = engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# --- Session ---


class TestSessionRoutes:
    @pytest.mark.asyncio
    async def test_start_with_empty_bank_is_404(self, client: AsyncClient) -> None:
        response = await client.post("/api/session/start", json={"mode": "practice"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_mode_is_422(self, client: AsyncClient, storage: Storage) -> None:
        await storage.save_word_bank(make_words(2))
        response = await client.post("/api/session/start", json={"mode": "exam"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_idle_state_and_confirm_without_session(self, client: AsyncClient) -> None:
        response = await client.get("/api/session/state")
        assert response.json()["state"] == "idle"

        response = await client.post("/api/session/confirm")
        assert response.status_code == 409
        response = await client.post("/api/session/next")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_full_practice_round(self, client: AsyncClient) -> None:
        for word, pinyin in (("学", "xué"), ("习", "xí")):
            response = await client.post("/api/words", json={"word": word, "pinyin": pinyin})
            assert response.status_code == 200
        assert len((await client.get("/api/words")).json()["words"]) == 2

        response = await client.post(
            "/api/session/start",
            json={"mode": "practice", "total": 2, "speed_per_word": 3, "words_per_page": 1},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "active"
        assert body["progress"] == "1/2"
        assert body["timer"]["countdown"] == "0s"
        word_id = body["cards"][0]["id"]

        body = (await client.post(f"/api/session/toggle/{word_id}")).json()
        assert body["cards"][0]["marked_wrong"] is True
        assert body["cards"][0]["show_pinyin"] is True

        body = (await client.post("/api/session/next")).json()
        assert body["progress"] == "2/2"
        body = (await client.post("/api/session/next")).json()
        assert body["state"] == "finished"
        assert body["results"]["error_count"] == 1
        assert body["results"]["accuracy"] == 50
        assert body["results"]["error_words"][0]["word_id"] == word_id

        errors = (await client.get("/api/errors")).json()
        assert [e["word_id"] for e in errors] == [word_id]
        assert "marked_at" in errors[0]
        assert "wordId" not in errors[0]

        response = await client.post(f"/api/session/results/toggle/{word_id}", params={"checked": False})
        assert response.json()["error_count"] == 0

        response = await client.post("/api/session/confirm")
        assert response.json()["error_words"] == []
        assert response.json()["saved"] is True
        assert (await client.get("/api/errors")).json() == []

    @pytest.mark.asyncio
    async def test_pause_resume_and_retry(self, client: AsyncClient, storage: Storage) -> None:
        await storage.save_word_bank(make_words(3))
        await client.post("/api/session/start", json={"mode": "test", "words_per_page": 3})

        assert (await client.post("/api/session/pause")).json()["state"] == "paused"
        assert (await client.post("/api/session/resume")).json()["state"] == "active"

        body = (await client.post("/api/session/pinyin", json={"visible": True})).json()
        assert body["show_pinyin"] is False

        body = (await client.post("/api/session/finish")).json()
        assert body["state"] == "finished"
        assert (await client.post("/api/session/autosave")).json() == {"saved": True}

        body = (await client.post("/api/session/retry", json={})).json()
        assert body["state"] == "active"
        assert body["mode"] == "test"

        response = await client.post("/api/session/retry", json={"test": True, "errors_only": True})
        assert response.status_code == 404


# --- Review ---


class TestReviewRoutes:
    @pytest.mark.asyncio
    async def test_plans_and_review_sessions(self, client: AsyncClient, scheduler: ReviewScheduler) -> None:
        await scheduler.create_plan_for_error_word(
            ErrorRecord(id="round_1_0_w1_0", word_id="w1", word="学", round_id="round_1", marked_at=START)
        )

        body = (await client.get("/api/review/plans")).json()
        assert body["total"] == 1
        assert [p["word_id"] for p in body["today"]] == ["w1"]

        words = (await client.get("/api/review/words")).json()
        assert words[0]["progress"] == "○○○○○○"
        assert words[0]["current_stage"] == 1
        assert (await client.get("/api/review/words", params={"due_only": True})).json() == []

        assert (await client.post("/api/review/w1/test")).status_code == 404

        body = (await client.post("/api/review/w1/practice")).json()
        assert body["mode"] == "error-practice"
        assert [c["id"] for c in body["cards"]] == ["w1"]


# --- Stats ---


class TestStatsRoutes:
    @pytest.mark.asyncio
    async def test_stats_counts(self, client: AsyncClient, storage: Storage) -> None:
        await storage.save_word_bank(make_words(4))
        body = (await client.get("/api/stats")).json()
        assert body["words"] == 4
        assert body["sessions"] == 0
        assert body["plans"] == 0

    @pytest.mark.asyncio
    async def test_batch_rejects_unknown_action(self, client: AsyncClient) -> None:
        response = await client.post("/api/errors/batch", json={"action": "maybe", "selections": []})
        assert response.status_code == 422
