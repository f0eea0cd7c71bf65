"""API endpoint integration tests: FastAPI endpoints with the LLM disabled.

Tests the HTTP layer: request/response shapes and error handling. The
bundled catalog is real; the LLM extractor is switched off or mocked.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from models import ConversationState


@pytest.fixture
def client():
    """Test client with LLM extraction disabled."""
    with patch.dict("os.environ", {"LLM_ENABLED": "false", "REGION": "PH"}):
        from config import get_settings
        get_settings.cache_clear()
        from api import app
        with TestClient(app) as c:
            yield c
        get_settings.cache_clear()


HOUSE = "I need a pump for my 3-floor house, 2 bathrooms, water pressure is weak"


# =============================================================================
# NEXT ACTION
# =============================================================================

class TestNextAction:
    def test_asks_for_water_source(self, client):
        resp = client.post("/next-action", json={
            "history": [{"role": "user", "content": HOUSE}],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["action"] == "ask"
        assert data["state"]["floors"] == 3
        assert "Deep well / borehole" in data["suggestions"]

    def test_recommends_with_roi(self, client):
        resp = client.post("/next-action", json={
            "history": [
                {"role": "user", "content": HOUSE},
                {"role": "assistant", "content": "Where does your water come from?"},
                {"role": "user", "content": "it's from the city mains"},
            ],
        })
        data = resp.json()
        assert data["action"] == "recommend"
        top = data["pumps"][0]
        assert top["model"] == "SCALA2 3-45"
        assert top["roi"]["currency"] == "PHP"
        assert "X-Response-Time-Ms" in resp.headers

    def test_greeting(self, client):
        resp = client.post("/next-action", json={
            "history": [{"role": "user", "content": "hi"}],
        })
        assert resp.json()["action"] == "greet"

    def test_feedback_after_recommend(self, client):
        resp = client.post("/next-action", json={
            "history": [
                {"role": "user", "content": HOUSE + ", city mains"},
                {"role": "assistant", "content": "Here are three pumps."},
                {"role": "user", "content": "thanks!"},
            ],
            "last_action": "recommend",
        })
        data = resp.json()
        assert data["action"] == "ask"
        assert data["pumps"] == []

    def test_invalid_last_action_rejected(self, client):
        resp = client.post("/next-action", json={"history": [], "last_action": "dance"})
        assert resp.status_code == 422

    def test_llm_fills_gaps(self, client):
        from api import _state
        fake = AsyncMock()
        fake.timeout = 1.0
        fake.extract.return_value = ConversationState(water_source="mains")
        with patch.object(_state, "extractor", fake):
            resp = client.post("/next-action", json={
                "history": [{"role": "user", "content": HOUSE}],
            })
        assert resp.json()["action"] == "recommend"


# =============================================================================
# OTHER ENDPOINTS
# =============================================================================

class TestExtractIntent:
    def test_state_shape(self, client):
        resp = client.post("/extract-intent", json={
            "history": [{"role": "user", "content": "150 gpm at 33 ft"}],
        })
        assert resp.status_code == 200
        assert resp.json()["flow_m3h"] == pytest.approx(34.065)


class TestNameplate:
    def test_parse(self, client):
        resp = client.post("/nameplate", json={"text": "WILO\nModel: Stratos 25/1-8\n130 W"})
        assert resp.status_code == 200
        assert resp.json()["brand"] == "Wilo"

    def test_empty_text(self, client):
        assert client.post("/nameplate", json={"text": "  "}).status_code == 400


class TestPumps:
    def test_lookup(self, client):
        resp = client.get("/pumps/MAGNA3 25-80")
        assert resp.status_code == 200
        assert resp.json()["family"] == "MAGNA3"

    def test_not_found(self, client):
        assert client.get("/pumps/NOPE-1").status_code == 404


class TestEvaluate:
    def test_rows(self, client):
        resp = client.post("/evaluate", json={"rows": [{
            "id": "m1", "original_units": "10 hp motor power",
            "application": "MotorDrive",
        }]})
        assert resp.status_code == 200
        assert resp.json()[0]["prediction"] == "SP 17-8"

    def test_no_rows(self, client):
        assert client.post("/evaluate", json={"rows": []}).status_code == 400


class TestHealthEndpoint:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["components"]["catalog"]["pumps"] == 33
        assert data["components"]["llm_extractor"]["status"] == "disabled"
