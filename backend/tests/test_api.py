"""
API tests for the station board and questionnaire routes.
"""
import pytest

from app.services.xfactory_client import QUESTIONNAIRE_STRUCTURE_PATH

pytestmark = pytest.mark.integration

HEADERS = {"X-User-ID": "founder-1"}


def _statuses(body):
    return {s["id"]: s["status"] for s in body["stations"]}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requires_caller_identity(client):
    response = client.get("/teams/5/stations")
    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTHENTICATION_ERROR"


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


def test_station_board(client, upstream):
    upstream.roadmaps[5] = {"admin_unlocks": {"pitch_deck": True}, "admin_locks": {}}
    response = client.get("/teams/5/stations", params={"completed": "1,2,3", "current": 4}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    statuses = _statuses(body)
    assert statuses[4] == "active"
    assert statuses[5] == "locked"
    assert statuses[1] == "completed"
    assert body["team_id"] == 5
    assert len(body["nodes"]) == 18


def test_station_board_with_concept_card(client, upstream):
    upstream.concept_cards.add(5)
    response = client.get("/teams/5/stations", params={"current": 1}, headers=HEADERS)
    assert _statuses(response.json())[1] == "completed"


def test_station_board_rejects_bad_input(client):
    assert client.get("/teams/5/stations", params={"completed": "1,x"}, headers=HEADERS).status_code == 400
    assert client.get("/teams/5/stations", params={"completed": "1,99"}, headers=HEADERS).status_code == 404
    assert client.get("/teams/5/stations", params={"current": 0}, headers=HEADERS).status_code == 404


def test_enter_station(client, upstream):
    upstream.roadmaps[5] = {"admin_unlocks": {"pitch_deck": True}}
    ok = client.post("/teams/5/stations/4/enter", json={"completed": [1, 2, 3]}, headers=HEADERS)
    assert ok.status_code == 200
    assert ok.json() == {"station_id": 4, "review_mode": False}

    review = client.post("/teams/5/stations/2/enter", json={"completed": [1, 2, 3]}, headers=HEADERS)
    assert review.json()["review_mode"] is True

    locked = client.post("/teams/5/stations/5/enter", json={"completed": [1, 2, 3]}, headers=HEADERS)
    assert locked.status_code == 422
    assert locked.json()["details"] == {"station_id": 5}


def test_save_overrides(client, upstream):
    response = client.put("/teams/5/overrides", json={"locked": ["mvp", "legal"]}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["admin_locks"]["mvp"] is True
    assert body["admin_unlocks"]["pitch_deck"] is True
    assert upstream.puts[-1] == (5, body)

    bad = client.put("/teams/5/overrides", json={"locked": ["rocket"]}, headers=HEADERS)
    assert bad.status_code == 400


def test_schedule_override_refresh(client):
    response = client.post("/teams/5/overrides/refresh", headers=HEADERS)
    assert response.status_code == 202


def test_questionnaire_flow(client, upstream):
    view = client.get("/questionnaire", params={"team_id": 5}, headers=HEADERS).json()
    assert view["current_section"] == 1
    assert view["question_number"] == 1
    assert view["total_questions"] == 16

    blocked = client.post("/questionnaire/next", params={"team_id": 5}, headers=HEADERS)
    assert blocked.status_code == 400
    assert blocked.json()["details"] == {"question_id": "q1_1"}

    view = client.put(
        "/questionnaire/answers/q1_1", params={"team_id": 5}, json={"text": "Paperwork"}, headers=HEADERS
    ).json()
    assert view["answer"] == "Paperwork"

    view = client.post("/questionnaire/next", params={"team_id": 5}, headers=HEADERS).json()
    assert view["question_number"] == 2

    view = client.post("/questionnaire/previous", params={"team_id": 5}, headers=HEADERS).json()
    assert view["question_number"] == 1

    jump = client.post("/questionnaire/jump/3", params={"team_id": 5}, headers=HEADERS)
    assert jump.status_code == 422


def test_unknown_question_is_rejected(client):
    response = client.put("/questionnaire/answers/q42", json={"text": "x"}, headers=HEADERS)
    assert response.status_code == 400


def test_submit_from_api(client, upstream):
    response = client.post("/questionnaire/submit", params={"team_id": 5}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["submitted"] is True
    assert set(body["sections"]) == {f"section_{n}" for n in range(1, 9)}
    assert upstream.posts[-1]["team_id"] == 5


def test_questionnaire_unavailable(client, upstream):
    upstream.fail("GET", QUESTIONNAIRE_STRUCTURE_PATH)
    response = client.get("/questionnaire", headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["error_code"] == "EXTERNAL_SERVICE_ERROR"
