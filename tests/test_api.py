import pytest
from fastapi.testclient import TestClient

from app.main import create_app

REPORT = {
    "reporter_id": "citizen-1",
    "title": "Pothole on Station Road",
    "category": "Pothole",
    "image": "uploads/pothole_1.jpg",
    "location": {"longitude": 72.75, "latitude": 19.30},
}


@pytest.fixture
def client(config, container):
    with TestClient(create_app(config, container)) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    db = client.get("/health/db").json()
    assert db["database"] == "memory"


def test_submit_and_read_issue(client):
    response = client.post("/issues", json=REPORT)
    assert response.status_code == 201
    body = response.json()
    assert body["created"] is True
    issue_id = body["issue"]["id"]

    issue = client.get(f"/issues/{issue_id}").json()
    assert issue["status"] == "Submitted"
    assert issue["ai_severity"] == "Medium"
    assert issue["priority_score"] == 30.0


def test_missing_image_is_422_with_field(client):
    response = client.post("/issues", json={**REPORT, "image": None})
    assert response.status_code == 422
    assert response.json()["field"] == "image"


def test_duplicate_is_409_with_existing_id(client):
    first = client.post("/issues", json=REPORT).json()["issue"]["id"]
    response = client.post("/issues", json={**REPORT, "reporter_id": "citizen-2"})
    assert response.status_code == 409
    assert response.json()["existing_issue_id"] == first


def test_merge_answers_200(client):
    first = client.post("/issues", json=REPORT).json()["issue"]["id"]
    response = client.post("/issues", json={**REPORT, "reporter_id": "citizen-2", "merge_duplicates": True})
    assert response.status_code == 200
    assert response.json()["merged_into"] == first


def test_unknown_issue_is_404(client):
    assert client.get("/issues/does-not-exist").status_code == 404


def test_invalid_transition_is_409(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    response = client.put(
        f"/workflows/{issue_id}/status",
        json={"status": "Resolved", "actor_id": "staff-1", "resolution_proof": "after.jpg"},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["current_status"] == "Submitted"
    assert body["allowed"] == ["Acknowledged", "Rejected"]


def test_workflow_and_allowed_transitions(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    response = client.put(f"/workflows/{issue_id}/status", json={"status": "Acknowledged", "actor_id": "staff-1"})
    assert response.status_code == 200
    assert response.json()["status"] == "Acknowledged"
    allowed = client.get(f"/workflows/{issue_id}/transitions").json()
    assert allowed["allowed"] == ["InProgress", "Rejected"]


def test_upvote_roundtrip(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    cast = client.put(f"/issues/{issue_id}/upvote", json={"user_id": "neighbour-1"}).json()
    assert cast["upvote_count"] == 1
    assert cast["newly_cast"] is True
    removed = client.delete(f"/issues/{issue_id}/upvote", params={"user_id": "neighbour-1"}).json()
    assert removed["upvote_count"] == 0


def test_triage_queue_is_priority_ordered(client):
    client.post("/issues", json={**REPORT, "category": "Garbage", "image": "trash.jpg"})
    client.post("/issues", json={**REPORT, "category": "StreetLight", "image": "streetlight.jpg"})
    client.post("/issues", json=REPORT)
    scores = [issue["priority_score"] for issue in client.get("/issues").json()]
    assert scores == sorted(scores, reverse=True)
    assert client.get("/issues", params={"status": "Resolved"}).json() == []


def test_municipal_page_follow_and_post(client):
    page = client.post("/municipal", json={
        "name": "Vasai Roads Department",
        "handle": "vasai_roads",
        "department": "Roads",
        "region": {"city": "Vasai"},
        "page_type": "Department",
        "created_by_admin_id": "admin-1",
    })
    assert page.status_code == 201
    page_id = page.json()["id"]

    assert client.post(f"/municipal/{page_id}/follow", json={"user_id": "f1"}).json()["message"] == "Following"
    assert client.get(f"/municipal/{page_id}/followers").json() == ["f1"]
    posted = client.post(f"/municipal/{page_id}/post", json={"title": "Road closure", "body": "Detour"})
    assert posted.json()["notified"] == 1


def test_leaderboard_and_badges(client):
    client.post("/issues", json=REPORT)
    leaders = client.get("/gamification/leaderboard").json()
    assert leaders[0]["id"] == "citizen-1"
    assert leaders[0]["points"] == 10
    badge_ids = {badge["id"] for badge in client.get("/gamification/badges").json()}
    assert {"first_report", "civic_hero", "top_voter", "problem_solver"} == badge_ids


def test_comments_endpoints(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    created = client.post(f"/issues/{issue_id}/comments", json={"user_id": "u1", "text": "Still there"})
    assert created.status_code == 201
    thread = client.get(f"/issues/{issue_id}/comments").json()
    assert thread[0]["comment"]["text"] == "Still there"


def test_assign_and_worker_queue(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    response = client.put(
        f"/workflows/{issue_id}/assign",
        json={"actor_id": "admin-1", "department_tag": "Roads", "assigned_to": "worker-7"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Acknowledged"

    queue = client.get("/workflows/assigned/worker-7").json()
    assert [issue["id"] for issue in queue] == [issue_id]


def test_notification_inbox_endpoints(client):
    issue_id = client.post("/issues", json=REPORT).json()["issue"]["id"]
    client.put(f"/workflows/{issue_id}/assign", json={"actor_id": "admin-1", "assigned_to": "worker-7"})

    inbox = client.get("/notifications/worker-7").json()
    assert inbox["unread_count"] == 1
    entry_id = inbox["notifications"][0]["id"]

    assert client.put(f"/notifications/worker-7/{entry_id}/read").json()["read"] is True
    assert client.get("/notifications/worker-7").json()["unread_count"] == 0
    assert client.put("/notifications/worker-7/missing/read").status_code == 404
    assert client.put("/notifications/citizen-1/read-all").json()["success"] is True
    assert client.get("/notifications/citizen-1").json()["unread_count"] == 0
