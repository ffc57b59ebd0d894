import json

from task_service.core import rabbitmq
from task_service.core.auth import auth_service, get_current_user
from task_service.core.rabbitmq import RabbitMQPublisher, get_task_queue
from task_service.main import app
from tests.fakes import FakeChannel, FakeConnection

PREFIX = "/api/v1/tasks"


def _as(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}


def test_root_reports_service(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "task_service"


def test_create_returns_201_and_owner(client, queue):
    response = client.post(
        f"{PREFIX}/",
        json={"title": "Pay rent", "priority": "high", "due_date": "2024-04-01T12:00:00+02:00"},
        headers=_as(3),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["user_id"] == 3
    assert body["status"] == "pending"
    assert body["priority"] == "high"
    assert body["due_date"].startswith("2024-04-01T10:00:00")
    assert queue.jobs == [("task-status-update", {"task_id": body["id"], "status": "pending"})]


def test_status_job_is_published_after_the_response(client, monkeypatch):
    publisher = RabbitMQPublisher()
    publisher.connection = FakeConnection()
    publisher.channel = FakeChannel()
    monkeypatch.setattr(rabbitmq, "rabbitmq_publisher", publisher)
    del app.dependency_overrides[get_task_queue]

    response = client.post(f"{PREFIX}/", json={"title": "Pay rent"})

    assert response.status_code == 201
    [(_, _, body, _)] = publisher.channel.published
    assert json.loads(body)["data"] == {"task_id": response.json()["id"], "status": "pending"}


def test_create_rejects_missing_title(client):
    response = client.post(f"{PREFIX}/", json={"description": "no title"})

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


def test_list_returns_page_envelope(client):
    for n in range(3):
        client.post(f"{PREFIX}/", json={"title": f"Task {n}"})
    client.post(f"{PREFIX}/", json={"title": "Someone else's"}, headers=_as(2))

    response = client.get(f"{PREFIX}/", params={"limit": 2, "page": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["page"] == 2
    assert body["limit"] == 2
    assert body["total_pages"] == 2
    assert len(body["data"]) == 1


def test_list_filters_by_status_query_param(client):
    created = client.post(f"{PREFIX}/", json={"title": "Started", "status": "in_progress"}).json()
    client.post(f"{PREFIX}/", json={"title": "Not started"})

    response = client.get(f"{PREFIX}/", params={"status": "in_progress"})

    assert [task["id"] for task in response.json()["data"]] == [created["id"]]


def test_list_rejects_out_of_range_parameters(client):
    for params in ({"limit": 101}, {"limit": 0}, {"page": 0}, {"sort_by": "title"}, {"sort_order": "sideways"}):
        response = client.get(f"{PREFIX}/", params=params)

        assert response.status_code == 400, params
        error = response.json()["error"]
        assert error["status_code"] == 400
        assert error["issues"]


def test_get_update_delete_lifecycle(client):
    task = client.post(f"{PREFIX}/", json={"title": "Draft", "description": "first"}).json()

    fetched = client.get(f"{PREFIX}/{task['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Draft"

    updated = client.patch(f"{PREFIX}/{task['id']}", json={"status": "completed"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "completed"
    assert updated.json()["description"] == "first"
    assert updated.json()["completed_at"] is not None

    deleted = client.delete(f"{PREFIX}/{task['id']}")
    assert deleted.status_code == 204

    again = client.delete(f"{PREFIX}/{task['id']}")
    assert again.status_code == 404
    assert again.json()["error"]["message"] == f"Task with ID {task['id']} not found"


def test_patch_rejects_null_title(client):
    task = client.post(f"{PREFIX}/", json={"title": "Draft"}).json()

    response = client.patch(f"{PREFIX}/{task['id']}", json={"title": None})

    assert response.status_code == 400


def test_other_users_task_is_not_found_everywhere(client):
    task = client.post(f"{PREFIX}/", json={"title": "Private"}, headers=_as(1)).json()

    assert client.get(f"{PREFIX}/{task['id']}", headers=_as(2)).status_code == 404
    assert client.patch(f"{PREFIX}/{task['id']}", json={"title": "x"}, headers=_as(2)).status_code == 404
    assert client.delete(f"{PREFIX}/{task['id']}", headers=_as(2)).status_code == 404
    assert client.get(f"{PREFIX}/", headers=_as(2)).json()["total"] == 0
    batch = client.post(f"{PREFIX}/batch", json={"task_ids": [task["id"]], "action": "delete"}, headers=_as(2))
    assert batch.json() == {"affected": 0}

    assert client.get(f"{PREFIX}/{task['id']}", headers=_as(1)).json()["title"] == "Private"


def test_batch_endpoint(client):
    ids = [client.post(f"{PREFIX}/", json={"title": f"T{n}"}).json()["id"] for n in range(2)]

    response = client.post(f"{PREFIX}/batch", json={"task_ids": ids, "action": "complete"})

    assert response.status_code == 200
    assert response.json() == {"affected": 2}
    assert client.get(f"{PREFIX}/stats").json()["completed"] == 2


def test_stats_endpoint(client):
    client.post(f"{PREFIX}/", json={"title": "A", "status": "pending"})

    response = client.get(f"{PREFIX}/stats")

    assert response.status_code == 200
    assert response.json() == {
        "total": 1,
        "completed": 0,
        "in_progress": 0,
        "pending": 1,
        "high_priority": 0,
    }


def test_create_succeeds_when_queue_is_down(client, queue):
    queue.fail = True

    response = client.post(f"{PREFIX}/", json={"title": "Still saved"})

    assert response.status_code == 201
    assert client.get(f"{PREFIX}/{response.json()['id']}").status_code == 200


def test_user_comes_from_auth_service(client, monkeypatch):
    app.dependency_overrides.pop(get_current_user)

    async def verify_token(token):
        return {"id": 42, "email": "owner@example.com"} if token == "good" else None

    monkeypatch.setattr(auth_service, "verify_token", verify_token)

    created = client.post(f"{PREFIX}/", json={"title": "Mine"}, headers={"Authorization": "Bearer good"})
    rejected = client.get(f"{PREFIX}/", headers={"Authorization": "Bearer bad"})

    assert created.status_code == 201
    assert created.json()["user_id"] == 42
    assert rejected.status_code == 401
    assert rejected.headers["WWW-Authenticate"] == "Bearer"
