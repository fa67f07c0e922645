from unittest.mock import MagicMock
import pytest
from fastapi.testclient import TestClient
from examprep.core.auth import ADMIN, STUDENT, create_token
from examprep.jobs.queue import QueueConfig
from examprep.main import create_app
from conftest import mcq_options


def auth(user_id="u1", roles=(STUDENT,)):
    return {"Authorization": f"Bearer {create_token(user_id, list(roles))}"}


ADMIN_AUTH = auth("root", roles=(ADMIN,))


@pytest.fixture
def client(settings, storage, dispatcher):
    app = create_app(settings, storage=storage, dispatcher=dispatcher,
                     queue_config=QueueConfig.from_settings(settings))
    return TestClient(app)


def test_health_reports_inline_mode(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "queue": "inline"}


def test_submit_marks_processing_and_queues_scoring(client, storage, dispatcher):
    storage.add_attempt("a1")
    r = client.patch("/v1/attempts/a1/submit", json={"time_taken": 1200}, headers=auth())
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "processing"
    assert body["job_id"] == "job-score"
    assert body["time_taken"] == 1200
    assert body["submitted_at"] is not None
    assert dispatcher.calls == [("score", "a1", "u1", "t1")]


def test_submit_rejects_other_users(client, storage, dispatcher):
    storage.add_attempt("a1", user_id="u2")
    r = client.patch("/v1/attempts/a1/submit", json={}, headers=auth("u1"))
    assert r.status_code == 403
    assert dispatcher.calls == []


def test_submit_twice_conflicts(client, storage):
    storage.add_attempt("a1", status="submitted", score=3)
    r = client.patch("/v1/attempts/a1/submit", json={}, headers=auth())
    assert r.status_code == 409


def test_submit_unknown_attempt(client):
    r = client.patch("/v1/attempts/nope/submit", json={}, headers=auth())
    assert r.status_code == 404
    assert "nope" in r.json()["detail"]


def test_submit_requires_token(client, storage):
    storage.add_attempt("a1")
    assert client.patch("/v1/attempts/a1/submit", json={}).status_code in (401, 403)
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.patch("/v1/attempts/a1/submit", json={}, headers=bad).status_code == 401


def test_result_visible_to_owner_and_admin(client, storage):
    attempt = storage.add_attempt("a1", status="submitted", score=7)
    attempt.summary = {"overall": {"score": 7}, "sections": []}
    assert client.get("/v1/attempts/a1/result", headers=auth()).json()["summary"]["overall"]["score"] == 7
    assert client.get("/v1/attempts/a1/result", headers=ADMIN_AUTH).status_code == 200
    assert client.get("/v1/attempts/a1/result", headers=auth("u9")).status_code == 403


def test_admin_rescore(client, storage, dispatcher):
    storage.add_attempt("a1", status="submitted", score=1)
    assert client.post("/v1/admin/attempts/a1/rescore", headers=auth()).status_code == 403
    r = client.post("/v1/admin/attempts/a1/rescore", headers=ADMIN_AUTH)
    assert r.status_code == 200
    assert r.json() == {"attempt_id": "a1", "job_id": "job-score"}
    assert storage.attempts["a1"].status == "processing"
    assert dispatcher.calls == [("score", "a1", "u1", "t1")]


def test_job_status_without_queue(client):
    assert client.get("/v1/admin/jobs/j1", headers=ADMIN_AUTH).status_code == 503


def test_job_status_with_queue(settings, storage):
    dispatcher = MagicMock()
    dispatcher.job_status.side_effect = lambda job_id: None if job_id == "gone" else {
        "id": job_id, "queue": "test-scoring", "state": "done", "status": "finished",
        "result": {"score": 4}, "error": None,
    }
    config = QueueConfig.from_settings(settings, connection=MagicMock())
    client = TestClient(create_app(settings, storage=storage, dispatcher=dispatcher, queue_config=config))

    r = client.get("/v1/admin/jobs/j1", headers=ADMIN_AUTH)
    assert r.status_code == 200
    assert r.json()["state"] == "done"
    assert r.json()["result"] == {"score": 4}
    assert client.get("/v1/admin/jobs/gone", headers=ADMIN_AUTH).status_code == 404


def test_stats_unavailable_without_cache(client):
    assert client.get("/v1/tests/t1/stats").status_code == 404


def test_stats_served_from_cache(settings, storage, dispatcher):
    redis = MagicMock()
    redis.get.return_value = b'{"totalAttempts": 2, "avgScore": 5.0}'
    config = QueueConfig.from_settings(settings, connection=redis)
    client = TestClient(create_app(settings, storage=storage, dispatcher=dispatcher, queue_config=config))
    r = client.get("/v1/tests/t1/stats")
    assert r.status_code == 200
    assert r.json()["totalAttempts"] == 2
    redis.get.assert_called_once_with("analytics:test:t1")


def test_inline_submission_is_scored_and_ranked(settings, storage):
    storage.add_test("t1", total_marks=4)
    storage.add_question("q1", options=mcq_options("A"), marks=4, negative_marks=1)
    storage.add_attempt("a0", user_id="u0", status="submitted", score=-1)
    storage.add_attempt("a1")
    storage.add_response("r1", "q1", selected_answer="A")
    client = TestClient(create_app(settings, storage=storage, queue_config=QueueConfig.from_settings(settings)))

    r = client.patch("/v1/attempts/a1/submit", json={"time_taken": 60}, headers=auth())
    assert r.status_code == 200
    assert r.json()["status"] == "submitted"
    assert r.json()["job_id"] is None

    result = client.get("/v1/attempts/a1/result", headers=auth()).json()
    assert result["score"] == 4
    assert result["max_score"] == 4
    assert result["percentile"] == 50
    assert storage.attempts["a0"].percentile == 0


def test_user_stats_served_to_owner_and_admin(settings, storage, dispatcher):
    redis = MagicMock()
    redis.get.return_value = b'{"attemptId": "a1", "score": 8, "percentile": 66.67}'
    config = QueueConfig.from_settings(settings, connection=redis)
    client = TestClient(create_app(settings, storage=storage, dispatcher=dispatcher, queue_config=config))

    r = client.get("/v1/tests/t1/stats/users/u1", headers=auth("u1"))
    assert r.status_code == 200
    assert r.json() == {"attemptId": "a1", "score": 8, "percentile": 66.67}
    redis.get.assert_called_once_with("analytics:user:u1:t1")
    assert client.get("/v1/tests/t1/stats/users/u1", headers=ADMIN_AUTH).status_code == 200
    assert client.get("/v1/tests/t1/stats/users/u1", headers=auth("u2")).status_code == 403


def test_user_stats_unavailable_without_cache(client):
    assert client.get("/v1/tests/t1/stats/users/u1", headers=auth("u1")).status_code == 404


def test_unknown_roles_are_not_granted(client, storage):
    storage.add_attempt("a1")
    with pytest.raises(ValueError):
        create_token("u1", ["superuser"])
    assert client.post("/v1/admin/attempts/a1/rescore", headers=auth("u1", roles=(STUDENT,))).status_code == 403


def test_debug_flag_reaches_app(settings, storage, dispatcher):
    settings.DEBUG = True
    app = create_app(settings, storage=storage, dispatcher=dispatcher, queue_config=QueueConfig.from_settings(settings))
    assert app.debug is True
