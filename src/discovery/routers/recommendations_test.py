"""Tests for the recommendations router, wired through ``build_services``."""

import os
from datetime import datetime, timezone

import pytest
from elastic_transport import ConnectionError as TransportConnectionError
from fastapi.testclient import TestClient

from ..config import Settings
from ..main import app, build_services


class FakeEs:
    def __init__(self, error=None):
        self.error = error
        self.indexed = []
        now = datetime.now(timezone.utc).isoformat()
        self.docs = {
            "user_embeddings": [{
                "owner_id": "u",
                "kind": "user",
                "vector": [1.0, 0.0],
                "dimension": 2,
                "created_at": now,
                "updated_at": now,
                "metadata": {"interests": ["music"], "total_interactions": 3},
            }],
            "clusters": [{
                "cluster_id": "music",
                "centroid": [1.0, 0.0],
                "member_ids": ["p1", "p2"],
                "size": 2,
                "tags": ["music"],
            }],
        }
        self.assignments = {
            "p1": {"content_id": "p1", "cluster_id": "music", "similarity": 0.9, "engagement_score": 0.7},
            "p2": {"content_id": "p2", "cluster_id": "music", "similarity": 0.4, "engagement_score": 0.1},
        }

    async def search(self, *, index=None, query=None, **kwargs):
        if self.error is not None:
            raise self.error
        if index == "cluster_assignments":
            doc = self.assignments.get(query["term"]["content_id"])
            hits = [doc] if doc else []
        elif index == "user_embeddings":
            owner = query["term"]["owner_id"]
            hits = [d for d in self.docs[index] if d["owner_id"] == owner]
        else:
            hits = self.docs.get(index, [])
        return {"hits": {"hits": [{"_source": h} for h in hits]}}

    async def index(self, *, index=None, id=None, document=None):
        self.indexed.append((index, id, document))


@pytest.fixture
def fake_es():
    return FakeEs()


@pytest.fixture(autouse=True)
def wired_app(fake_es, metrics):
    prev = os.environ.get("API_KEY")
    os.environ["API_KEY"] = "testkey"

    build_services(app, fake_es, Settings(), metrics=metrics)
    yield
    if prev is None:
        del os.environ["API_KEY"]
    else:
        os.environ["API_KEY"] = prev


HEADERS = {"X-API-Key": "testkey"}


def test_requires_api_key():
    resp = TestClient(app).post("/recommendations", json={"user_id": "u"})
    assert resp.status_code == 401


def test_recommendations(fake_es):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "u", "limit": 5})

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["clusters"] == ["music"]
    assert [r["content_id"] for r in data["recommendations"]] == ["p1", "p2"]
    assert [r["rank"] for r in data["recommendations"]] == [1, 2]
    assert data["recommendations"][0]["reason"] == "embedding:music"
    assert fake_es.indexed == []


def test_exclude_ids_and_context():
    client = TestClient(app, headers=HEADERS)
    resp = client.post(
        "/recommendations",
        json={"user_id": "u", "exclude_ids": ["p1"], "context": {"hour_of_day": 20, "day_of_week": 0}},
    )

    assert resp.status_code == 200
    assert [r["content_id"] for r in resp.json()["recommendations"]] == ["p2"]


def test_new_user_embedding_is_generated(fake_es):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "newcomer"})

    assert resp.status_code == 200
    assert [(index, owner) for index, owner, _ in fake_es.indexed] == [("user_embeddings", "newcomer")]


def test_invalid_limit_is_structured_400(metrics):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "u", "limit": 1000})

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["type"] == "VALIDATION_ERROR"
    assert error["details"]["errors"][0]["loc"] == ["body", "limit"]
    assert metrics.errors == ["VALIDATION_ERROR: Invalid request"]


def test_store_failure_is_503(fake_es, metrics):
    fake_es.error = TransportConnectionError("down")
    client = TestClient(app, headers=HEADERS)

    resp = client.post("/recommendations", json={"user_id": "u"})

    assert resp.status_code == 503
    assert resp.json() == {
        "success": False,
        "error": {
            "type": "STORE_UNAVAILABLE",
            "message": "Elasticsearch request failed",
            "details": {"index": "user_embeddings"},
        },
    }
    assert metrics.errors


def test_unexpected_failure_is_500(fake_es):
    fake_es.error = RuntimeError("boom")
    client = TestClient(app, headers=HEADERS)

    resp = client.post("/recommendations", json={"user_id": "u"})

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["type"] == "INTERNAL_ERROR"
    assert error["details"] == {"original_error": "boom"}
