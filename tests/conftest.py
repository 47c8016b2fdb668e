"""Shared test fixtures for Taskboard tests."""

import json

import pytest

from pkg.taskboard.config import Config
from pkg.taskboard.store import TaskStore
from taskboard_server import create_app


class FakeProvider:
    """
    Deterministic completion provider.

    Answers every prompt with the queued responses in order (the last one
    repeats) and records the prompts it was given. An Exception instance in
    the queue is raised instead of returned.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or ['{"tasks": []}']
        self.prompts = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def tasks_json(*tasks) -> str:
    return json.dumps({"tasks": list(tasks)})


@pytest.fixture
def store(tmp_path):
    return TaskStore(str(tmp_path / "taskboard.db"))


@pytest.fixture
def owner(store):
    """Id of a user who owns the tasks under test."""
    return store.create_user("owner", "not-a-real-hash").id


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def app(tmp_path, store, provider):
    cfg = Config(
        db_path=str(tmp_path / "taskboard.db"),
        secret_key="test-secret",
        llm_provider="rules",
        reconcile_workers=1,
    )
    app = create_app(cfg, store=store, provider=provider)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Test client with a registered, logged-in user."""
    c = app.test_client()
    r = c.post("/api/auth/register", json={"username": "alice", "password": "s3cret"})
    assert r.status_code == 201
    return c
