"""
Test configuration and fixtures.

The upstream incubator API is faked with an httpx.MockTransport so client,
controller and session tests run against real request/response handling
without a network.
"""
import asyncio
import json
import re
from typing import Any, Dict, Set, Tuple, Union

import httpx
import pytest

from app.questionnaire.schema import QuestionnaireSchema
from app.services.snapshot_store import LocalInvalidationChannel, MemorySnapshotStore
from app.services.xfactory_client import USER_HEADER, XFactoryClient

UPSTREAM_URL = "http://upstream.test"

_ROADMAP = re.compile(r"^/ideation/teams/(\d+)/roadmap-completion/$")
_CONCEPT_CARD = re.compile(r"^/ideation/teams/(\d+)/concept-card/$")
_SAVED_INPUT = re.compile(r"^/ideation/structured-idea-input/(?:(\d+)/)?$")


def make_structure() -> Dict[str, Any]:
    """
    Eight sections, two questions each (16 total). Both questions of section 1
    are required; elsewhere only the first question of a section is.
    """
    sections = {}
    for n in range(1, 9):
        sections[f"section_{n}"] = {
            "title": f"Section {n}",
            "description": f"About section {n}",
            "what_to_think_about": "Be specific",
            "questions": [
                {"id": f"q{n}_1", "text": f"Question {n}.1", "type": "textarea", "required": True},
                {"id": f"q{n}_2", "text": f"Question {n}.2", "type": "text", "required": n == 1},
            ],
        }
    return {"sections": sections}


def all_answers() -> Dict[str, str]:
    return {f"q{n}_{i}": f"answer {n}.{i}" for n in range(1, 9) for i in (1, 2)}


class FakeUpstream:
    """In-memory stand-in for the incubator API."""

    def __init__(self, structure: Dict[str, Any]):
        self.structure = structure
        self.roadmaps: Dict[int, Dict[str, Any]] = {}
        self.concept_cards: Set[int] = set()
        # Saved input by team id, or by the caller's user id when there is no team.
        self.saved: Dict[Union[int, str], Dict[str, Any]] = {}
        self.posts: list = []
        self.post_users: list = []
        self.puts: list = []
        self.requests: list = []
        self.failures: Dict[Tuple[str, str], int] = {}

    def fail(self, method: str, path: str, status: int = 500) -> None:
        self.failures[(method, path)] = status

    def recover(self, method: str, path: str) -> None:
        self.failures.pop((method, path), None)

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r == (method, path))

    @staticmethod
    def _merge(record: Dict[str, Any], body: Dict[str, Any]) -> None:
        for key, value in body.items():
            if key.startswith("section_") and isinstance(value, dict):
                record.setdefault(key, {}).update(value)
            elif key == "progress":
                record[key] = value

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        status = self.failures.get((method, path))
        if status:
            return httpx.Response(status, json={"detail": "upstream failure"})

        match = _ROADMAP.match(path)
        if match:
            team_id = int(match.group(1))
            if method == "PUT":
                body = json.loads(request.content)
                self.puts.append((team_id, body))
                self.roadmaps.setdefault(team_id, {}).update(body)
            return httpx.Response(200, json=self.roadmaps.get(team_id, {}))

        match = _CONCEPT_CARD.match(path)
        if match:
            team_id = int(match.group(1))
            if team_id in self.concept_cards:
                return httpx.Response(200, json={"id": team_id, "title": "Concept"})
            return httpx.Response(404, json={"detail": "Not found."})

        if path == "/ideation/questionnaire-structure/":
            return httpx.Response(200, json=self.structure)

        match = _SAVED_INPUT.match(path)
        if match:
            if method == "POST":
                body = json.loads(request.content)
                user = request.headers.get(USER_HEADER)
                self.posts.append(body)
                self.post_users.append(user)
                if "team_id" not in body and user:
                    self._merge(self.saved.setdefault(user, {}), body)
                return httpx.Response(201, json={"status": "saved"})
            key = int(match.group(1)) if match.group(1) else request.headers.get(USER_HEADER)
            if key is not None and key in self.saved:
                return httpx.Response(200, json=self.saved[key])
            return httpx.Response(404, json={"detail": "Not found."})

        raise AssertionError(f"Unexpected request: {method} {path}")


@pytest.fixture
def structure():
    return make_structure()


@pytest.fixture
def schema(structure):
    return QuestionnaireSchema.from_payload(structure)


@pytest.fixture
def upstream(structure):
    return FakeUpstream(structure)


@pytest.fixture
def xclient(upstream):
    return XFactoryClient(
        base_url=UPSTREAM_URL,
        token="test-token",
        timeout_s=5.0,
        transport=httpx.MockTransport(upstream.handler),
    )


@pytest.fixture
def gated_xclient(upstream):
    """Factory: a client whose requests to `path` wait on the returned event."""

    def make(path: str) -> Tuple[XFactoryClient, asyncio.Event]:
        gate = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == path:
                await gate.wait()
            return upstream.handler(request)

        client = XFactoryClient(
            base_url=UPSTREAM_URL, token="test-token", timeout_s=5.0, transport=httpx.MockTransport(handler)
        )
        return client, gate

    return make


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def channel():
    return LocalInvalidationChannel()


@pytest.fixture
def registry(xclient, store, channel):
    from app.services.registry import ProgressionRegistry

    return ProgressionRegistry(xclient, store, channel, refresh_window=0)


@pytest.fixture(scope="function")
def client(registry):
    """Create a test client with the registry wired to the fake upstream."""
    from fastapi.testclient import TestClient
    from app.deps import get_registry
    from app.main import app

    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def answers():
    """A complete answer set for make_structure()."""
    return all_answers()
