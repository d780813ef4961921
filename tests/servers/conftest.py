import pytest
import requests

from src.servers.sharepoint import main as sharepoint
from tests.servers.fake_graph import (
    FakeGraph,
    ITEMS_URL,
    LIST_ID,
    LIST_LOOKUP_URL,
    SITE_ID,
    SITE_LOOKUP_URL,
    TASK_ITEMS,
)


@pytest.fixture
def graph(monkeypatch):
    fake = FakeGraph()
    monkeypatch.setattr(requests, "get", fake.get)
    return fake


@pytest.fixture
def tasks_list(graph):
    """A site holding a five item Tasks list."""
    graph.add(SITE_LOOKUP_URL, payload={"id": SITE_ID, "name": "mysite"})
    graph.add(LIST_LOOKUP_URL, payload={"id": LIST_ID, "displayName": "Tasks"})
    graph.add(ITEMS_URL, payload={"value": TASK_ITEMS})
    return graph


@pytest.fixture
def client_factory():
    async def factory():
        return await sharepoint.create_sharepoint_client("test-token")

    return factory


@pytest.fixture
def unreachable_factory():
    """Fails the test if a handler tries to authenticate."""

    async def factory():
        pytest.fail("client factory should not be called")

    return factory
