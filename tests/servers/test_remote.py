import json

import pytest
from prometheus_client import REGISTRY
from starlette.testclient import TestClient

from src.servers.remote import create_metrics_app, create_starlette_app
from tests.servers.fake_graph import SITE_ID, SITE_LOOKUP_URL, SITE_URL


@pytest.fixture
def http(client_factory):
    return TestClient(create_starlette_app(client_factory=client_factory))


@pytest.fixture
def offline_http(unreachable_factory):
    return TestClient(create_starlette_app(client_factory=unreachable_factory))


def tool_text(response):
    content = response.json()["content"]
    assert len(content) == 1
    assert content[0]["type"] == "text"
    return content[0]["text"]


def calls_counted(tool, status):
    value = REGISTRY.get_sample_value(
        "sharepoint_mcp_tool_calls_total", {"tool": tool, "status": status}
    )
    return value or 0.0


def test_initialize(offline_http):
    response = offline_http.post("/mcp/v1/initialize")

    assert response.status_code == 200
    assert response.json() == {
        "protocolVersion": "1.0",
        "serverInfo": {"name": "sharepoint-mcp-server", "version": "1.0.0"},
        "capabilities": {"tools": {}},
    }


def test_list_tools_catalog(offline_http):
    response = offline_http.post("/mcp/v1/tools/list")

    assert response.status_code == 200
    tools = {tool["name"]: tool for tool in response.json()["tools"]}
    assert list(tools) == ["search_list_items", "get_list_items"]

    search = tools["search_list_items"]
    assert search["description"] == (
        "Search for items in a SharePoint Online list. "
        "Returns matching list items based on the search query."
    )
    assert search["inputSchema"]["required"] == ["siteUrl", "listTitle", "searchQuery"]
    assert search["inputSchema"]["properties"]["maxResults"] == {
        "type": "number",
        "description": "Maximum number of results to return (default: 50)",
        "default": 50,
    }

    get = tools["get_list_items"]
    assert get["description"] == (
        "Get all items from a SharePoint Online list with optional filtering."
    )
    assert get["inputSchema"]["properties"]["filter"] == {
        "type": "string",
        "description": "OData filter query (optional)",
    }
    assert get["inputSchema"]["properties"]["maxResults"]["default"] == 100


def test_list_tools_requires_post(offline_http):
    assert offline_http.get("/mcp/v1/tools/list").status_code == 405


def test_unknown_tool_is_reported_in_band(offline_http):
    before = calls_counted("unknown", "ok")

    response = offline_http.post(
        "/mcp/v1/tools/call", json={"name": "drop_list", "arguments": {}}
    )

    assert response.status_code == 200
    assert json.loads(tool_text(response)) == {"error": "Unknown tool"}
    assert calls_counted("unknown", "ok") == before + 1
    assert calls_counted("drop_list", "ok") == 0.0


def test_client_supplied_names_do_not_create_metric_labels(offline_http):
    before = calls_counted("unknown", "ok")

    for i in range(5):
        offline_http.post(
            "/mcp/v1/tools/call", json={"name": f"junk-{i}", "arguments": {}}
        )
    offline_http.post("/mcp/v1/tools/call", json={"name": 42, "arguments": {}})

    assert calls_counted("unknown", "ok") == before + 6
    tools_seen = {
        sample.labels["tool"]
        for metric in REGISTRY.collect()
        if metric.name == "sharepoint_mcp_tool_calls"
        for sample in metric.samples
        if "tool" in sample.labels
    }
    assert tools_seen <= {"search_list_items", "get_list_items", "unknown"}


@pytest.mark.parametrize(
    "name, arguments, missing",
    [
        ("search_list_items", {"siteUrl": SITE_URL, "listTitle": "Tasks"}, "searchQuery"),
        ("search_list_items", {"listTitle": "Tasks", "searchQuery": "x"}, "siteUrl"),
        ("get_list_items", {"siteUrl": SITE_URL}, "listTitle"),
        ("get_list_items", {"siteUrl": SITE_URL, "listTitle": 7}, "listTitle"),
    ],
)
def test_missing_argument_is_a_server_error(offline_http, name, arguments, missing):
    before = calls_counted(name, "error")

    response = offline_http.post(
        "/mcp/v1/tools/call", json={"name": name, "arguments": arguments}
    )

    assert response.status_code == 500
    assert tool_text(response) == f"Error: {missing} is required"
    assert calls_counted(name, "error") == before + 1


@pytest.mark.parametrize(
    "body, message",
    [
        ({"arguments": {}}, "Error: name is required"),
        ({"name": "get_list_items"}, "Error: arguments is required"),
        ({"name": "get_list_items", "arguments": []}, "Error: arguments must be an object"),
    ],
)
def test_malformed_call_is_a_server_error(offline_http, body, message):
    response = offline_http.post("/mcp/v1/tools/call", json=body)

    assert response.status_code == 500
    assert tool_text(response) == message


def test_invalid_json_is_a_server_error(offline_http):
    response = offline_http.post(
        "/mcp/v1/tools/call",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 500
    assert tool_text(response).startswith("Error: Request body is not valid JSON")


def test_get_list_items_scenario(http, tasks_list):
    response = http.post(
        "/mcp/v1/tools/call",
        json={
            "name": "get_list_items",
            "arguments": {"siteUrl": SITE_URL, "listTitle": "Tasks", "maxResults": 2},
        },
    )

    assert response.status_code == 200
    text = tool_text(response)
    assert "\n  " in text
    result = json.loads(text)
    assert result["success"] is True
    assert result["count"] <= 2
    assert len(result["items"]) == result["count"]
    for item in result["items"]:
        assert "id" in item and "fields" in item


def test_search_list_items_over_http(http, tasks_list):
    response = http.post(
        "/mcp/v1/tools/call",
        json={
            "name": "search_list_items",
            "arguments": {
                "siteUrl": SITE_URL,
                "listTitle": "Tasks",
                "searchQuery": "BUDGET",
            },
        },
    )

    assert response.status_code == 200
    result = json.loads(tool_text(response))
    assert result["count"] == 1
    assert result["items"][0]["id"] == "2"


def test_list_not_found_is_successful_http(http, graph):
    graph.add(SITE_LOOKUP_URL, payload={"id": SITE_ID})

    response = http.post(
        "/mcp/v1/tools/call",
        json={
            "name": "get_list_items",
            "arguments": {"siteUrl": SITE_URL, "listTitle": "Tasks"},
        },
    )

    assert response.status_code == 200
    assert json.loads(tool_text(response)) == {
        "success": False,
        "error": "List not found",
    }


def test_unresolved_site_is_a_server_error(http, graph):
    graph.add(SITE_LOOKUP_URL, status_code=404, text="siteNotFound")

    response = http.post(
        "/mcp/v1/tools/call",
        json={
            "name": "get_list_items",
            "arguments": {"siteUrl": SITE_URL, "listTitle": "Tasks"},
        },
    )

    assert response.status_code == 500
    assert tool_text(response) == (
        "Error: Error retrieving site ID: 404 - siteNotFound"
    )


def test_auth_failure_is_a_server_error(graph):
    async def failing_factory():
        raise ValueError("Missing OAuth credentials for sharepoint: tenant_id")

    http = TestClient(create_starlette_app(client_factory=failing_factory))
    response = http.post(
        "/mcp/v1/tools/call",
        json={
            "name": "get_list_items",
            "arguments": {"siteUrl": SITE_URL, "listTitle": "Tasks"},
        },
    )

    assert response.status_code == 500
    assert "Missing OAuth credentials" in tool_text(response)
    assert graph.calls == []


def test_health_endpoints(offline_http):
    assert offline_http.get("/health_check").json() == {"status": "ok"}

    root = offline_http.get("/").json()
    assert root["status"] == "ok"
    assert root["tools"] == ["search_list_items", "get_list_items"]


def test_metrics_endpoint_exposes_tool_counter(offline_http):
    offline_http.post("/mcp/v1/tools/call", json={"name": "noop", "arguments": {}})

    response = TestClient(create_metrics_app()).get("/metrics")

    assert response.status_code == 200
    assert "sharepoint_mcp_tool_calls_total" in response.text
    assert "sharepoint_mcp_in_flight_calls" in response.text
