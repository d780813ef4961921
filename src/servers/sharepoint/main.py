import sys
import asyncio
import logging
import json
import os
import requests
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse, quote

# Add both project root and src directory to Python path
project_root = os.path.abspath(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))
)
sys.path.insert(0, project_root)
sys.path.insert(0, os.path.join(project_root, "src"))

import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from src.utils.microsoft.util import get_credentials
from src.utils.utils import ListItemResult, ToolResult


SERVICE_NAME = Path(__file__).parent.name
SERVER_NAME = "sharepoint-mcp-server"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "1.0"

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0/"
GRAPH_SITES_URL = GRAPH_BASE_URL + "sites/"
GRAPH_REQUEST_TIMEOUT = 30

DEFAULT_SEARCH_MAX_RESULTS = 50
DEFAULT_GET_MAX_RESULTS = 100

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(SERVICE_NAME)

SharePointClientFactory = Callable[[], Awaitable[Dict[str, Any]]]

INITIALIZE_RESULT = {
    "protocolVersion": PROTOCOL_VERSION,
    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    "capabilities": {"tools": {}},
}

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "search_list_items",
        "description": "Search for items in a SharePoint Online list. Returns matching list items based on the search query.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "siteUrl": {
                    "type": "string",
                    "description": "SharePoint site URL (e.g., https://contoso.sharepoint.com/sites/mysite)",
                },
                "listTitle": {
                    "type": "string",
                    "description": "Title or name of the SharePoint list",
                },
                "searchQuery": {
                    "type": "string",
                    "description": "Search query to filter list items",
                },
                "maxResults": {
                    "type": "number",
                    "description": "Maximum number of results to return (default: 50)",
                    "default": DEFAULT_SEARCH_MAX_RESULTS,
                },
            },
            "required": ["siteUrl", "listTitle", "searchQuery"],
        },
    },
    {
        "name": "get_list_items",
        "description": "Get all items from a SharePoint Online list with optional filtering.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "siteUrl": {
                    "type": "string",
                    "description": "SharePoint site URL",
                },
                "listTitle": {
                    "type": "string",
                    "description": "Title or name of the SharePoint list",
                },
                "filter": {
                    "type": "string",
                    "description": "OData filter query (optional)",
                },
                "maxResults": {
                    "type": "number",
                    "description": "Maximum number of results (default: 100)",
                    "default": DEFAULT_GET_MAX_RESULTS,
                },
            },
            "required": ["siteUrl", "listTitle"],
        },
    },
]


async def create_sharepoint_client(token: str) -> Dict[str, Any]:
    """
    Create a SharePoint (Microsoft Graph) client configuration from an access token.

    Args:
        token: App-only access token for Microsoft Graph

    Returns:
        dict: Client configuration including access token, headers and base URL.
    """
    standard_headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }

    return {"token": token, "headers": standard_headers, "base_url": GRAPH_BASE_URL}


async def build_sharepoint_client() -> Dict[str, Any]:
    """Acquire a fresh token and build a client. One client per tool call."""
    access_token = await get_credentials(SERVICE_NAME)
    return await create_sharepoint_client(access_token)


async def get_site_id_from_url(url: str, sharepoint_client: dict) -> str:
    """
    Get the site ID of a SharePoint site from its URL.

    Args:
        url: The URL of the SharePoint site (e.g., 'https://contoso.sharepoint.com/sites/marketing')
        sharepoint_client: The SharePoint client configuration with authentication headers

    Returns:
        str: The site ID in the format 'hostname,siteId,webId'

    Raises:
        ValueError: If the URL is not absolute or the site cannot be resolved
    """
    logger.info(f"Getting site ID for URL: {url}")

    parsed_url = urlparse(url)
    hostname = parsed_url.hostname
    if not parsed_url.scheme or not hostname:
        raise ValueError(f"Invalid site URL: {url}")

    path = parsed_url.path or "/"
    request_url = f"{GRAPH_SITES_URL}{hostname}:{quote(path)}"

    logger.info(f"Making request to: {request_url}")
    response = await asyncio.to_thread(
        requests.get,
        request_url,
        headers=sharepoint_client["headers"],
        timeout=GRAPH_REQUEST_TIMEOUT,
    )
    logger.info(f"Response status: {response.status_code}")

    if response.status_code != 200:
        error_message = (
            f"Error retrieving site ID: {response.status_code} - {response.text}"
        )
        logger.error(error_message)
        raise ValueError(error_message)

    site_id = response.json().get("id")
    if not site_id:
        raise ValueError("Could not resolve site id")

    logger.info(f"Retrieved site ID: {site_id}")
    return site_id


async def get_list_id(
    site_id: str, list_title: str, sharepoint_client: dict
) -> Optional[str]:
    """
    Look up a list by title (or id) under a site.

    Returns None when the list does not exist or carries no id.
    """
    url = f"{GRAPH_SITES_URL}{site_id}/lists/{quote(list_title, safe='')}"
    logger.info(f"Making request to {url}")

    response = await asyncio.to_thread(
        requests.get,
        url,
        headers=sharepoint_client["headers"],
        timeout=GRAPH_REQUEST_TIMEOUT,
    )
    logger.info(f"Response status: {response.status_code}")

    if response.status_code == 404:
        logger.info(f"List '{list_title}' not found in site {site_id}")
        return None

    if response.status_code != 200:
        error_message = (
            f"Error retrieving list: {response.status_code} - {response.text}"
        )
        logger.error(error_message)
        raise ValueError(error_message)

    return response.json().get("id")


async def fetch_list_items(
    site_id: str,
    list_id: str,
    sharepoint_client: dict,
    max_results: int,
    filter_query: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Fetch a single page of list items with their field values expanded.

    Only the first page is returned; at most max_results items.
    """
    url = f"{GRAPH_SITES_URL}{site_id}/lists/{list_id}/items"

    # Always expand fields to get the list item values
    params = {"$expand": "fields", "$top": max_results}
    if filter_query:
        params["$filter"] = filter_query

    logger.info(f"Making request to {url}")
    response = await asyncio.to_thread(
        requests.get,
        url,
        headers=sharepoint_client["headers"],
        params=params,
        timeout=GRAPH_REQUEST_TIMEOUT,
    )
    logger.info(f"Response status: {response.status_code}")

    if response.status_code != 200:
        error_message = (
            f"Error retrieving list items: {response.status_code} - {response.text}"
        )
        logger.error(error_message)
        raise ValueError(error_message)

    result = response.json()
    if "@odata.nextLink" in result:
        logger.info(
            f"More items available in list {list_id}; only the first page is returned"
        )

    return result.get("value") or []


def value_matches(value: Any, query: str) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False)
    return query.lower() in text.lower()


def shape_items(items: List[Dict[str, Any]]) -> List[ListItemResult]:
    return [
        {"id": item.get("id"), "fields": item.get("fields") or {}} for item in items
    ]


def filter_items(items: List[Dict[str, Any]], query: str) -> List[ListItemResult]:
    """Keep items with at least one field value containing query, ignoring case."""
    matches = []
    for item in items:
        fields = item.get("fields")
        if not fields:
            continue
        if any(value_matches(value, query) for value in fields.values()):
            matches.append({"id": item.get("id"), "fields": fields})
    return matches


def get_required_string(arguments: Dict[str, Any], name: str) -> str:
    value = arguments.get(name)
    if isinstance(value, str):
        return value
    raise ValueError(f"{name} is required")


def get_max_results(arguments: Dict[str, Any], default: int) -> int:
    value = arguments.get("maxResults")
    # bool is an int subclass but is not a JSON number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("maxResults must be a whole number")
        return int(value)
    return value


def list_not_found() -> ToolResult:
    return {"success": False, "error": "List not found"}


def items_result(items: List[ListItemResult]) -> ToolResult:
    return {"success": True, "count": len(items), "items": items}


async def search_list_items(
    arguments: Dict[str, Any],
    client_factory: SharePointClientFactory = build_sharepoint_client,
) -> ToolResult:
    """Search the first page of a list for items with a field value containing the query."""
    site_url = get_required_string(arguments, "siteUrl")
    list_title = get_required_string(arguments, "listTitle")
    search_query = get_required_string(arguments, "searchQuery")
    max_results = get_max_results(arguments, DEFAULT_SEARCH_MAX_RESULTS)

    sharepoint = await client_factory()

    site_id = await get_site_id_from_url(site_url, sharepoint_client=sharepoint)
    list_id = await get_list_id(site_id, list_title, sharepoint_client=sharepoint)
    if not list_id:
        return list_not_found()

    items = await fetch_list_items(
        site_id, list_id, sharepoint_client=sharepoint, max_results=max_results
    )
    return items_result(filter_items(items, search_query))


async def get_list_items(
    arguments: Dict[str, Any],
    client_factory: SharePointClientFactory = build_sharepoint_client,
) -> ToolResult:
    """Get the first page of a list, optionally filtered server-side with OData."""
    site_url = get_required_string(arguments, "siteUrl")
    list_title = get_required_string(arguments, "listTitle")
    filter_query = arguments.get("filter")
    if not isinstance(filter_query, str):
        filter_query = None
    max_results = get_max_results(arguments, DEFAULT_GET_MAX_RESULTS)

    sharepoint = await client_factory()

    site_id = await get_site_id_from_url(site_url, sharepoint_client=sharepoint)
    list_id = await get_list_id(site_id, list_title, sharepoint_client=sharepoint)
    if not list_id:
        return list_not_found()

    items = await fetch_list_items(
        site_id,
        list_id,
        sharepoint_client=sharepoint,
        max_results=max_results,
        filter_query=filter_query,
    )
    return items_result(shape_items(items))


TOOL_HANDLERS = {
    "search_list_items": search_list_items,
    "get_list_items": get_list_items,
}


async def call_tool(
    name: str,
    arguments: Dict[str, Any],
    client_factory: SharePointClientFactory = build_sharepoint_client,
) -> Dict[str, Any]:
    """Dispatch a tool call by name. Unknown tools are reported in-band."""
    handler = TOOL_HANDLERS.get(name) if isinstance(name, str) else None
    if handler is None:
        logger.warning(f"Unknown tool requested: {name}")
        return {"error": "Unknown tool"}

    logger.info(f"Calling tool: {name}")
    return await handler(arguments, client_factory=client_factory)


def format_result(result: Dict[str, Any]) -> str:
    return json.dumps(result, indent=2)


def create_server(user_id: str = "local", api_key: Optional[str] = None) -> Server:
    """
    Create a new SharePoint MCP server instance for the stdio transport.

    Args:
        user_id: Identifier of the session owner, used in logs only
        api_key: Unused; credentials come from the configured auth client

    Returns:
        An MCP Server instance exposing the SharePoint list tools
    """
    server = Server(SERVER_NAME)
    server.user_id = user_id
    server.api_key = api_key

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """Return the list of available SharePoint tools."""
        return [types.Tool(**tool) for tool in TOOLS]

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict | None
    ) -> list[types.TextContent]:
        """Handle SharePoint tool invocation from the MCP system."""
        logger.info(f"User {server.user_id} calling tool: {name}")

        if arguments is None:
            arguments = {}

        try:
            result = await call_tool(name, arguments)
        except Exception as e:
            logger.error(f"Error calling SharePoint API: {e}")
            return [types.TextContent(type="text", text=f"Error: {e}")]

        return [types.TextContent(type="text", text=format_result(result))]

    return server


server = create_server


def get_initialization_options(server_instance: Server) -> InitializationOptions:
    return InitializationOptions(
        server_name=SERVER_NAME,
        server_version=SERVER_VERSION,
        capabilities=server_instance.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        ),
    )
