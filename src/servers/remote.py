import os
import sys
import json
import logging
import uvicorn
import argparse
import threading

from starlette.routing import Route
from starlette.requests import Request
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

# Add project root to Python path
project_root = os.path.abspath(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from src.servers.sharepoint.main import (
    INITIALIZE_RESULT,
    SERVER_NAME,
    TOOLS,
    TOOL_HANDLERS,
    build_sharepoint_client,
    call_tool,
    format_result,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("sharepoint-mcp-server")

# Prometheus metrics
tool_calls_total = Counter(
    "sharepoint_mcp_tool_calls_total",
    "Total number of tool calls",
    ["tool", "status"],
)
in_flight_calls = Gauge(
    "sharepoint_mcp_in_flight_calls", "Number of tool calls currently running"
)

# Default metrics port
METRICS_PORT = int(os.environ.get("METRICS_PORT", "9091"))


def text_content(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


async def parse_tool_call(request: Request):
    """Read {name, arguments} from the request body."""
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError(f"Request body is not valid JSON: {e}")

    if not isinstance(body, dict) or "name" not in body:
        raise ValueError("name is required")
    if "arguments" not in body:
        raise ValueError("arguments is required")

    arguments = body["arguments"]
    if not isinstance(arguments, dict):
        raise ValueError("arguments must be an object")

    return body["name"], arguments


def create_metrics_app():
    """Create a separate Starlette app just for metrics"""

    async def metrics_endpoint(request):
        """Prometheus metrics endpoint"""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    routes = [Route("/metrics", endpoint=metrics_endpoint)]

    return Starlette(routes=routes)


def create_starlette_app(client_factory=build_sharepoint_client):
    """Create the Starlette app serving the MCP HTTP endpoints"""

    async def handle_initialize(request):
        """Capability negotiation"""
        return JSONResponse(INITIALIZE_RESULT)

    async def handle_list_tools(request):
        """Static tool catalog"""
        return JSONResponse({"tools": TOOLS})

    async def handle_call_tool(request):
        """Dispatch a tool call; every failure becomes a 500 with the raw message"""
        tool = "unknown"
        in_flight_calls.inc()
        try:
            name, arguments = await parse_tool_call(request)
            # Names outside the catalog share the "unknown" label
            if isinstance(name, str) and name in TOOL_HANDLERS:
                tool = name
            result = await call_tool(name, arguments, client_factory=client_factory)
        except Exception as e:
            logger.error(f"Tool call {tool} failed: {e}")
            tool_calls_total.labels(tool=tool, status="error").inc()
            return JSONResponse(text_content(f"Error: {e}"), status_code=500)
        finally:
            in_flight_calls.dec()

        tool_calls_total.labels(tool=tool, status="ok").inc()
        return JSONResponse(text_content(format_result(result)))

    # Health checks
    async def root_handler(request):
        """Root endpoint that returns a simple 200 OK response"""
        return JSONResponse(
            {
                "status": "ok",
                "message": f"{SERVER_NAME} running",
                "tools": [tool["name"] for tool in TOOLS],
            }
        )

    async def health_check(request):
        """Health check endpoint"""
        return JSONResponse({"status": "ok"})

    routes = [
        Route("/mcp/v1/initialize", endpoint=handle_initialize, methods=["POST"]),
        Route("/mcp/v1/tools/list", endpoint=handle_list_tools, methods=["POST"]),
        Route("/mcp/v1/tools/call", endpoint=handle_call_tool, methods=["POST"]),
        Route("/", endpoint=root_handler),
        Route("/health_check", endpoint=health_check),
    ]

    return Starlette(routes=routes)


def run_metrics_server(host, port):
    """Run a separate metrics server on the specified port"""
    metrics_app = create_metrics_app()
    logger.info(f"Starting metrics server on {host}:{port}")
    uvicorn.run(metrics_app, host=host, port=port)


def main():
    """Main entry point for the Starlette server"""
    parser = argparse.ArgumentParser(description="SharePoint MCP Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host for Starlette server")
    parser.add_argument(
        "--port", type=int, default=8000, help="Port for Starlette server"
    )

    args = parser.parse_args()

    metrics_thread = threading.Thread(
        target=run_metrics_server, args=(args.host, METRICS_PORT), daemon=True
    )
    metrics_thread.start()
    logger.info(f"Starting Metrics server on http://{args.host}:{METRICS_PORT}/metrics")

    # Run the main Starlette server
    app = create_starlette_app()
    logger.info(f"Starting Starlette server on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
