import os
import sys
import asyncio
import logging
import argparse

import mcp.server.stdio

# Add project root to Python path
project_root = os.path.abspath(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from src.servers.sharepoint.main import create_server, get_initialization_options

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("sharepoint-mcp-local-stdio")


async def run_stdio_server(server, initialization_options):
    """Run the server using stdin/stdout streams"""
    logger.info("Starting stdio server")
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, initialization_options)


async def main():
    """Main entry point for the stdio server"""
    parser = argparse.ArgumentParser(description="SharePoint MCP Local Stdio Server")
    parser.add_argument(
        "--user-id", default="local", help="User ID for server context (optional)"
    )

    args = parser.parse_args()

    server_instance = create_server(user_id=args.user_id)

    logger.info(f"Starting SharePoint stdio server for user: {args.user_id}")
    await run_stdio_server(server_instance, get_initialization_options(server_instance))


if __name__ == "__main__":
    asyncio.run(main())
