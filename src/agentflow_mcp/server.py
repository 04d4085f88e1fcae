"""AgentFlow MCP Server - expose epics and tasks to AI assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
)

from . import tools
from . import handlers


# Configure logging to stderr (stdout carries the MCP stream)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("agentflow-mcp")

# API Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api/v1")

logger.info(f"MCP Server starting with API_BASE_URL: {API_BASE_URL}")

# MCP Server instance
app = Server("agentflow-mcp")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return tools.get_tools()


async def dispatch(name: str, arguments: Any, client: httpx.AsyncClient) -> list[TextContent]:
    """Run one tool call against the API, turning failures into error text."""
    handler = handlers.HANDLERS.get(name)
    if not handler:
        logger.warning(f"Unknown tool requested: {name}")
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    try:
        return await handler(arguments or {}, client)

    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error during {name} call:")
        logger.error(f"  Status: {e.response.status_code}")
        logger.error(f"  URL: {e.request.url}")
        try:
            error_detail = e.response.json().get("detail", str(e))
        except (ValueError, AttributeError):
            error_detail = e.response.text or str(e)
        logger.error(f"  Detail: {error_detail}")
        return [TextContent(type="text", text=f"Error: {error_detail}")]

    except httpx.RequestError as e:
        logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
        return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

    except KeyError as e:
        logger.error(f"Missing argument for {name}: {e}")
        return [TextContent(type="text", text=f"Error: missing required argument {e}")]

    except Exception as e:
        logger.error(f"Unexpected error during {name} call:")
        logger.error(f"  Arguments: {arguments}")
        logger.error(f"  Traceback:\n{traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to handlers."""
    logger.info(f"Tool call: {name} with arguments: {arguments}")

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        return await dispatch(name, arguments, client)


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
