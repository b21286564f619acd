"""Entry point: ``python -m crm_mcp [http|stdio]``."""

import argparse
import asyncio
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from crm_mcp.core.config import get_settings  # noqa: E402
from crm_mcp.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the CRM MCP server over HTTP or stdio."""
    parser = argparse.ArgumentParser(description="CRM MCP server")
    parser.add_argument(
        "transport",
        nargs="?",
        choices=["http", "stdio"],
        default="http",
        help="Transport to serve (default: http)",
    )
    parser.add_argument("--host", help="HTTP bind host (default: MCP_SERVER_HOST)")
    parser.add_argument("--port", type=int, help="HTTP bind port (default: MCP_SERVER_PORT)")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(
        "crm_mcp",
        level=settings.log_level,
        log_file=settings.get_log_file(f"mcp_{args.transport}"),
    )

    if args.transport == "stdio":
        from crm_mcp.server.stdio import CRMStdioServer

        asyncio.run(CRMStdioServer().run())
        return

    from crm_mcp.server.http import create_app

    host = args.host or settings.mcp_server_host
    port = args.port or settings.mcp_server_port
    logger.info(f"Starting MCP HTTP server on http://{host}:{port}")
    logger.info(f"MCP endpoint: http://{host}:{port}/mcp")
    logger.info(f"Health check: http://{host}:{port}/health")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
