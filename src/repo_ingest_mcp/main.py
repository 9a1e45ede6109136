from logging import Logger
from typing import Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger

from repo_ingest_mcp.clients.github import GitHubIngestClient
from repo_ingest_mcp.servers.ingest import IngestServer

logger: Logger = get_logger(name=__name__)


def new_mcp_server(ingest_server: IngestServer | None = None) -> FastMCP[None]:
    mcp: FastMCP[None] = FastMCP[None](name="Repository Ingest MCP")

    mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=False, logger=logger))

    ingest_server = ingest_server or IngestServer(ingest_client=GitHubIngestClient(logger=logger), logger=logger)
    _ = ingest_server.register_tools(fastmcp=mcp)

    return mcp


mcp: FastMCP[None] = new_mcp_server()


@click.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run_mcp(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp.run(transport=mcp_transport)


if __name__ == "__main__":
    run_mcp()
