from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_headers
from prometheus_client import start_http_server
from pydantic import Field

from .endpoints import Operation, endpoint_for
from .errors import ApiKeyNotSetError, GraphQlError, SubgraphError
from .instructions import SERVER_INSTRUCTIONS
from .metrics import PrometheusMetrics
from .query_volume import aggregate_30day_counts
from .resolvers import GatewayTarget, ToolCallContext
from .service import SubgraphService

logger = logging.getLogger(__name__)

T = TypeVar("T")

mcp = FastMCP(
    name="subgraph-mcp",
    instructions=SERVER_INSTRUCTIONS,
)

API_KEY_NOT_SET_MESSAGE = (
    "Configuration error: API key not found. Please set the GATEWAY_API_KEY "
    "environment variable or provide a Bearer token in the Authorization header."
)

QUIET_LOGGERS = ("httpx", "httpcore")

DeploymentId = Annotated[str, Field(description="The deployment ID (e.g., 0x...) of the specific deployment")]
SubgraphId = Annotated[str, Field(description="The subgraph ID (e.g., 5zvR82...); resolves to the latest deployment")]
IpfsHash = Annotated[str, Field(description="The IPFS hash (e.g., Qm...) of the specific deployment")]
GraphQLQuery = Annotated[str, Field(description="The GraphQL query string")]
Variables = Annotated[dict[str, Any] | None, Field(description="Optional JSON object of GraphQL variables")]


# -----------------------------------------------------------------------------
# Service wiring
# -----------------------------------------------------------------------------

_service: SubgraphService | None = None


def get_service() -> SubgraphService:
    """Return the process-wide service, building it from the environment once."""
    global _service
    if _service is None:
        _service = SubgraphService.from_env(observer=PrometheusMetrics())
    return _service


def _request_context() -> ToolCallContext:
    # Empty under stdio; populated from the HTTP request otherwise.
    return ToolCallContext.from_headers(get_http_headers(include_all=True))


async def _run_tool(
    tool_name: str,
    action: str,
    call: Callable[[SubgraphService, GatewayTarget], Awaitable[T]],
) -> T:
    """Resolve the call's gateway target, run `call`, map failures to ToolError."""
    service = get_service()
    try:
        target = service.target_for(_request_context())
        return await service.observer.observe_tool_call(tool_name, lambda: call(service, target))
    except ApiKeyNotSetError as exc:
        raise ToolError(API_KEY_NOT_SET_MESSAGE) from exc
    except SubgraphError as exc:
        if exc.client_correctable or isinstance(exc, GraphQlError):
            raise ToolError(str(exc)) from exc
        logger.warning("Tool %s failed: %s", tool_name, exc)
        raise ToolError(f"Unexpected error during {action}: {exc}") from exc


# -----------------------------------------------------------------------------
# Tools
# -----------------------------------------------------------------------------

@mcp.tool(name="get_schema_by_deployment_id")
async def get_schema_by_deployment_id(deployment_id: DeploymentId) -> str:
    """Get schema for a specific subgraph deployment using its deployment ID (0x...)."""
    return await _run_tool(
        "get_schema_by_deployment_id",
        "schema retrieval",
        lambda svc, target: svc.client.get_schema_by_deployment_id(target, deployment_id),
    )


@mcp.tool(name="get_schema_by_subgraph_id")
async def get_schema_by_subgraph_id(subgraph_id: SubgraphId) -> str:
    """Get the schema for the current version of a subgraph using its subgraph ID (e.g., 5zvR82...)."""
    return await _run_tool(
        "get_schema_by_subgraph_id",
        "schema retrieval by subgraph ID",
        lambda svc, target: svc.client.get_schema_by_subgraph_id(target, subgraph_id),
    )


@mcp.tool(name="get_schema_by_ipfs_hash")
async def get_schema_by_ipfs_hash(ipfs_hash: IpfsHash) -> str:
    """Get schema for a specific subgraph deployment using its IPFS hash (Qm...)."""
    return await _run_tool(
        "get_schema_by_ipfs_hash",
        "schema retrieval by IPFS hash",
        lambda svc, target: svc.client.get_schema_by_ipfs_hash(target, ipfs_hash),
    )


async def _execute(
    operation: Operation,
    action: str,
    identifier: str,
    query: str,
    variables: dict[str, Any] | None,
) -> dict:
    endpoint = endpoint_for(operation)
    return await _run_tool(
        operation.value,
        action,
        lambda svc, target: svc.client.execute_query(target, endpoint, identifier, query, variables),
    )


@mcp.tool(name="execute_query_by_deployment_id")
async def execute_query_by_deployment_id(
    deployment_id: DeploymentId,
    query: GraphQLQuery,
    variables: Variables = None,
) -> dict:
    """Execute a GraphQL query against a specific deployment ID.

    Guidance: keep queries minimal and omit `variables` when unused.
    """
    return await _execute(
        Operation.EXECUTE_QUERY_BY_DEPLOYMENT_ID,
        "query execution by deployment ID",
        deployment_id,
        query,
        variables,
    )


@mcp.tool(name="execute_query_by_ipfs_hash")
async def execute_query_by_ipfs_hash(
    ipfs_hash: IpfsHash,
    query: GraphQLQuery,
    variables: Variables = None,
) -> dict:
    """Execute a GraphQL query against a specific IPFS hash."""
    return await _execute(
        Operation.EXECUTE_QUERY_BY_IPFS_HASH,
        "query execution by IPFS hash",
        ipfs_hash,
        query,
        variables,
    )


@mcp.tool(name="execute_query_by_subgraph_id")
async def execute_query_by_subgraph_id(
    subgraph_id: SubgraphId,
    query: GraphQLQuery,
    variables: Variables = None,
) -> dict:
    """Execute a GraphQL query against the latest deployment of a subgraph ID."""
    return await _execute(
        Operation.EXECUTE_QUERY_BY_SUBGRAPH_ID,
        "query execution by subgraph ID",
        subgraph_id,
        query,
        variables,
    )


@mcp.tool(name="get_top_subgraph_deployments")
async def get_top_subgraph_deployments(
    contract_address: Annotated[str, Field(description="The contract address to find subgraph deployments for")],
    chain: Annotated[str, Field(description="The chain name (e.g., 'mainnet', 'arbitrum-one')")],
) -> dict:
    """Get the top 3 subgraph deployments for a given contract address and chain, ordered by query fees.

    For chain, use 'mainnet' for Ethereum mainnet, NEVER use 'ethereum'.
    """
    return await _run_tool(
        "get_top_subgraph_deployments",
        "top subgraph deployment retrieval",
        lambda svc, target: svc.client.get_top_subgraph_deployments(target, contract_address, chain),
    )


@mcp.tool(name="search_subgraphs_by_keyword")
async def search_subgraphs_by_keyword(
    keyword: Annotated[str, Field(description="Keyword to search for in subgraph names")],
) -> dict:
    """Search for subgraphs by keyword in their display names, ordered by signal.

    Returns the top 10 results if there are at most 100 matches, or the square
    root of the total (rounded up) otherwise.
    """
    return await _run_tool(
        "search_subgraphs_by_keyword",
        "subgraph search",
        lambda svc, target: svc.client.search_subgraphs_by_keyword(target, keyword),
    )


@mcp.tool(name="get_deployment_30day_query_counts")
async def get_deployment_30day_query_counts(
    ipfs_hashes: Annotated[
        list[str],
        Field(description="List of IPFS hashes (Qm...) to get query counts for the last 30 days"),
    ],
) -> dict:
    """Get the aggregate query count over the last 30 days for multiple subgraph deployments.

    Results are sorted by query count in descending order.
    """

    async def call(svc: SubgraphService, target: GatewayTarget) -> dict:
        ranking = await aggregate_30day_counts(svc.client, target, ipfs_hashes)
        return ranking.as_payload()

    return await _run_tool("get_deployment_30day_query_counts", "30-day query count retrieval", call)


# -----------------------------------------------------------------------------
# Resources
# -----------------------------------------------------------------------------

@mcp.resource(
    "graphql://subgraph",
    name="Subgraph Server Instructions",
    mime_type="text/markdown",
)
def subgraph_instructions() -> str:
    """How to discover, vet and query subgraphs with this server's tools."""
    return SERVER_INSTRUCTIONS


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------

@mcp.prompt(name="get_schema_by_deployment_id", description="Fetch the GraphQL schema for a subgraph deployment.")
def prompt_schema_by_deployment_id(deployment_id: str = "{deploymentId}") -> str:
    return f"Get the schema for subgraph deployment {deployment_id}"


@mcp.prompt(name="get_schema_by_subgraph_id", description="Fetch the schema for the current version of a subgraph.")
def prompt_schema_by_subgraph_id(subgraph_id: str = "{subgraphId}") -> str:
    return f"Get the schema for subgraph ID {subgraph_id}"


@mcp.prompt(name="get_schema_by_ipfs_hash", description="Fetch the schema for a deployment by IPFS hash.")
def prompt_schema_by_ipfs_hash(ipfs_hash: str = "{ipfsHash}") -> str:
    return f"Get the schema for IPFS hash {ipfs_hash}"


@mcp.prompt(name="search_subgraphs_by_keyword", description="Search for subgraphs by keyword in their display names.")
def prompt_search_subgraphs(keyword: str = "{keyword}") -> str:
    return f'Find subgraphs related to "{keyword}"'


@mcp.prompt(name="execute_query_by_deployment_id", description="Execute a GraphQL query against a subgraph deployment.")
def prompt_execute_by_deployment_id(deployment_id: str = "{deploymentId}", query: str = "{query}") -> str:
    return f"Run this GraphQL query against deployment ID {deployment_id}: {query}"


@mcp.prompt(name="execute_query_by_ipfs_hash", description="Execute a GraphQL query against a specific IPFS hash.")
def prompt_execute_by_ipfs_hash(
    ipfs_hash: str = "{ipfsHash}",
    query: str = "{query}",
    variables: str = "{}",
) -> str:
    return f"Run this GraphQL query against IPFS hash {ipfs_hash}: {query}\nWith variables: {variables}"


@mcp.prompt(
    name="get_top_subgraph_deployments",
    description="Fetch the top 3 subgraph deployments for a contract on a chain. Use 'mainnet' for Ethereum mainnet, NOT 'ethereum'.",
)
def prompt_top_deployments(contract_address: str = "{contractAddress}", chain: str = "{chain}") -> str:
    return f"Get the top subgraph deployments for contract {contract_address} on chain {chain}"


@mcp.prompt(
    name="get_deployment_30day_query_counts",
    description="Get 30-day query counts for multiple subgraph deployments.",
)
def prompt_query_counts(ipfs_hashes: str = '["{ipfsHash1}", "{ipfsHash2}"]') -> str:
    return f"Retrieve the 30-day query counts for subgraph deployments with IPFS hashes: {ipfs_hashes}"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs request URLs at INFO, and those URLs carry the API key.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def main() -> None:
    """Entry point: configure logging/metrics and serve over the chosen transport."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    # Fail fast on a misconfigured gateway registry.
    get_service()

    metrics_port = os.environ.get("METRICS_PORT")
    if metrics_port:
        start_http_server(int(metrics_port))
        logger.info("Serving Prometheus metrics on port %s", metrics_port)

    transport = os.environ.get("SUBGRAPH_MCP_TRANSPORT", "http")
    if transport == "stdio":
        mcp.run(transport="stdio")
        return

    host = os.environ.get("SUBGRAPH_MCP_HOST", "0.0.0.0")
    port = int(os.environ.get("SUBGRAPH_MCP_PORT", "8000"))
    path = os.environ.get("SUBGRAPH_MCP_PATH", "/mcp")
    logger.info("Starting subgraph-mcp (%s) on %s:%s%s", transport, host, port, path)
    mcp.run(transport=transport, host=host, port=port, path=path)


if __name__ == "__main__":
    main()
