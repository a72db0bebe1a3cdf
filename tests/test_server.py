from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator

import httpx
import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError
from prometheus_client import CollectorRegistry
from respx import MockRouter

from subgraph_mcp import server
from subgraph_mcp.config import Settings
from subgraph_mcp.metrics import PrometheusMetrics
from subgraph_mcp.resolvers import ToolCallContext
from subgraph_mcp.service import SubgraphService

from .conftest import API_KEY, BASE_URL, NETWORK_URL, QOS_ORACLE_URL

SCHEMA = "type Token @entity { id: ID! symbol: String! }"


@pytest.fixture
async def service(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, registry: CollectorRegistry
) -> AsyncIterator[SubgraphService]:
    svc = SubgraphService(
        settings,
        observer=PrometheusMetrics(registry),
        environ={"GATEWAY_API_KEY": API_KEY},
    )
    monkeypatch.setattr(server, "_service", svc)
    yield svc
    await svc.aclose()


def _with_headers(monkeypatch: pytest.MonkeyPatch, headers: dict[str, str]) -> None:
    monkeypatch.setattr(server, "_request_context", lambda: ToolCallContext.from_headers(headers))


@pytest.mark.asyncio
async def test_lists_all_tools(service: SubgraphService) -> None:
    async with Client(server.mcp) as client:
        tools = {tool.name for tool in await client.list_tools()}

    assert tools == {
        "get_schema_by_deployment_id",
        "get_schema_by_subgraph_id",
        "get_schema_by_ipfs_hash",
        "execute_query_by_deployment_id",
        "execute_query_by_ipfs_hash",
        "execute_query_by_subgraph_id",
        "get_top_subgraph_deployments",
        "search_subgraphs_by_keyword",
        "get_deployment_30day_query_counts",
    }


@pytest.mark.asyncio
async def test_schema_tool_returns_schema_text(
    service: SubgraphService, respx_mock: MockRouter, registry: CollectorRegistry
) -> None:
    body = {"data": {"subgraphDeployment": {"manifest": {"schema": {"schema": SCHEMA}}}}}
    respx_mock.post(NETWORK_URL).mock(return_value=httpx.Response(200, json=body))

    async with Client(server.mcp) as client:
        result = await client.call_tool("get_schema_by_deployment_id", {"deployment_id": "0xabc"})

    assert result.content[0].text == SCHEMA
    labels = {"tool_name": "get_schema_by_deployment_id", "status": "success"}
    assert registry.get_sample_value("mcp_tool_calls_total", labels) == 1


@pytest.mark.asyncio
async def test_missing_api_key_is_actionable(
    service: SubgraphService, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(service, "environ", {})

    async with Client(server.mcp) as client:
        with pytest.raises(ToolError, match="GATEWAY_API_KEY"):
            await client.call_tool("get_schema_by_ipfs_hash", {"ipfs_hash": "QmHash"})


@pytest.mark.asyncio
async def test_bearer_header_and_gateway_header_select_target(
    service: SubgraphService, monkeypatch: pytest.MonkeyPatch, respx_mock: MockRouter
) -> None:
    _with_headers(monkeypatch, {"Authorization": "Bearer tenant", "x-gateway-id": "graphops"})
    url = "https://gateway.other.test/api/tenant/subgraphs/id/5zvR82"
    body = {"data": {"tokens": []}}
    route = respx_mock.post(url).mock(return_value=httpx.Response(200, json=body))

    async with Client(server.mcp) as client:
        result = await client.call_tool(
            "execute_query_by_subgraph_id", {"subgraph_id": "5zvR82", "query": "{ tokens { id } }"}
        )

    assert route.called
    assert result.structured_content == body


@pytest.mark.asyncio
async def test_unknown_gateway_header_lists_valid_ids(
    service: SubgraphService, monkeypatch: pytest.MonkeyPatch
) -> None:
    _with_headers(monkeypatch, {"x-gateway-id": "unknown-gw"})

    async with Client(server.mcp) as client:
        with pytest.raises(ToolError) as exc_info:
            await client.call_tool("get_schema_by_subgraph_id", {"subgraph_id": "5zvR82"})

    assert "edgeandnode" in str(exc_info.value)
    assert "graphops" in str(exc_info.value)
    assert "Unexpected error" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_graphql_error_message_passes_through(
    service: SubgraphService, respx_mock: MockRouter, registry: CollectorRegistry
) -> None:
    respx_mock.post(f"{BASE_URL}/{API_KEY}/deployments/id/QmHash").mock(
        return_value=httpx.Response(200, json={"errors": [{"message": "Unknown field `nope`"}]})
    )

    async with Client(server.mcp) as client:
        with pytest.raises(ToolError, match="Unknown field `nope`"):
            await client.call_tool("execute_query_by_ipfs_hash", {"ipfs_hash": "QmHash", "query": "{ nope }"})

    labels = {"tool_name": "execute_query_by_ipfs_hash", "status": "error"}
    assert registry.get_sample_value("mcp_tool_calls_total", labels) == 1


@pytest.mark.asyncio
async def test_transport_error_is_reported_as_unexpected(
    service: SubgraphService, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/{API_KEY}/deployments/id/0xabc").mock(side_effect=httpx.ReadTimeout("timed out"))

    async with Client(server.mcp) as client:
        with pytest.raises(ToolError, match="Unexpected error during query execution by deployment ID"):
            await client.call_tool("execute_query_by_deployment_id", {"deployment_id": "0xabc", "query": "{ a }"})


@pytest.mark.asyncio
async def test_query_counts_tool_returns_ranking(service: SubgraphService, respx_mock: MockRouter) -> None:
    body = {
        "data": {
            "subgraphDeployments": [
                {"id": "QmA", "queryDailyDataPoints": [{"query_count": "10"}, {"query_count": "20"}]},
                {"id": "QmB", "queryDailyDataPoints": [{"query_count": "100"}]},
            ]
        }
    }
    respx_mock.post(QOS_ORACLE_URL).mock(return_value=httpx.Response(200, json=body))

    async with Client(server.mcp) as client:
        result = await client.call_tool("get_deployment_30day_query_counts", {"ipfs_hashes": ["QmA", "QmB"]})

    payload = result.structured_content
    assert [d["deployment_id"] for d in payload["deployments"]] == ["QmB", "QmA"]
    assert payload["deployments"][1]["total_query_count"] == 30
    assert payload["total_deployments_processed"] == 2


@pytest.mark.asyncio
async def test_instructions_resource(service: SubgraphService) -> None:
    async with Client(server.mcp) as client:
        contents = await client.read_resource("graphql://subgraph")

    assert "get_deployment_30day_query_counts" in contents[0].text


@pytest.mark.asyncio
async def test_prompt_renders_arguments(service: SubgraphService) -> None:
    async with Client(server.mcp) as client:
        result = await client.get_prompt(
            "get_top_subgraph_deployments", {"contract_address": "0x1f98", "chain": "mainnet"}
        )

    assert result.messages[0].content.text == "Get the top subgraph deployments for contract 0x1f98 on chain mainnet"


@pytest.fixture
def http_logger_levels() -> Iterator[None]:
    saved = {name: logging.getLogger(name).level for name in server.QUIET_LOGGERS}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


@pytest.mark.asyncio
async def test_configured_logging_never_records_the_api_key(
    service: SubgraphService,
    respx_mock: MockRouter,
    caplog: pytest.LogCaptureFixture,
    http_logger_levels: None,
) -> None:
    server.configure_logging("INFO")
    caplog.set_level(logging.INFO)
    respx_mock.post(f"{BASE_URL}/{API_KEY}/deployments/id/0xabc").mock(
        return_value=httpx.Response(200, json={"data": {"tokens": []}})
    )

    async with Client(server.mcp) as client:
        await client.call_tool("execute_query_by_deployment_id", {"deployment_id": "0xabc", "query": "{ tokens { id } }"})

    assert caplog.records
    assert all(API_KEY not in record.getMessage() for record in caplog.records)
    assert not any(record.name.startswith(server.QUIET_LOGGERS) for record in caplog.records)
