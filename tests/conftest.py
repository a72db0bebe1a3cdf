from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
from prometheus_client import CollectorRegistry

from subgraph_mcp.config import Settings
from subgraph_mcp.gateway import GatewayClient
from subgraph_mcp.metrics import PrometheusMetrics
from subgraph_mcp.resolvers import GatewayTarget

BASE_URL = "https://gateway.test/api"
API_KEY = "test-api-key"
NETWORK_SUBGRAPH = "QmNetworkSubgraphHash"
QOS_ORACLE = "QmQosOracleHash"

NETWORK_URL = f"{BASE_URL}/{API_KEY}/deployments/id/{NETWORK_SUBGRAPH}"
QOS_ORACLE_URL = f"{BASE_URL}/{API_KEY}/deployments/id/{QOS_ORACLE}"


@pytest.fixture
def target() -> GatewayTarget:
    return GatewayTarget(base_url=BASE_URL, api_key=API_KEY)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> PrometheusMetrics:
    return PrometheusMetrics(registry)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        gateways={"edgeandnode": BASE_URL, "graphops": "https://gateway.other.test/api"},
        network_subgraph=NETWORK_SUBGRAPH,
        qos_oracle=QOS_ORACLE,
    )


@pytest.fixture
async def gateway_client(metrics: PrometheusMetrics) -> AsyncIterator[GatewayClient]:
    """Gateway client over a real httpx client, for respx mocking."""
    async with httpx.AsyncClient() as http_client:
        yield GatewayClient(
            http_client,
            network_subgraph=NETWORK_SUBGRAPH,
            qos_oracle=QOS_ORACLE,
            observer=metrics,
        )
