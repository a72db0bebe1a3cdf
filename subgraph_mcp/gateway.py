from __future__ import annotations

import functools
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from .endpoints import EndpointType, build_endpoint_url
from .errors import GraphQlError, HttpError, ProcessingError
from .metrics import NullObserver, RequestObserver
from .resolvers import GatewayTarget

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_SUBGRAPH_QUERY = "network_subgraph_query"
QOS_ORACLE_QUERY = "qos_oracle_query"

# -----------------------------------------------------------------------------
# GraphQL documents
# -----------------------------------------------------------------------------

SCHEMA_BY_DEPLOYMENT_ID_QUERY = """
query SubgraphDeploymentSchema($id: String!) {
  subgraphDeployment(id: $id) {
    manifest {
      schema {
        schema
      }
    }
  }
}
"""

SCHEMA_BY_SUBGRAPH_ID_QUERY = """
query SubgraphSchema($id: String!) {
  subgraph(id: $id) {
    currentVersion {
      subgraphDeployment {
        manifest {
          schema {
            schema
          }
        }
      }
    }
  }
}
"""

SCHEMA_BY_IPFS_HASH_QUERY = """
query DeploymentSchemaByIpfsHash($hash: String!) {
  subgraphDeployments(where: {ipfsHash: $hash}, first: 1) {
    manifest {
      schema {
        schema
      }
    }
  }
}
"""

TOP_DEPLOYMENTS_QUERY = """
query TopSubgraphDeploymentsForContract($network: String!, $contractAddress: String!) {
  subgraphDeployments(
    where: {manifest_: {network: $network, manifest_contains: $contractAddress}}
    orderBy: queryFeesAmount
    orderDirection: desc
    first: 3
  ) {
    ipfsHash
    manifest {
      network
    }
    queryFeesAmount
  }
}
"""

SEARCH_SUBGRAPHS_QUERY = """
query SearchSubgraphsByKeyword($keyword: String!) {
  subgraphs(
    where: {metadata_: {displayName_contains_nocase: $keyword}}
    orderBy: currentSignalledTokens
    orderDirection: desc
    first: 1000
  ) {
    id
    metadata {
      displayName
    }
    currentVersion {
      subgraphDeployment {
        ipfsHash
      }
    }
  }
}
"""

DAILY_QUERY_COUNTS_QUERY = """
query GetSubgraphDeployment30DayQueryCounts(
  $deploymentIDs: [ID!]!,
  $thirtyDaysAgoTimestamp: BigInt!
) {
  subgraphDeployments(where: { id_in: $deploymentIDs }) {
    id
    queryDailyDataPoints(
      where: { dayStart_gte: $thirtyDaysAgoTimestamp }
      orderBy: dayStart
      orderDirection: asc
      first: 31
    ) {
      query_count
      dayStart
    }
  }
}
"""

SCHEMA_PATH = ("manifest", "schema", "schema")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def dig(value: Any, *path: str | int) -> Any:
    """Walk nested dict keys / list indexes, returning None on any missing step."""
    for segment in path:
        if isinstance(segment, int):
            if not isinstance(value, list) or not -len(value) <= segment < len(value):
                return None
            value = value[segment]
        else:
            if not isinstance(value, dict):
                return None
            value = value.get(segment)
        if value is None:
            return None
    return value


def first_error_message(body: Any) -> str | None:
    """Return the message of the first GraphQL error, or None when there are none."""
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list) or not errors:
        return None
    message = dig(errors, 0, "message")
    if not isinstance(message, str):
        return "Received GraphQL errors without a message."
    return message


def limit_search_results(subgraphs: list[Any]) -> dict[str, Any]:
    """Trim keyword-search hits: top 10 up to 100 hits, else ceil(sqrt(total))."""
    total = len(subgraphs)
    limit = 10 if total <= 100 else math.ceil(math.sqrt(total))
    limited = subgraphs[:limit]
    return {"subgraphs": limited, "total": total, "returned": len(limited)}


def _observed(endpoint_type: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap a GatewayClient coroutine method in `observe_gateway_request`."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(self: GatewayClient, *args: Any, **kwargs: Any) -> T:
            return await self.observer.observe_gateway_request(
                endpoint_type, lambda: func(self, *args, **kwargs)
            )

        return wrapper

    return decorator


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class GatewayClient:
    """Issues GraphQL requests against gateway endpoints.

    One instance is shared by all tool calls; it holds no per-call state apart
    from the pooled `httpx.AsyncClient`.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        network_subgraph: str,
        qos_oracle: str,
        observer: RequestObserver | None = None,
    ) -> None:
        self.http_client = http_client
        self.network_subgraph = network_subgraph
        self.qos_oracle = qos_oracle
        self.observer: RequestObserver = observer or NullObserver()

    async def post_graphql(
        self,
        url: str,
        query: str,
        variables: Any | None = None,
    ) -> Any:
        """POST `{query, variables?}` to `url` and return the parsed JSON body.

        Raises GraphQlError when the body carries a non-empty `errors` list.
        `variables` is left out of the body entirely when None.
        """
        body: dict[str, Any] = {"query": query}
        if variables is not None:
            body["variables"] = variables

        try:
            response = await self.http_client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Gateway request failed: %s", type(exc).__name__)
            raise HttpError(str(exc) or type(exc).__name__) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            if response.is_success:
                raise ProcessingError(f"Invalid JSON in gateway response: {exc}") from exc
            raise HttpError(
                f"Gateway responded with {response.status_code}: {response.text[:200]}"
            ) from exc

        message = first_error_message(payload)
        if message is not None:
            logger.warning("Gateway returned GraphQL error: %s", message)
            raise GraphQlError(message)
        if not response.is_success:
            raise HttpError(f"Gateway responded with {response.status_code}: {response.text[:200]}")
        return payload

    async def execute_query(
        self,
        target: GatewayTarget,
        endpoint_type: EndpointType,
        identifier: str,
        query: str,
        variables: Any | None = None,
    ) -> Any:
        """Run a caller-supplied query against a subgraph or deployment endpoint.

        Returns the full response body on success.
        """
        url = build_endpoint_url(target.base_url, target.api_key, endpoint_type, identifier)
        return await self.observer.observe_gateway_request(
            endpoint_type.value, lambda: self.post_graphql(url, query, variables)
        )

    async def _query_data(
        self, target: GatewayTarget, deployment: str, query: str, variables: dict[str, Any]
    ) -> Any:
        url = build_endpoint_url(target.base_url, target.api_key, EndpointType.DEPLOYMENTS, deployment)
        payload = await self.post_graphql(url, query, variables)
        data = dig(payload, "data")
        if data is None:
            raise GraphQlError("No data returned from the GraphQL API")
        return data

    async def query_network_subgraph(self, target: GatewayTarget, query: str, variables: dict[str, Any]) -> Any:
        """Query the network subgraph and return its `data` field."""
        return await self._query_data(target, self.network_subgraph, query, variables)

    @_observed(NETWORK_SUBGRAPH_QUERY)
    async def get_schema_by_deployment_id(self, target: GatewayTarget, deployment_id: str) -> str:
        data = await self.query_network_subgraph(
            target, SCHEMA_BY_DEPLOYMENT_ID_QUERY, {"id": deployment_id}
        )
        schema = dig(data, "subgraphDeployment", *SCHEMA_PATH)
        if not isinstance(schema, str):
            raise GraphQlError("Schema not found in the response")
        return schema

    @_observed(NETWORK_SUBGRAPH_QUERY)
    async def get_schema_by_subgraph_id(self, target: GatewayTarget, subgraph_id: str) -> str:
        data = await self.query_network_subgraph(
            target, SCHEMA_BY_SUBGRAPH_ID_QUERY, {"id": subgraph_id}
        )
        schema = dig(data, "subgraph", "currentVersion", "subgraphDeployment", *SCHEMA_PATH)
        if not isinstance(schema, str):
            raise GraphQlError("Schema not found for current version in the response")
        return schema

    @_observed(NETWORK_SUBGRAPH_QUERY)
    async def get_schema_by_ipfs_hash(self, target: GatewayTarget, ipfs_hash: str) -> str:
        data = await self.query_network_subgraph(
            target, SCHEMA_BY_IPFS_HASH_QUERY, {"hash": ipfs_hash}
        )
        schema = dig(data, "subgraphDeployments", 0, *SCHEMA_PATH)
        if not isinstance(schema, str):
            raise GraphQlError("Schema not found for the given IPFS hash in the response")
        return schema

    @_observed(NETWORK_SUBGRAPH_QUERY)
    async def get_top_subgraph_deployments(
        self, target: GatewayTarget, contract_address: str, chain: str
    ) -> Any:
        return await self.query_network_subgraph(
            target,
            TOP_DEPLOYMENTS_QUERY,
            {"network": chain, "contractAddress": contract_address},
        )

    @_observed(NETWORK_SUBGRAPH_QUERY)
    async def search_subgraphs_by_keyword(self, target: GatewayTarget, keyword: str) -> Any:
        data = await self.query_network_subgraph(
            target, SEARCH_SUBGRAPHS_QUERY, {"keyword": keyword}
        )
        subgraphs = dig(data, "subgraphs")
        if isinstance(subgraphs, list):
            return limit_search_results(subgraphs)
        return data

    @_observed(QOS_ORACLE_QUERY)
    async def get_daily_query_points(
        self, target: GatewayTarget, deployment_ids: list[str], since: int
    ) -> Any:
        """Fetch per-day query counts since `since` (unix seconds) from the QoS oracle."""
        return await self._query_data(
            target,
            self.qos_oracle,
            DAILY_QUERY_COUNTS_QUERY,
            {"deploymentIDs": list(deployment_ids), "thirtyDaysAgoTimestamp": str(since)},
        )
