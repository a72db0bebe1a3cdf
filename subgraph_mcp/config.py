from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Gateway / network constants
# -----------------------------------------------------------------------------

GATEWAY_API_KEY_ENV = "GATEWAY_API_KEY"
DEFAULT_GATEWAY_ID_ENV = "DEFAULT_GATEWAY_ID"
GRAPH_NETWORK_SUBGRAPH_ENV = "GRAPH_NETWORK_SUBGRAPH"
REQUEST_TIMEOUT_ENV = "SUBGRAPH_REQUEST_TIMEOUT_SECONDS"

GATEWAY_ID_HEADER = "x-gateway-id"

DEFAULT_GATEWAY_ID = "edgeandnode"
GRAPH_NETWORK_SUBGRAPH_ARBITRUM = "QmdKXcBUHR3UyURqVRQHu1oV6VUkBrhi2vNvMx3bNDnUCc"
GATEWAY_QOS_ORACLE = "QmZmb6z87QmqBLmkMhaqWy7h2GLF1ey8Qj7YSRuqSGMjeH"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 120.0

GATEWAY_REGISTRY: Mapping[str, str] = MappingProxyType(
    {
        "edgeandnode": "https://gateway.thegraph.com/api",
        "graphops": "https://gateway.graphops.xyz/api",
    }
)


def _parse_timeout(raw: str | None) -> float:
    """Parse the request timeout, falling back to the default on bad input."""
    if raw is None:
        return DEFAULT_REQUEST_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", REQUEST_TIMEOUT_ENV, raw)
        return DEFAULT_REQUEST_TIMEOUT_SECONDS
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r", REQUEST_TIMEOUT_ENV, raw)
        return DEFAULT_REQUEST_TIMEOUT_SECONDS
    return value


class Settings(BaseModel):
    """Process-wide configuration, read once at startup."""

    model_config = ConfigDict(frozen=True)

    default_gateway_id: str = DEFAULT_GATEWAY_ID
    network_subgraph: str = GRAPH_NETWORK_SUBGRAPH_ARBITRUM
    qos_oracle: str = GATEWAY_QOS_ORACLE
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    gateways: Mapping[str, str] = Field(default_factory=lambda: GATEWAY_REGISTRY)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            default_gateway_id=env.get(DEFAULT_GATEWAY_ID_ENV) or DEFAULT_GATEWAY_ID,
            network_subgraph=env.get(GRAPH_NETWORK_SUBGRAPH_ENV) or GRAPH_NETWORK_SUBGRAPH_ARBITRUM,
            request_timeout_seconds=_parse_timeout(env.get(REQUEST_TIMEOUT_ENV)),
        )
