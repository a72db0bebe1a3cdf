"""Per-call credential and gateway resolution.

Both resolvers read the same per-call header bag, carried explicitly in a
`ToolCallContext` rather than through ambient state, so concurrent calls never
see each other's headers.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import httpx

from .config import GATEWAY_API_KEY_ENV, GATEWAY_ID_HEADER
from .errors import ApiKeyNotSetError, GatewayConfigurationError, InvalidGatewayIdError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class ToolCallContext:
    """Headers of the inbound request that carries one tool call.

    Empty when the transport has no HTTP layer (stdio).
    """

    headers: httpx.Headers = field(default_factory=httpx.Headers)

    @classmethod
    def from_headers(cls, headers: Mapping[str, str] | None) -> ToolCallContext:
        return cls(headers=httpx.Headers(dict(headers or {})))


@dataclass(frozen=True)
class GatewayTarget:
    """Gateway base URL and API key resolved for a single call."""

    base_url: str
    api_key: str = field(repr=False)


def resolve_credential(
    context: ToolCallContext,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the API key for this call.

    A non-empty `Authorization: Bearer <token>` header always wins over the
    process-wide `GATEWAY_API_KEY` default.
    """
    auth = context.headers.get("authorization")
    if auth and auth.startswith(BEARER_PREFIX):
        token = auth[len(BEARER_PREFIX):]
        if token:
            logger.info("Using API key from Authorization header.")
            return token

    env = os.environ if environ is None else environ
    api_key = env.get(GATEWAY_API_KEY_ENV)
    if not api_key:
        raise ApiKeyNotSetError()
    logger.info("Using API key from %s environment variable.", GATEWAY_API_KEY_ENV)
    return api_key


class GatewayResolver:
    """Select a gateway base URL from an immutable registry."""

    def __init__(self, registry: Mapping[str, str], default_gateway_id: str) -> None:
        if default_gateway_id not in registry:
            raise GatewayConfigurationError(
                f"Default gateway ID '{default_gateway_id}' not found in registry"
            )
        self._registry: Mapping[str, str] = MappingProxyType(dict(registry))
        self.default_gateway_id = default_gateway_id

    @property
    def gateway_ids(self) -> list[str]:
        return list(self._registry)

    def resolve_gateway(self, context: ToolCallContext) -> str:
        gateway_id = context.headers.get(GATEWAY_ID_HEADER)
        if gateway_id:
            gateway_url = self._registry.get(gateway_id)
            if gateway_url is None:
                logger.warning("Invalid gateway ID requested: %s", gateway_id)
                raise InvalidGatewayIdError(gateway_id, self.gateway_ids)
            logger.info("Using gateway %s (%s) from '%s' header", gateway_id, gateway_url, GATEWAY_ID_HEADER)
            return gateway_url

        gateway_url = self._registry[self.default_gateway_id]
        logger.info("Using default gateway %s (%s)", self.default_gateway_id, gateway_url)
        return gateway_url

    def resolve_target(
        self,
        context: ToolCallContext,
        environ: Mapping[str, str] | None = None,
    ) -> GatewayTarget:
        """Resolve both the API key and the gateway URL for a call."""
        api_key = resolve_credential(context, environ)
        return GatewayTarget(base_url=self.resolve_gateway(context), api_key=api_key)
