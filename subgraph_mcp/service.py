from __future__ import annotations

from collections.abc import Mapping

import httpx

from .config import Settings
from .gateway import GatewayClient
from .metrics import NullObserver, RequestObserver
from .resolvers import GatewayResolver, GatewayTarget, ToolCallContext


class SubgraphService:
    """Wires settings, resolvers, metrics and the gateway client together.

    Built once per process; every tool call goes through `target_for` and
    then one of the `client` methods.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        observer: RequestObserver | None = None,
        http_client: httpx.AsyncClient | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.observer: RequestObserver = observer or NullObserver()
        self.environ = environ
        self.resolver = GatewayResolver(settings.gateways, settings.default_gateway_id)
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout_seconds,
            headers={"Content-Type": "application/json"},
        )
        self.client = GatewayClient(
            self.http_client,
            network_subgraph=settings.network_subgraph,
            qos_oracle=settings.qos_oracle,
            observer=self.observer,
        )

    @classmethod
    def from_env(cls, observer: RequestObserver | None = None) -> SubgraphService:
        return cls(Settings.from_env(), observer=observer)

    def target_for(self, context: ToolCallContext) -> GatewayTarget:
        return self.resolver.resolve_target(context, self.environ)

    async def aclose(self) -> None:
        await self.http_client.aclose()
