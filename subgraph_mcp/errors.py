"""Error taxonomy shared by the resolvers, the gateway client and the tools."""

from __future__ import annotations


class SubgraphError(Exception):
    """Base class for every failure surfaced to the tool layer."""

    prefix = ""
    # True when the caller can fix the problem by changing the request.
    client_correctable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        if self.prefix and self.message:
            return f"{self.prefix}: {self.message}"
        return self.message or self.prefix


class ApiKeyNotSetError(SubgraphError):
    prefix = "API key not set"
    client_correctable = True


class InvalidGatewayIdError(SubgraphError):
    """Raised for an unknown `x-gateway-id`; the message lists the valid ids."""

    client_correctable = True

    def __init__(self, gateway_id: str, valid_ids: list[str]) -> None:
        self.gateway_id = gateway_id
        self.valid_ids = list(valid_ids)
        super().__init__(
            f"Invalid gateway ID '{gateway_id}' from header. "
            f"Valid gateway IDs are: {', '.join(self.valid_ids)}"
        )


class GatewayConfigurationError(SubgraphError):
    """The process itself is misconfigured (e.g. default gateway not registered)."""

    prefix = "Gateway configuration error"


class HttpError(SubgraphError):
    prefix = "HTTP error"


class GraphQlError(SubgraphError):
    prefix = "GraphQL error"


class ProcessingError(SubgraphError):
    prefix = "Internal processing error"
