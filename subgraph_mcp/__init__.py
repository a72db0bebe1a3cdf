"""MCP server bridging tool calls to The Graph gateway."""

from .errors import (
    ApiKeyNotSetError,
    GatewayConfigurationError,
    GraphQlError,
    HttpError,
    InvalidGatewayIdError,
    ProcessingError,
    SubgraphError,
)
from .service import SubgraphService

__version__ = "0.1.1"

__all__ = [
    "ApiKeyNotSetError",
    "GatewayConfigurationError",
    "GraphQlError",
    "HttpError",
    "InvalidGatewayIdError",
    "ProcessingError",
    "SubgraphError",
    "SubgraphService",
]
