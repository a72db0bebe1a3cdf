from __future__ import annotations

from enum import Enum


class IdentifierKind(str, Enum):
    SUBGRAPH_ID = "subgraph_id"
    DEPLOYMENT_ID = "deployment_id"
    IPFS_HASH = "ipfs_hash"


class EndpointType(str, Enum):
    SUBGRAPHS = "subgraphs/id"
    DEPLOYMENTS = "deployments/id"


class Operation(str, Enum):
    """Query operations addressed by a caller-declared identifier kind."""

    EXECUTE_QUERY_BY_SUBGRAPH_ID = "execute_query_by_subgraph_id"
    EXECUTE_QUERY_BY_DEPLOYMENT_ID = "execute_query_by_deployment_id"
    EXECUTE_QUERY_BY_IPFS_HASH = "execute_query_by_ipfs_hash"


# The gateway serves IPFS hashes from the deployments path, same as 0x ids.
ENDPOINT_BY_IDENTIFIER: dict[IdentifierKind, EndpointType] = {
    IdentifierKind.SUBGRAPH_ID: EndpointType.SUBGRAPHS,
    IdentifierKind.DEPLOYMENT_ID: EndpointType.DEPLOYMENTS,
    IdentifierKind.IPFS_HASH: EndpointType.DEPLOYMENTS,
}

IDENTIFIER_BY_OPERATION: dict[Operation, IdentifierKind] = {
    Operation.EXECUTE_QUERY_BY_SUBGRAPH_ID: IdentifierKind.SUBGRAPH_ID,
    Operation.EXECUTE_QUERY_BY_DEPLOYMENT_ID: IdentifierKind.DEPLOYMENT_ID,
    Operation.EXECUTE_QUERY_BY_IPFS_HASH: IdentifierKind.IPFS_HASH,
}


def identifier_kind_for(operation: Operation) -> IdentifierKind:
    return IDENTIFIER_BY_OPERATION[operation]


def endpoint_for(operation: Operation) -> EndpointType:
    """Map an operation to the gateway path template it queries.

    This is a static lookup; identifier strings are never inspected.
    """
    return ENDPOINT_BY_IDENTIFIER[identifier_kind_for(operation)]


def build_endpoint_url(
    base_url: str,
    api_key: str,
    endpoint_type: EndpointType | str,
    identifier: str,
) -> str:
    """Build `{base_url}/{api_key}/{endpoint_type}/{identifier}`.

    Only a trailing slash on `base_url` is normalised; the key and the
    identifier are inserted as given.
    """
    path = endpoint_type.value if isinstance(endpoint_type, EndpointType) else endpoint_type
    return f"{base_url.rstrip('/')}/{api_key}/{path}/{identifier}"
