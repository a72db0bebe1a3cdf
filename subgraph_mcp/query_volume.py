"""30-day query volume per deployment, ranked busiest first."""

from __future__ import annotations

import re
import time
from typing import Any

from pydantic import BaseModel, Field

from .errors import GraphQlError
from .gateway import GatewayClient, dig
from .resolvers import GatewayTarget

WINDOW_SECONDS = 30 * 24 * 60 * 60
# 30 days plus the partially covered boundary day.
MAX_DATA_POINTS = 31

_INT64_MAX = 2**63 - 1
# Counts are non-negative; a sign other than "+" makes the value unparseable.
_DECIMAL = re.compile(r"\+?[0-9]+")


class DeploymentQueryVolume(BaseModel):
    deployment_id: str
    total_query_count: int = Field(ge=0)
    data_points_count: int = Field(ge=0)


class QueryVolumeRanking(BaseModel):
    deployments: list[DeploymentQueryVolume]

    @property
    def total_deployments_processed(self) -> int:
        return len(self.deployments)

    def as_payload(self) -> dict[str, Any]:
        return {
            "deployments": [d.model_dump() for d in self.deployments],
            "total_deployments_processed": self.total_deployments_processed,
        }


def window_start(now: float) -> int:
    """Start of the trailing 30-day window; not aligned to calendar days."""
    return int(now) - WINDOW_SECONDS


def parse_query_count(value: Any) -> int:
    """Parse a decimal-string count; anything unparseable counts as zero."""
    if not isinstance(value, str) or not _DECIMAL.fullmatch(value):
        return 0
    count = int(value)
    if count > _INT64_MAX:
        return 0
    return count


def rank_query_volumes(data: Any) -> QueryVolumeRanking:
    """Sum daily points per deployment and sort by total, descending.

    Ties keep response order. A deployment entry without an `id` or without
    its data points fails the whole ranking.
    """
    deployments = dig(data, "subgraphDeployments")
    if not isinstance(deployments, list):
        raise GraphQlError("Unexpected response format for deployments")

    volumes: list[DeploymentQueryVolume] = []
    for deployment in deployments:
        deployment_id = dig(deployment, "id")
        if not isinstance(deployment_id, str):
            raise GraphQlError("Missing deployment ID in response")
        points = dig(deployment, "queryDailyDataPoints")
        if not isinstance(points, list):
            raise GraphQlError("Missing data points in response")

        total = sum(parse_query_count(dig(point, "query_count")) for point in points)
        volumes.append(
            DeploymentQueryVolume(
                deployment_id=deployment_id,
                total_query_count=total,
                data_points_count=len(points),
            )
        )

    volumes.sort(key=lambda v: v.total_query_count, reverse=True)
    return QueryVolumeRanking(deployments=volumes)


async def aggregate_30day_counts(
    client: GatewayClient,
    target: GatewayTarget,
    deployment_ids: list[str],
    now: float | None = None,
) -> QueryVolumeRanking:
    since = window_start(time.time() if now is None else now)
    data = await client.get_daily_query_points(target, deployment_ids, since)
    return rank_query_volumes(data)
