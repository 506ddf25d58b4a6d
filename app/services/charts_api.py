import asyncio
from typing import Any, Dict

import httpx
import structlog

from ..config import settings
from ..errors import ChartDataError
from .size_charts import ChartSnapshot, SizeChartRepository, parse_charts_document


logger = structlog.get_logger(__name__)


class ChartsApiClient:
    """Pulls the chart document from the size-chart content service."""

    def __init__(self, base: str | None = None, token: str | None = None) -> None:
        self.base = (base or settings.charts_api_base or "").rstrip("/")
        self.token = token if token is not None else settings.charts_api_token

    async def fetch_document(self) -> Dict[str, Any]:
        if not self.base:
            raise RuntimeError("CHARTS_API_BASE not configured")
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with httpx.AsyncClient(timeout=30.0) as client:
            resp = await client.get(f"{self.base}/size-charts", headers=headers)
            resp.raise_for_status()
            try:
                payload = resp.json()
            except ValueError as e:
                raise ChartDataError("chart service returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ChartDataError("chart service returned a non-object document")
        return payload

    async def fetch_snapshot(self) -> ChartSnapshot:
        return parse_charts_document(await self.fetch_document())


async def refresh_charts(repository: SizeChartRepository, client: ChartsApiClient) -> ChartSnapshot:
    """Fetch and validate a full chart set, then swap it in.

    The repository is only touched once the new snapshot is fully built, so a
    failed fetch or a bad document leaves the current charts in place.
    """
    snapshot = await client.fetch_snapshot()
    repository.replace(snapshot)
    logger.info("charts_refreshed", charts=len(snapshot.charts), version=snapshot.version, source=client.base)
    return snapshot


async def refresh_loop(repository: SizeChartRepository, client: ChartsApiClient, interval_seconds: float) -> None:
    """Refresh forever; a failed round keeps the current charts and waits for the next."""
    while True:
        try:
            await refresh_charts(repository, client)
        except (httpx.HTTPError, ChartDataError) as e:
            logger.warning("charts_refresh_failed", error=str(e), error_type=type(e).__name__, source=client.base)
        await asyncio.sleep(interval_seconds)
