"""Resolve size chart references to their published charts."""

from typing import Optional
import logging

from app.schemas.meli import MeliSizeChart
from app.services.meli.client import MeliClient

logger = logging.getLogger(__name__)


class SizeChartResolver:
    """Fetch size charts, each chart id at most once per resolver.

    A resolver lives for one sync run; listings sharing a chart reuse the
    first fetch.
    """

    def __init__(self, client: Optional[MeliClient] = None):
        self.client = client or MeliClient()
        self._charts: dict[str, MeliSizeChart] = {}

    async def resolve(self, chart_id: str, access_token: str) -> MeliSizeChart:
        """Return the size chart for ``chart_id``.

        Raises:
            BadRequestError: If chart_id is blank
            MeliAPIError: If the chart cannot be fetched
        """
        chart = self._charts.get(chart_id)
        if chart is None:
            chart = await self.client.get_size_chart(chart_id, access_token)
            logger.debug(f"Resolved size chart {chart_id} with {len(chart.rows)} rows")
            self._charts[chart_id] = chart
        return chart
