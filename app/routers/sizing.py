from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ..config import settings
from ..errors import ChartDataError
from ..schemas.sizing import SizeChartOut, SizeChartRowOut, SizeRecommendation
from ..security import verify_client
from ..services.charts_api import ChartsApiClient, refresh_charts
from ..services.recommender import Recommender
from ..services.size_charts import SizeChartRepository, default_repository


logger = structlog.get_logger("sizing")


router = APIRouter(prefix="/sizing", tags=["sizing"], dependencies=[Depends(verify_client)])


def get_repository() -> SizeChartRepository:
    return default_repository()


def get_recommender(repository: SizeChartRepository = Depends(get_repository)) -> Recommender:
    return Recommender(repository=repository)


@router.post("/calculate", response_model=SizeRecommendation)
def calculate(
    payload: Any = Body(...),
    debug: bool = Query(False),
    recommender: Recommender = Depends(get_recommender),
) -> SizeRecommendation:
    """Recommend a size from height, weight and an optional owned garment.

    Invalid input returns 400 naming the field; a missing chart returns 404.
    Everything else is answered, with risk and confidence qualifying the size.
    """
    return recommender.recommend_payload(payload, debug=debug)


@router.get("/charts", response_model=SizeChartOut)
def get_chart(
    sport_id: str = Query(..., alias="sportId"),
    product_type: str = Query(..., alias="productType"),
    gender: str = Query(...),
    repository: SizeChartRepository = Depends(get_repository),
) -> SizeChartOut:
    chart = repository.get_chart(sport_id, gender, product_type)
    rows = [
        SizeChartRowOut(
            size=e.size,
            height_min_cm=e.height_min_cm,
            height_max_cm=e.height_max_cm,
            chest_width_cm=e.chest_width_cm,
            jersey_length_cm=e.jersey_length_cm,
            shorts_length_cm=e.shorts_length_cm,
            sleeve_length_cm=e.sleeve_length_cm,
            waist_width_cm=e.waist_width_cm,
            hip_width_cm=e.hip_width_cm,
            weight_min_kg=e.weight_min_kg,
            weight_max_kg=e.weight_max_kg,
        )
        for e in chart.entries
    ]
    return SizeChartOut(
        sport=chart.key.sport,
        gender=chart.key.gender,
        product_type=chart.key.product_type,
        count=len(rows),
        sizes=rows,
    )


@router.post("/charts/refresh")
async def refresh(repository: SizeChartRepository = Depends(get_repository)):
    if not settings.charts_api_base:
        raise HTTPException(status_code=409, detail="CHARTS_API_BASE not configured")
    try:
        snapshot = await refresh_charts(repository, ChartsApiClient())
    except httpx.HTTPError as e:
        logger.warning("charts_refresh_failed", error=str(e))
        raise HTTPException(status_code=502, detail="Chart service unavailable")
    except ChartDataError as e:
        logger.warning("charts_refresh_rejected", error=str(e))
        raise HTTPException(status_code=502, detail=f"Chart service returned invalid charts: {e}")
    return {"status": "ok", "charts": len(snapshot.charts), "version": snapshot.version}
