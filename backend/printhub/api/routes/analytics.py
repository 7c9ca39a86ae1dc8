"""
Analytics API for PrintHub

Provides endpoints for:
- Revenue, jobs, average job value and customers vs the previous period
- Daily performance and top services
- CSV export of the headline metrics
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from printhub.core.config import get_settings
from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, require_shop_owner
from printhub.services import analytics_service

router = APIRouter()
logger = logging.getLogger(__name__)
settings = get_settings()


@router.get("")
async def get_analytics(
    period: str = Query("week", description="week, month, year or a number of days"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    Completed-job analytics for the current period, with percentage change
    against the period before it.
    """
    try:
        return await analytics_service.get_shop_analytics(db, user.id, period)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error fetching analytics for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/export")
async def export_analytics(
    period: str = Query("week"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    report = await analytics_service.get_shop_analytics(db, user.id, period)
    content = analytics_service.analytics_csv(report, settings.CURRENCY_SYMBOL)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="shop-analytics-{report["days"]}-days.csv"'},
    )
