"""
Analytics Service for PrintHub

Compares completed jobs in the current period against the period before it.
"""

import csv
import io
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.exceptions import ValidationError
from printhub.models import PrintJob, PrintJobStatus
import logging

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}
TOP_SERVICES_LIMIT = 6


def period_days(period: str) -> int:
    if period in PERIOD_DAYS:
        return PERIOD_DAYS[period]
    try:
        days = int(period)
    except (TypeError, ValueError):
        raise ValidationError(f"Unknown period: {period}", field="period")
    if not 1 <= days <= 365:
        raise ValidationError("Period must be between 1 and 365 days", field="period")
    return days


def date_ranges(days: int, now: Optional[datetime] = None) -> Tuple[Tuple[datetime, datetime], Tuple[datetime, datetime]]:
    """(current_start, current_end), (previous_start, previous_end)"""
    now = now or datetime.utcnow()
    start = now - timedelta(days=days)
    prev_end = start - timedelta(days=1)
    prev_start = prev_end - timedelta(days=days)
    return (start, now), (prev_start, prev_end)


def percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def service_name(job: PrintJob) -> str:
    color_type = (job.print_settings or {}).get("colorType")
    if color_type == "color":
        return "Color Printing"
    if color_type == "blackwhite":
        return "B&W Printing"
    return "Other"


def summarize(jobs: List[PrintJob]) -> dict:
    revenue = round(sum(float(j.total_cost or 0) for j in jobs), 2)
    count = len(jobs)
    return {
        "revenue": revenue,
        "jobs": count,
        "average_job_value": round(revenue / count, 2) if count else 0.0,
        "unique_customers": len({j.customer_id for j in jobs if j.customer_id}),
    }


def daily_performance(jobs: List[PrintJob]) -> List[dict]:
    days = defaultdict(lambda: {"revenue": 0.0, "jobs": 0})
    for job in jobs:
        key = job.created_at.date()
        days[key]["revenue"] += float(job.total_cost or 0)
        days[key]["jobs"] += 1
    return [
        {"day": day.strftime("%a"), "date": day.isoformat(), "revenue": round(data["revenue"], 2), "jobs": data["jobs"]}
        for day, data in sorted(days.items())
    ]


def top_services(jobs: List[PrintJob]) -> List[dict]:
    services = defaultdict(lambda: {"count": 0, "revenue": 0.0})
    for job in jobs:
        entry = services[service_name(job)]
        entry["count"] += 1
        entry["revenue"] += float(job.total_cost or 0)

    total = len(jobs)
    ranked = sorted(services.items(), key=lambda item: item[1]["count"], reverse=True)
    return [
        {
            "name": name,
            "count": data["count"],
            "revenue": round(data["revenue"], 2),
            "percentage": round(data["count"] / total * 100) if total else 0,
        }
        for name, data in ranked[:TOP_SERVICES_LIMIT]
    ]


async def _completed_between(db: AsyncSession, owner_id: uuid.UUID, start: datetime, end: datetime) -> List[PrintJob]:
    result = await db.execute(
        select(PrintJob).where(and_(
            PrintJob.shop_owner_id == owner_id,
            PrintJob.status == PrintJobStatus.COMPLETED,
            PrintJob.created_at >= start,
            PrintJob.created_at <= end,
        ))
    )
    return list(result.scalars().all())


async def get_shop_analytics(
    db: AsyncSession,
    owner_id: uuid.UUID,
    period: str = "week",
    now: Optional[datetime] = None
) -> dict:
    days = period_days(period)
    (start, end), (prev_start, prev_end) = date_ranges(days, now)

    current_jobs = await _completed_between(db, owner_id, start, end)
    try:
        previous_jobs = await _completed_between(db, owner_id, prev_start, prev_end)
    except Exception as e:
        logger.error(f"Error fetching previous analytics: {e}")
        previous_jobs = []

    current = summarize(current_jobs)
    previous = summarize(previous_jobs)
    logger.info(f"Analytics for {owner_id}: {len(current_jobs)} current, {len(previous_jobs)} previous jobs")

    return {
        "period": period,
        "days": days,
        "current": current,
        "previous": previous,
        "changes": {key: percentage_change(current[key], previous[key]) for key in current},
        "daily_performance": daily_performance(current_jobs),
        "top_services": top_services(current_jobs),
    }


def analytics_csv(report: dict, currency_symbol: str) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Metric", "Value", "Change"])
    current, changes = report["current"], report["changes"]
    writer.writerow(["Total Revenue", f"{currency_symbol}{current['revenue']:.2f}", f"{changes['revenue']:.1f}%"])
    writer.writerow(["Total Jobs", current["jobs"], f"{changes['jobs']:.1f}%"])
    writer.writerow([
        "Avg Job Value", f"{currency_symbol}{current['average_job_value']:.2f}",
        f"{changes['average_job_value']:.1f}%"
    ])
    writer.writerow(["Unique Customers", current["unique_customers"], f"{changes['unique_customers']:.1f}%"])
    return output.getvalue()
