"""
Pricing API for PrintHub

Shop pricing rules and cost quotes shown before a customer submits files.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.schemas import QuoteRequest
from printhub.services import pricing_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{shop_owner_id}/rules")
async def get_rules(shop_owner_id: UUID, db: AsyncSession = Depends(get_db)):
    rules = await pricing_service.get_pricing_rules(db, shop_owner_id)
    return {"rules": [rule.to_dict() for rule in rules]}


@router.post("/quote")
async def quote(body: QuoteRequest, db: AsyncSession = Depends(get_db)):
    """
    Price a set of files. Uses the shop's rules when shop_owner_id is given,
    the default rules otherwise.
    """
    try:
        if body.shop_owner_id:
            rules = await pricing_service.get_pricing_rules(db, body.shop_owner_id)
        else:
            rules = pricing_service.get_default_pricing_rules()

        settings = body.print_settings
        details = pricing_service.PrintJobDetails(
            pages=1,
            copies=settings.copies,
            color_type=settings.colorType,
            paper_quality=settings.paperQuality,
        )
        files = [{"name": f.name, "pages": f.pages} for f in body.files]
        per_file = [
            {
                "name": f["name"],
                "cost": pricing_service.calculate_multiple_files_cost([f], details, rules),
            }
            for f in files
        ]
        total = pricing_service.calculate_multiple_files_cost(files, details, rules)
        return {
            "files": per_file,
            "total_cost": total,
            "formatted": pricing_service.format_currency(total),
        }
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error computing quote: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")
