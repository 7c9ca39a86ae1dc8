from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from printhub.core.security import CurrentUser, get_optional_user
from printhub.services.navigation import resolve_route

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/resolve")
async def resolve(
    path: str = Query("/"),
    user: Optional[CurrentUser] = Depends(get_optional_user)
):
    """Where the browser should go for a path, given who is signed in."""
    return resolve_route(path, user)
