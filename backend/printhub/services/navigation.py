"""
Page routing and the auth/role guard.

Customers and shop owners see disjoint page sets; signed-out users are sent
to /auth for anything that is not public.
"""

import re
from typing import Optional

from printhub.core.security import CurrentUser

PUBLIC_PAGES = {
    "/": "index",
    "/auth": "auth",
}

SHOP_OWNER_PAGES = {
    "/print-queue": "print_queue",
    "/slot-config": "slot_config",
    "/shop-analytics": "shop_analytics",
    "/shop-settings": "shop_settings",
    "/shop-profile": "shop_profile",
    "/shop-customers": "shop_customers",
}

CUSTOMER_PAGES = {
    "/portal": "portal",
    "/find-shops": "find_shops",
    "/history": "history",
    "/print-history": "print_history",
    "/profile": "profile",
}

# Customer pages a shop owner is bounced away from
OWNER_REDIRECTED = {"/portal", "/history", "/profile"}

BOOK_SLOT = re.compile(r"^/book-slot/(?P<shop_id>[^/]+)$")

AUTH_PAGE = "/auth"
CUSTOMER_HOME = "/portal"
SHOP_OWNER_HOME = "/print-queue"


def _normalize(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


def _result(path: str, page: Optional[str], redirect: Optional[str] = None, params: dict = None) -> dict:
    if page is None:
        return {"path": path, "status": 404, "page": "not_found", "redirect": None, "params": {}}
    if redirect:
        return {"path": path, "status": 302, "page": page, "redirect": redirect, "params": params or {}}
    return {"path": path, "status": 200, "page": page, "redirect": None, "params": params or {}}


def resolve_route(path: str, user: Optional[CurrentUser]) -> dict:
    """
    Decide what a browser path shows for the given user.

    Returns:
        {"path", "status": 200 | 302 | 404, "page", "redirect", "params"}
    """
    path = _normalize(path)

    if path in PUBLIC_PAGES:
        return _result(path, PUBLIC_PAGES[path])

    params = {}
    if path in SHOP_OWNER_PAGES:
        page, owner_only = SHOP_OWNER_PAGES[path], True
    elif path in CUSTOMER_PAGES:
        page, owner_only = CUSTOMER_PAGES[path], False
    else:
        match = BOOK_SLOT.match(path)
        if not match:
            return _result(path, None)
        page, owner_only = "book_slot", False
        params = match.groupdict()

    if user is None:
        return _result(path, page, redirect=AUTH_PAGE, params=params)
    if owner_only and not user.is_shop_owner:
        return _result(path, page, redirect=CUSTOMER_HOME, params=params)
    if user.is_shop_owner and path in OWNER_REDIRECTED:
        return _result(path, page, redirect=SHOP_OWNER_HOME, params=params)
    return _result(path, page, params=params)
