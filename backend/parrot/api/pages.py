"""
Page entry points of the diary and progress apps.

Rendering lives in the frontends; these handlers only exist so the route gate
has real routes to guard.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

router = APIRouter(tags=["pages"])


def _page(name: str, request: Request) -> Dict[str, Any]:
    user = getattr(request.state, "user", None)
    return {"page": name, "authenticated": user is not None}


@router.get("/")
def landing(request: Request):
    return _page("landing", request)


@router.get("/dashboard")
def dashboard(request: Request):
    return _page("dashboard", request)


@router.get("/collection")
def collection(request: Request):
    return _page("collection", request)


@router.get("/diary/search")
def diary_search(request: Request, q: Optional[str] = None):
    page = _page("diary-search", request)
    page["query"] = q
    return page


@router.get("/login")
def login(request: Request):
    return _page("login", request)


@router.get("/signup")
def signup(request: Request):
    return _page("signup", request)


@router.get("/auth/callback")
def auth_callback(request: Request):
    return _page("auth-callback", request)


@router.get("/auth/reset-password")
@router.get("/auth/reset-password/{step:path}")
def reset_password(request: Request, step: str = ""):
    page = _page("reset-password", request)
    page["step"] = step
    return page
