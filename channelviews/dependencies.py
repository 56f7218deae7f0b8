"""FastAPI dependencies shared by the routers."""
from typing import Optional

from fastapi import Query, Request

from channelviews.config import settings
from channelviews.store.base import EntityStore


def get_store(request: Request) -> EntityStore:
    """The store handle built once by the application lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Entity store not initialised — lifespan did not run")
    return store


def get_viewer(request: Request) -> Optional[str]:
    """
    Pre-verified viewer identity forwarded by the authentication gateway.

    Parsed (and rejected if malformed) by the composition pipeline.
    """
    return request.headers.get(settings.viewer_header) or None


def page_params(
    page: Optional[str] = Query(None, description="1-based page number"),
    size: Optional[str] = Query(None, description="Items per page (max 100)"),
    sort_by: Optional[str] = Query(None, description="Sort field, e.g. createdAt"),
    sort_dir: Optional[str] = Query(None, description="'asc' or 'desc'"),
) -> dict:
    # Kept as raw strings; the paginator owns validation and error messages.
    return {"page": page, "size": size, "sort_by": sort_by, "sort_dir": sort_dir}
