"""
FastAPI dependency helpers for site resolution.
"""

from typing import Optional
from uuid import uuid4

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from boarding.core.config import settings
from boarding.core.db import get_db
from boarding.crud.sites import get_primary_site, get_site_by_handle, get_site_by_id, list_site_ids
from boarding.sites.context import SiteContext, build_site_context
from boarding.sites.errors import SiteNotFound, SiteNotSelected
from boarding.sites.middleware import clean_site_ref, extract_site_ref


def resolve_site(db: Session, site_ref: Optional[str], request_id: Optional[str] = None) -> SiteContext:
    """
    Resolve a site handle or numeric id. Without a selection, fall back to
    DEFAULT_SITE_HANDLE and then the primary site.
    """
    primary = get_primary_site(db)
    if primary is None:
        raise SiteNotSelected("No sites are configured")

    ref = clean_site_ref(site_ref)
    if ref is None:
        if settings.REQUIRE_SITE_PARAM:
            raise SiteNotSelected("Site must be provided via header or query parameter")
        ref = clean_site_ref(settings.DEFAULT_SITE_HANDLE)

    if ref is None:
        site = primary
    elif ref.isdigit():
        site = get_site_by_id(db, int(ref))
    else:
        site = get_site_by_handle(db, ref)
    if site is None:
        raise SiteNotFound(f"Site not found: {ref}")

    return build_site_context(site, primary, list_site_ids(db), request_id)


def get_site_context(request: Request, db: Session = Depends(get_db)) -> SiteContext:
    site_ref = getattr(request.state, "site_ref", None) or extract_site_ref(request)
    request_id = getattr(request.state, "request_id", None) or str(uuid4())
    try:
        return resolve_site(db, site_ref, request_id)
    except SiteNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SiteNotSelected as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
