"""
/sites: CRUD for monitored site rules. Every write reloads the classifier.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...api.schemas import SiteIn, SiteOut, SitePatch
from ...storage.sites import SiteNotFoundError, SiteValidationError

router = APIRouter(prefix="/sites", tags=["sites"])


def _get_sites(request: Request):
    return request.app.state.sites


def _get_classifier(request: Request):
    return request.app.state.classifier


def _out(rule) -> SiteOut:
    return SiteOut(**rule.__dict__)


@router.get("", response_model=List[SiteOut])
def list_sites(sites=Depends(_get_sites)):
    return [_out(r) for r in sites.all()]


@router.post("", response_model=SiteOut, status_code=status.HTTP_201_CREATED)
async def add_site(
    site: SiteIn,
    sites=Depends(_get_sites),
    classifier=Depends(_get_classifier),
):
    try:
        rule = sites.add(**site.model_dump())
    except SiteValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await classifier.reload_rules()
    return _out(rule)


@router.get("/{site_id}", response_model=SiteOut)
def get_site(site_id: str, sites=Depends(_get_sites)):
    rule = sites.get(site_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Site not found")
    return _out(rule)


@router.patch("/{site_id}", response_model=SiteOut)
async def update_site(
    site_id: str,
    patch: SitePatch,
    sites=Depends(_get_sites),
    classifier=Depends(_get_classifier),
):
    updates = {k: v for k, v in patch.model_dump().items() if v is not None}
    try:
        rule = sites.update(site_id, updates)
    except SiteNotFoundError:
        raise HTTPException(status_code=404, detail="Site not found")
    except SiteValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await classifier.reload_rules()
    return _out(rule)


@router.delete("/{site_id}")
async def delete_site(
    site_id: str,
    sites=Depends(_get_sites),
    classifier=Depends(_get_classifier),
):
    if not sites.delete(site_id):
        raise HTTPException(status_code=404, detail="Site not found")
    await classifier.reload_rules()
    return {"status": "removed"}
