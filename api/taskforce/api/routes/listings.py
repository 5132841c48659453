from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from taskforce.core.auth import Principal
from taskforce.core.config import Settings, get_settings
from taskforce.core.security import get_optional_principal
from taskforce.schemas.common import Envelope
from taskforce.schemas.listings import ListingPageOut
from taskforce.services import listings
from taskforce.services.database import get_database

router = APIRouter()


def _spec(entity: str) -> listings.ListingSpec:
    spec = listings.LISTINGS.get(entity)
    if spec is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return spec


def _raw_params(request: Request) -> dict[str, list[str]]:
    params = request.query_params
    return {key: params.getlist(key) for key in params.keys()}


@router.get("/{entity}", response_model=Envelope[ListingPageOut])
async def list_entity(
    entity: str,
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    settings: Settings = Depends(get_settings),
    database=Depends(get_database),
) -> Envelope[ListingPageOut]:
    spec = _spec(entity)
    raw = _raw_params(request)
    page = await listings.find_or_empty(database, spec, raw, principal)
    view = listings.resolve_view(raw, settings)
    marker_rows = None
    if view == "map":
        marker_rows = await listings.markers_or_empty(database, spec, raw, principal)
    return Envelope(
        data=ListingPageOut(
            rows=page.rows,
            total_count=page.total_count,
            page=page.page,
            page_count=page.page_count,
            view=view,
            markers=marker_rows,
        )
    )


@router.get("/{entity}/markers", response_model=Envelope[list[dict[str, Any]]])
async def list_entity_markers(
    entity: str,
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    database=Depends(get_database),
) -> Envelope[list[dict[str, Any]]]:
    spec = _spec(entity)
    return Envelope(data=await listings.markers_or_empty(database, spec, _raw_params(request), principal))


@router.get("/{entity}/filter-options", response_model=Envelope[dict[str, list[Any]]])
async def list_entity_filter_options(entity: str, database=Depends(get_database)) -> Envelope[dict[str, list[Any]]]:
    spec = _spec(entity)
    return Envelope(data=await listings.filter_options_or_empty(database, spec))
