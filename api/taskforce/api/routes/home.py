import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from taskforce.core.auth import Principal
from taskforce.core.security import get_optional_principal
from taskforce.schemas.common import Envelope
from taskforce.schemas.listings import HomeMarkersOut
from taskforce.schemas.notifications import HomeStatsOut
from taskforce.services import listings, notifications
from taskforce.services.database import RepositoryError, get_database

router = APIRouter()
logger = logging.getLogger(__name__)

HOME_CACHE_CONTROL = "public, s-maxage=600, stale-while-revalidate=3600"
HOME_PROJECT_MARKERS = 120
HOME_GRANT_MARKERS = 160
HOME_ISSUE_MARKERS = 160


@router.get("/home-markers", response_model=Envelope[HomeMarkersOut])
async def home_markers(
    response: Response,
    principal: Principal | None = Depends(get_optional_principal),
    database=Depends(get_database),
) -> Envelope[HomeMarkersOut]:
    project_markers = await listings.markers_or_empty(
        database, listings.PROJECTS, {}, principal, limit=HOME_PROJECT_MARKERS
    )
    grant_markers = await listings.markers_or_empty(database, listings.GRANTS, {}, principal, limit=HOME_GRANT_MARKERS)
    issue_markers = await listings.markers_or_empty(
        database, listings.WATCHDOG_ISSUES, {}, principal, limit=HOME_ISSUE_MARKERS
    )
    response.headers["Cache-Control"] = HOME_CACHE_CONTROL
    return Envelope(
        data=HomeMarkersOut(
            project_markers=project_markers,
            grant_markers=grant_markers,
            issue_markers=issue_markers,
        )
    )


@router.get("/home-stats", response_model=Envelope[HomeStatsOut])
async def home_stats(response: Response, database=Depends(get_database)):
    try:
        async with database.session() as session:
            stats = await notifications.home_stats(session)
    except RepositoryError as exc:
        logger.error("home stats failed error=%s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Failed to load home stats"})
    response.headers["Cache-Control"] = HOME_CACHE_CONTROL
    return Envelope(data=HomeStatsOut(**stats))
