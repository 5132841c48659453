from fastapi import APIRouter

from taskforce.api.routes import (
    admin,
    follows,
    health,
    home,
    listings,
    notifications,
    organisations,
    social,
    submissions,
)

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(admin.router, prefix="/api/admin", tags=["moderation"])
api_router.include_router(follows.router, prefix="/api/follow", tags=["follows"])
api_router.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
api_router.include_router(home.router, prefix="/api", tags=["public"])
api_router.include_router(submissions.router, prefix="/api", tags=["submissions"])
api_router.include_router(organisations.router, prefix="/api/organisations", tags=["organisations"])
api_router.include_router(social.router, prefix="/api", tags=["social"])
# Catch-all /api/{entity} listings go last so the fixed paths above win.
api_router.include_router(listings.router, prefix="/api", tags=["public"])
