from fastapi import APIRouter

from talentmatch.api.routes import applications, candidates, companies, health, matches

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(candidates.router, prefix="/candidates", tags=["candidates"])
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])
api_router.include_router(matches.router, prefix="/matches", tags=["matches"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
