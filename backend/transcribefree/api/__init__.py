# Router aggregator – import each route module here and expose ``api_router``
# for convenient inclusion in the FastAPI app.

from fastapi import APIRouter

from . import routes_exports, routes_sessions, routes_uploads


api_router = APIRouter()
api_router.include_router(routes_uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(routes_sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(routes_exports.router, prefix="/sessions", tags=["exports"])
