"""Request-scoped dependencies shared by the routers."""

from fastapi import Depends, HTTPException, Request, status

from ..services.workflow import SessionNotFound, SessionRegistry, TranscriptionSession


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> TranscriptionSession:
    try:
        return registry.get(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
