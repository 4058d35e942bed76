"""FastAPI dependencies."""

from fastapi import HTTPException, Request, WebSocket, status

from multistream.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Get the session manager created by the application lifespan.

    Raises:
        HTTPException: If the application has not finished starting.
    """
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session manager not initialized",
        )
    return manager


def get_ws_session_manager(websocket: WebSocket) -> SessionManager:
    return websocket.app.state.session_manager
