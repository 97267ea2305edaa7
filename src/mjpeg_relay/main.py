"""
MJPEG Relay Main Application
============================

FastAPI entry point for the frame relay.

Endpoints:
    GET  /health                     - Liveness probe and auth mode
    GET  /jpg/{session}              - Latest frame (204 if none yet)       [view]
    GET  /mjpg/{session}             - multipart/x-mixed-replace stream     [view]
    WS   /ws?session=..&token=..     - Frame ingestion (binary messages)    [upload]
    GET  /status                     - Live sessions, watchers, uploaders   [admin code]
    POST /admin/disconnect/{session} - Close uploaders, clear stored frame  [admin code]
    POST /issue                      - Mint a view/upload token (token mode, issuer key)

Credentials:
    view/upload: `Authorization: Bearer <credential>` or `?t=` (`?token=` on /ws)
    admin:       `?code=` or `X-Relay-Admin-Code` header
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from mjpeg_relay.auth import AccessGate, extract_credential, require_valid_session_key
from mjpeg_relay.config import Settings, settings
from mjpeg_relay.exceptions import AccessDenied
from mjpeg_relay.ingest import ingest_frames
from mjpeg_relay.models import (
    Capability,
    DisconnectResponse,
    ErrorResponse,
    HealthResponse,
    IssueRequest,
    IssueResponse,
    RejectionReason,
)
from mjpeg_relay.relay import FrameRelay, multipart_content_type, multipart_stream
from mjpeg_relay.responses import MultipartResponse


logger = logging.getLogger(__name__)


NO_CACHE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Content-Type-Options": "nosniff",
}


# =============================================================================
# Dependencies
# =============================================================================

def get_relay(request: Request) -> FrameRelay:
    return request.app.state.relay


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


def require_capability(capability: Capability) -> Callable:
    """Dependency factory: authorize the `session` path parameter for a capability."""
    
    async def dependency(
        session: str,
        request: Request,
        t: Optional[str] = Query(default=None, description="Credential"),
    ) -> Capability:
        credential = extract_credential(request.headers.get("authorization"), t)
        return get_gate(request).authorize(session, capability, credential)
    
    return dependency


async def require_admin(
    request: Request,
    code: Optional[str] = Query(default=None, description="Admin code"),
    x_relay_admin_code: Optional[str] = Header(default=None),
) -> Capability:
    """Admin endpoints accept the code from the query string or a header."""
    return get_gate(request).authorize_admin(code or x_relay_admin_code)


# =============================================================================
# Error Handlers
# =============================================================================

async def access_denied_handler(request: Request, exc: AccessDenied) -> JSONResponse:
    payload = ErrorResponse(error=exc.reason.value, detail=exc.detail)
    return JSONResponse(
        payload.model_dump(),
        status_code=exc.status_code,
        headers=NO_CACHE_HEADERS,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(
        ".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()
    )
    payload = ErrorResponse(
        error=RejectionReason.BAD_REQUEST.value,
        detail=f"invalid fields: {fields}" if fields else "invalid request",
    )
    return JSONResponse(payload.model_dump(), status_code=400, headers=NO_CACHE_HEADERS)


# =============================================================================
# Application Factory
# =============================================================================

def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the relay application.
    
    The access gate is resolved here, so a contradictory auth
    configuration fails before the server accepts any connection.
    
    Args:
        config: Settings to use. Defaults to the global settings.
    """
    config = config or settings
    
    gate = AccessGate.from_config(config.auth)
    relay = FrameRelay(
        boundary=config.stream.boundary,
        content_type=config.stream.content_type,
        max_stalled_frames=config.stream.max_stalled_frames,
    )
    
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        app.state.startup_time = time.time()
        logger.info(f"Starting {config.relay.name} {config.relay.version}")
        logger.info(
            f"Ingestion at {config.stream.ingest_path}, auth mode={gate.mode}, "
            f"boundary={config.stream.boundary}"
        )
        
        yield
        
        logger.info("Shutting down gracefully...")
        await relay.shutdown()
        logger.info("Shutdown complete")
    
    app = FastAPI(
        title="MJPEG Relay",
        description="Single-producer frame relay with multipart and snapshot delivery",
        version=config.relay.version,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.gate = gate
    app.state.relay = relay
    app.state.startup_time = time.time()
    
    app.add_exception_handler(AccessDenied, access_denied_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_api_websocket_route(config.stream.ingest_path, ingest_frames)
    
    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------
    
    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Liveness probe. Always 200 while the process serves requests."""
        return HealthResponse(
            auth_mode=get_gate(request).mode,
            uptime_seconds=round(time.time() - request.app.state.startup_time, 1),
            metrics=get_relay(request).metrics.to_dict(),
        )
    
    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------
    
    @app.get("/jpg/{session}", dependencies=[Depends(require_capability(Capability.VIEW))])
    async def snapshot(session: str, request: Request) -> Response:
        """Latest frame of a session, or 204 if nothing was published yet."""
        frame = get_relay(request).snapshot(session)
        if frame is None:
            return Response(status_code=204, headers=NO_CACHE_HEADERS)
        return Response(
            content=frame.data,
            media_type=config.stream.content_type,
            headers=NO_CACHE_HEADERS,
        )
    
    @app.get("/mjpg/{session}", dependencies=[Depends(require_capability(Capability.VIEW))])
    async def mjpeg(session: str, request: Request) -> MultipartResponse:
        """Held-open multipart stream, primed with the stored frame if any."""
        return MultipartResponse(
            multipart_stream(get_relay(request), session),
            media_type=multipart_content_type(config.stream.boundary),
            headers={**NO_CACHE_HEADERS, "Connection": "keep-alive"},
        )
    
    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------
    
    @app.get("/status", dependencies=[Depends(require_admin)])
    async def status(request: Request) -> JSONResponse:
        """Sessions with a stored frame plus watcher/uploader counts."""
        return JSONResponse(
            get_relay(request).status().model_dump(mode="json"),
            headers=NO_CACHE_HEADERS,
        )
    
    @app.post(
        "/admin/disconnect/{session}",
        response_model=DisconnectResponse,
        dependencies=[Depends(require_admin)],
    )
    async def admin_disconnect(session: str, request: Request) -> DisconnectResponse:
        """Close every uploader of a session and clear its stored frame."""
        require_valid_session_key(session)
        closed, cleared = await get_relay(request).disconnect(session)
        return DisconnectResponse(
            session=session,
            closed_uploaders=closed,
            frame_cleared=cleared,
        )
    
    @app.post("/issue", response_model=IssueResponse)
    async def issue(body: IssueRequest, request: Request) -> IssueResponse:
        """Mint a view/upload token for a session (token mode with issuer key only)."""
        return get_gate(request).issue(body)
    
    return app


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    import uvicorn
    
    uvicorn.run(
        "mjpeg_relay.main:app",
        host=settings.server.host,
        port=settings.server.port,
        ws="websockets",
        reload=False,
    )


if __name__ == "__main__":
    run()
