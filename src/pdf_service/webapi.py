import asyncio
import io
import logging

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from . import __version__
from .charset import UnsupportedCharset, media_type, utf8_reader
from .config import Settings
from .conversion import (
    ConversionGate,
    ConversionService,
    RendererGateway,
    SecurityGateway,
    SubprocessRenderer,
    TokenSecurity,
)
from .errors import Cancelled, ServiceError
from .log_setup import setup_logging
from .spooling import SPOOL_STATE_KEY, BodySpoolerMiddleware, DiskSlotGate

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

router = APIRouter()


def _parse_bearer(auth_header: str | None) -> str | None:
    # Case-insensitive scheme; token compared verbatim.
    if not auth_header:
        return None
    scheme, _, rest = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not rest.strip():
        return None
    return rest.strip()


async def _authorize(request: Request) -> None:
    security: SecurityGateway = request.app.state.security
    if not security.enabled:
        return
    token = _parse_bearer(request.headers.get("authorization"))
    # argon2 verification is deliberately slow; keep it off the event loop
    if token is None or not await asyncio.to_thread(security.verify, token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "missing or invalid bearer token"},
            headers={"WWW-Authenticate": "Bearer"},
        )


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _convert_until_disconnect(service: ConversionService, request: Request, source) -> bytes:
    """Run the conversion, killing it if the client goes away first."""
    job = asyncio.create_task(service.convert(source))
    watcher = asyncio.create_task(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({job, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        job.cancel()
        watcher.cancel()
        await asyncio.wait({job, watcher})
        raise
    watcher.cancel()
    if job in done:
        return job.result()
    job.cancel()
    await asyncio.wait({job})
    logger.info("Client disconnected, conversion of %s %s abandoned", request.method, request.url.path)
    raise Cancelled("client disconnected during conversion")


@router.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@router.api_route("/", methods=ALL_METHODS)
async def convert(request: Request) -> Response:
    """Convert an HTML request body to PDF.

    The body has already been spooled by ``BodySpoolerMiddleware``; its
    charset is normalized to UTF-8 before the renderer sees it.
    """
    if request.method != "POST":
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail={"code": "method_not_allowed", "message": "only POST is supported"},
            headers={"Accept": "POST"},
        )
    await _authorize(request)

    content_type = request.headers.get("content-type", "")
    if media_type(content_type) != "text/html":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "bad_request", "message": "Content-Type must be text/html"},
        )

    source = getattr(request.state, SPOOL_STATE_KEY, None)
    if source is None:
        # empty bodies skip spooling
        source = io.BytesIO(await request.body())
    try:
        utf8_body = utf8_reader(source, content_type)
    except UnsupportedCharset as e:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail={"code": "unsupported_media_type", "message": f"unsupported charset {e}"},
        )

    service: ConversionService = request.app.state.service
    pdf = await _convert_until_disconnect(service, request, utf8_body)
    return Response(content=pdf, media_type="application/pdf")


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(settings: Settings | None = None, *, renderer: RendererGateway | None = None) -> FastAPI:
    """Build the application and its process-wide gates from ``settings``."""
    settings = settings or Settings.from_env()
    app = FastAPI(
        title="HTML to PDF Conversion Service",
        version=__version__,
        description="Converts HTML documents to PDF with a bounded pool of wkhtmltopdf processes.",
    )

    if renderer is None:
        renderer = SubprocessRenderer(settings.renderer_command, max_output=settings.max_output_size)
    app.state.settings = settings
    app.state.security = TokenSecurity(token=settings.token, token_hash=settings.token_hash)
    app.state.service = ConversionService(
        renderer,
        ConversionGate(settings.convert_procs),
        max_duration=settings.convert_timeout,
        diagnostics=not settings.quiet,
    )

    policy = settings.spool
    disk_gate = DiskSlotGate(policy.max_spool_files, policy.spool_wait) if policy.max_spool_files > 0 else None
    app.add_middleware(BodySpoolerMiddleware, policy=policy, gate=disk_gate)
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Run the ASGI server using uvicorn.

    Exposes the app at HOST:PORT (default 0.0.0.0:8080).
    """
    import uvicorn

    settings: Settings = app.state.settings
    setup_logging(settings.log_level)
    logger.info(
        "Starting on %s:%d (procs=%d, timeout=%gs, max body=%d bytes)",
        settings.host, settings.port, settings.convert_procs,
        settings.convert_timeout, settings.spool.max_body_size,
    )
    uvicorn.run(
        "pdf_service.webapi:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,
    )


if __name__ == "__main__":
    run()
