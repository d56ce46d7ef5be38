"""Entry point for the APK download server."""

import sys
import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from common.logging_config import setup_logging
from apkserver import fatal
from apkserver.config import ServerConfig
from apkserver.exceptions import (
    ApkNotFoundError,
    ApkReadError,
    ApkStatError,
    ConfigurationError,
    StreamInterruptedError,
)
from apkserver.routes.apk_routes import router as apk_router
from apkserver.routes.health_routes import router as health_router

logger = setup_logging('apkserver')


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Server configuration. Defaults to ServerConfig.from_env()

    Returns:
        Configured FastAPI app
    """
    if config is None:
        config = ServerConfig.from_env()

    app = FastAPI(
        title="APK Server",
        description="Serves a single application package with conditional and range requests",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None
    )
    app.state.config = config

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path} "
            f"[request_id={request_id}] [client={request.client.host if request.client else 'unknown'}]"
        )

        response = await call_next(request)

        duration = time.time() - start_time

        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id

        return response

    @app.on_event("startup")
    async def startup_event():
        """
        Install the async fail-fast handler and announce the listener.
        """
        fatal.install_loop_handler()
        logger.info(f"Server up on :{config.port}  ->  /  &  /download")
        logger.info(
            f"Serving {config.apk_path} "
            f"(keep_alive={config.keep_alive_timeout}s, headers_timeout={config.headers_timeout}s, "
            f"trust_proxy={config.trust_proxy}, forwarded_allow_ips={config.forwarded_allow_ips})"
        )

    # StreamInterruptedError deliberately has no handler here: it is raised
    # after the response started and must reach the catch-all below.
    @app.exception_handler(ApkNotFoundError)
    async def apk_not_found_handler(request: Request, exc: ApkNotFoundError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.warning(
            f"File not found: {exc} [request_id={request_id}] path={request.url.path}"
        )
        return PlainTextResponse("File not found", status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(ApkStatError)
    async def apk_stat_error_handler(request: Request, exc: ApkStatError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"stat error: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=exc
        )
        return PlainTextResponse("Server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(ApkReadError)
    async def apk_read_error_handler(request: Request, exc: ApkReadError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"read error: {exc} [request_id={request_id}] path={request.url.path}"
        )
        return PlainTextResponse("Read error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return PlainTextResponse(
            str(exc.detail),
            status_code=exc.status_code,
            headers=getattr(exc, 'headers', None)
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, 'request_id', 'unknown')
        if isinstance(exc, (StreamInterruptedError, ClientDisconnect)):
            # Response already committed; the server drops the connection.
            logger.warning(
                f"Aborting response: {exc!r} [request_id={request_id}] path={request.url.path}"
            )
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

        fatal.fail_fast(f"unhandled exception [request_id={request_id}] path={request.url.path}", exc)
        return PlainTextResponse("Server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    app.include_router(health_router)
    app.include_router(apk_router)

    return app


def build_uvicorn_config(app: FastAPI, config: ServerConfig) -> uvicorn.Config:
    """
    Translate ServerConfig into uvicorn settings.

    uvicorn has no separate request-header deadline; idle connections are
    bounded by timeout_keep_alive.
    """
    return uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        timeout_keep_alive=config.keep_alive_timeout,
        proxy_headers=config.trust_proxy,
        forwarded_allow_ips=config.forwarded_allow_ips if config.trust_proxy else None,
        log_level=logger.getEffectiveLevel(),
    )


def main() -> None:
    """
    Start the server with uvicorn.
    """
    fatal.install_process_hooks()

    try:
        config = ServerConfig.from_env()
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(fatal.EXIT_FAILURE)

    server = uvicorn.Server(build_uvicorn_config(create_app(config), config))
    server.run()


if __name__ == "__main__":
    main()
