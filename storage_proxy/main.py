"""
FastAPI application entry point.

This module creates and configures the proxy application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations and buckets
- Explicit about initialization order
- Can create multiple independent proxies in one process

For local development:
    uvicorn storage_proxy.main:create_app --factory --reload

For production:
    storage-proxy --bucket my-bucket --prefix cache/ --port 8080
"""

import argparse
import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import uvicorn
from fastapi import FastAPI
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.routes.proxy import ProxyConfig, StorageProxy, method_not_allowed_response
from .config.settings import Settings, get_settings
from .infrastructure.storage.client import BucketHandle, create_bucket_handle

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(format=LOG_FORMAT, level=level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log proxy startup and shutdown."""
    proxy: StorageProxy = app.state.proxy

    logger.info(
        "Storage proxy starting",
        extra={
            "version": __version__,
            "bucket": proxy.config.bucket.name,
            "prefix": proxy.config.prefix,
        }
    )

    yield

    logger.info("Storage proxy shutting down")


def create_app(
    settings: Optional[Settings] = None,
    bucket: Optional[BucketHandle] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Configuration to use (cached environment settings if None)
        bucket: Bucket to serve. Built from settings if None.

    Every path belongs to the proxy, so docs and OpenAPI routes are
    disabled rather than shadowing object keys.
    """
    settings = settings or get_settings()

    if bucket is None:
        bucket = create_bucket_handle(
            settings.storage_config(),
            mock_mode=settings.storage_mock_mode,
        )

    proxy = StorageProxy(
        ProxyConfig(
            bucket=bucket,
            prefix=settings.key_prefix,
            chunk_size=settings.chunk_size,
        )
    )

    app = FastAPI(
        title="Storage Proxy",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.proxy = proxy
    app.include_router(proxy.build_router())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request, exc: StarletteHTTPException):
        """Answer router-level 405s (verbs the proxy never routes) with no body."""
        if exc.status_code == 405:
            return method_not_allowed_response()
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message,
        so stack traces never leak to clients.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    logger.info(
        "FastAPI application created",
        extra={
            "bucket": bucket.name,
            "prefix": settings.key_prefix,
            "backend": type(bucket).__name__,
        }
    )

    return app


def bind_listener(address: str, port: int) -> socket.socket:
    """
    Open the TCP listener for the proxy.

    Binding happens before the server starts so a bad address or a taken
    port surfaces here as OSError instead of inside the server loop.
    """
    family = socket.AF_INET6 if ":" in address else socket.AF_INET
    return socket.create_server((address, port), family=family)


def serve(app: FastAPI, address: str, port: int, log_level: str = "info") -> None:
    """
    Bind and serve the app until the server is stopped.

    Raises:
        OSError: if the listener cannot be bound
    """
    sock = bind_listener(address, port)
    host, bound_port = sock.getsockname()[:2]
    bound = f"{host}:{bound_port}"

    logger.info("Starting http proxy server %s", bound, extra={"address": bound})

    config = uvicorn.Config(app, log_level=log_level.lower())
    server = uvicorn.Server(config)
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Process entry point. Flags override environment settings."""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Serve an object-storage bucket over plain HTTP")
    parser.add_argument("--bucket", default=settings.bucket_name, help="Bucket to serve")
    parser.add_argument("--prefix", default=settings.key_prefix, help="Prefix prepended to every object key")
    parser.add_argument("--address", default=settings.bind_address, help="Address to bind")
    parser.add_argument("--port", type=int, default=settings.bind_port, help="Port to bind")
    parser.add_argument(
        "--mock",
        action="store_true",
        default=settings.storage_mock_mode,
        help="Serve an in-memory bucket instead of real storage",
    )
    args = parser.parse_args(argv)

    settings = settings.model_copy(
        update={
            "bucket_name": args.bucket,
            "key_prefix": args.prefix,
            "bind_address": args.address,
            "bind_port": args.port,
            "storage_mock_mode": args.mock,
        }
    )

    configure_logging(settings.log_level)

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )
        parser.error(f"missing required configuration: {', '.join(missing_fields)}")

    app = create_app(settings)
    serve(app, settings.bind_address, settings.bind_port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
