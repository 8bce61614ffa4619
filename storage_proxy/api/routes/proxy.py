"""
Object proxy endpoints.

Every path is an object key. The HTTP verb picks the storage operation:

- GET        download the object (200 + body, or 404)
- HEAD       check the object exists (200 or 404, no body)
- POST, PUT  upload the request body as the object (201 or 400)
- anything else is 405

Keys are the request path with one leading slash stripped, qualified
with the configured prefix. The client-facing key (without the prefix)
decides the Content-Type of downloads.

The router is built per StorageProxy instance rather than registered on
a module-level router, so several proxies (e.g. in tests) can live in
one process.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from fastapi import APIRouter, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core.keys import KeyNamespace, content_type_for, object_key
from ...infrastructure.storage.client import (
    BucketHandle,
    ObjectNotFoundError,
    ObjectReader,
    ObjectWriter,
    StorageError,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# Methods routed to the proxy handler. Verbs outside this list are
# rejected by the router itself and answered by the app's 405 handler.
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


@dataclass(frozen=True)
class ProxyConfig:
    """
    Everything a proxy needs to serve requests.

    Fixed at startup and shared read-only by all requests.
    """
    bucket: BucketHandle
    prefix: str = ""
    chunk_size: int = DEFAULT_CHUNK_SIZE


# ---------------------------------------------------------------------------
# Error Translation
# ---------------------------------------------------------------------------

def not_found_response(key: str, error: StorageError) -> Response:
    """
    Answer a failed read-path lookup.

    Every storage failure on GET/HEAD becomes a bare 404: a missing object,
    a permission problem and a network error look the same to the client.
    The real cause only goes to the log.
    """
    if isinstance(error, ObjectNotFoundError):
        logger.info("Blob not found", extra={"key": key})
    else:
        logger.warning(
            "Blob lookup failed",
            extra={"key": key, "error": str(error)}
        )
    return Response(status_code=status.HTTP_404_NOT_FOUND)


def upload_failed_response(key: str, error: Exception) -> Response:
    """Answer a failed upload with the underlying error text."""
    detail = str(error) or error.__class__.__name__
    logger.error(
        "Blob upload failed",
        extra={"key": key, "error": detail}
    )
    return PlainTextResponse(
        f"Blob upload failed: {detail}",
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def method_not_allowed_response() -> Response:
    return Response(status_code=status.HTTP_405_METHOD_NOT_ALLOWED)


class ObjectStreamingResponse(StreamingResponse):
    """
    Streams an object body and always closes its reader.

    The close runs however the response ends: body fully sent, a read
    error, the client going away mid-stream, or the body never iterated.
    """

    def __init__(self, content: Iterator[bytes], reader: ObjectReader, **kwargs) -> None:
        super().__init__(content, **kwargs)
        self._reader = reader

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await run_in_threadpool(self._reader.close)


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------

class StorageProxy:
    """Serves a bucket (under a key prefix) over plain HTTP."""

    def __init__(self, config: ProxyConfig) -> None:
        self._config = config
        self._namespace = KeyNamespace(config.prefix)
        self._operations: dict[str, Callable] = {
            "GET": self.download_blob,
            "HEAD": self.check_blob_exists,
            "POST": self.upload_blob,
            "PUT": self.upload_blob,
        }

    @property
    def config(self) -> ProxyConfig:
        return self._config

    def object_name(self, key: str) -> str:
        """Storage key for a client key."""
        return self._namespace.storage_key(key)

    def build_router(self) -> APIRouter:
        """Create a router that sends every path to this proxy."""
        router = APIRouter()
        router.add_api_route(
            "/{path:path}",
            self.handle,
            methods=ROUTED_METHODS,
            include_in_schema=False,
        )
        return router

    async def handle(self, request: Request) -> Response:
        """Dispatch a request to the storage operation for its method."""
        # scope["path"] is the decoded path without the query string
        key = object_key(request.scope["path"])

        operation = self._operations.get(request.method)
        if operation is None:
            return method_not_allowed_response()

        return await operation(request, key)

    async def download_blob(self, request: Request, key: str) -> Response:
        """Stream an object to the client."""
        handle = self._config.bucket.object(self.object_name(key))

        try:
            reader = await run_in_threadpool(handle.new_reader)
        except StorageError as e:
            return not_found_response(key, e)

        return ObjectStreamingResponse(
            self._stream_object(reader, key),
            reader,
            media_type=content_type_for(key),
        )

    async def check_blob_exists(self, request: Request, key: str) -> Response:
        """Answer 200 if the object exists, 404 otherwise."""
        handle = self._config.bucket.object(self.object_name(key))

        try:
            attrs = await run_in_threadpool(handle.attrs)
        except StorageError as e:
            return not_found_response(key, e)

        if attrs is None:
            return not_found_response(key, ObjectNotFoundError(key))

        return Response(status_code=status.HTTP_200_OK)

    async def upload_blob(self, request: Request, key: str) -> Response:
        """
        Store the request body as an object.

        The body is copied in chunk_size pieces and only committed by the
        final flush, so a failed upload never replaces an existing object.
        The writer is closed on every path out of this method.
        """
        handle = self._config.bucket.object(self.object_name(key))

        try:
            writer = await run_in_threadpool(handle.new_writer)
        except StorageError as e:
            return upload_failed_response(key, e)

        try:
            try:
                size = await self._copy_body(request, writer)
            except (StorageError, ClientDisconnect, OSError) as e:
                return upload_failed_response(key, e)

            try:
                await run_in_threadpool(writer.flush)
            except StorageError as e:
                return upload_failed_response(key, e)
        finally:
            await self._close_writer(writer, key)

        logger.info(
            "Blob uploaded",
            extra={"key": key, "size_bytes": size}
        )
        return Response(status_code=status.HTTP_201_CREATED)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _stream_object(self, reader: ObjectReader, key: str) -> Iterator[bytes]:
        try:
            while True:
                chunk = reader.read(self._config.chunk_size)
                if not chunk:
                    break
                yield chunk
        except StorageError as e:
            # headers are already sent, all we can do is cut the body short
            logger.error(
                "Failed to serve blob",
                extra={"key": key, "error": str(e)}
            )
        finally:
            reader.close()

    async def _copy_body(self, request: Request, writer: ObjectWriter) -> int:
        chunk_size = self._config.chunk_size
        buffer = bytearray()
        total = 0

        async for chunk in request.stream():
            buffer.extend(chunk)
            while len(buffer) >= chunk_size:
                await run_in_threadpool(writer.write, bytes(buffer[:chunk_size]))
                total += chunk_size
                del buffer[:chunk_size]

        if buffer:
            await run_in_threadpool(writer.write, bytes(buffer))
            total += len(buffer)

        return total

    async def _close_writer(self, writer: ObjectWriter, key: str) -> None:
        try:
            await run_in_threadpool(writer.close)
        except (StorageError, OSError) as e:
            # the response is already decided; a close failure only gets logged
            logger.warning(
                "Failed to close blob writer",
                extra={"key": key, "error": str(e)}
            )
