"""
Relay gateway routes.

Forwards dashboard requests to the sensor device so the browser never
addresses the device directly. Each payload kind has its own discipline:
- /sensors, /api: JSON snapshot, buffered, content-type from upstream
- /image: single JPEG frame, buffered, content-type forced to image/jpeg
- /video: multipart MJPEG, piped chunk by chunk, never buffered whole
- /predict: byte-transparent passthrough of query, headers, status and body

A genuine upstream HTTP response (including 4xx/5xx) is relayed with its
own status. Only exceptions raised while forwarding become a 500 envelope.
"""
import asyncio
from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from sensor_relay.config import get_settings
from sensor_relay.errors import RelayError, StreamUnavailableError
from sensor_relay.schemas import ErrorEnvelope

logger = structlog.get_logger()
router = APIRouter(tags=["relay"])

ERROR_RESPONSES = {500: {"model": ErrorEnvelope, "description": "Forwarding failed"}}

NO_STORE = "no-store"
DEFAULT_SNAPSHOT_TYPE = "application/json"
DEFAULT_STREAM_TYPE = "multipart/x-mixed-replace"

# Per-connection headers; never copied between the two hops.
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
})


def get_upstream_client(request: Request) -> httpx.AsyncClient:
    """Shared device client created in the app lifespan."""
    return request.app.state.upstream


def _forwardable(raw_headers) -> list[tuple[bytes, bytes]]:
    return [
        (name.lower(), value)
        for name, value in raw_headers
        if name.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
    ]


@router.get("/sensors", responses=ERROR_RESPONSES)
@router.get("/api", responses=ERROR_RESPONSES)
async def proxy_sensors(client: httpx.AsyncClient = Depends(get_upstream_client)):
    """Forward the device's JSON snapshot verbatim."""
    try:
        upstream = await client.get("/sensors", headers={"Content-Type": "application/json"})
    except Exception as exc:
        logger.warning("Error fetching sensor data", error=repr(exc))
        raise RelayError("Failed to fetch sensor data") from exc

    logger.debug("Relayed sensor snapshot", status=upstream.status_code)
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers={
            "Content-Type": upstream.headers.get("content-type") or DEFAULT_SNAPSHOT_TYPE,
            "Cache-Control": NO_STORE,
        },
    )


@router.get("/image", responses=ERROR_RESPONSES)
async def proxy_image(client: httpx.AsyncClient = Depends(get_upstream_client)):
    """
    Forward a single camera frame.

    The device only ever serves JPEG, so the upstream content-type is ignored.
    """
    try:
        upstream = await client.get("/image")
        body = upstream.content
    except Exception as exc:
        logger.warning("Error fetching image", error=repr(exc))
        raise RelayError.from_exception("Failed to fetch image", exc) from exc

    logger.debug("Relayed image frame", status=upstream.status_code, size=len(body))
    return Response(
        content=body,
        status_code=upstream.status_code,
        media_type="image/jpeg",
        headers={"Cache-Control": NO_STORE},
    )


async def _first_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    async for chunk in chunks:
        if chunk:
            return chunk
    return None


async def _open_stream(
    upstream: httpx.Response,
    chunk_size: Optional[int],
    first_chunk_timeout_s: float,
) -> AsyncIterator[bytes]:
    """
    Wait for the first bytes of the upstream body and return an iterator
    that yields them followed by the rest of the stream.

    Raises StreamUnavailableError if the body ends, or stays silent for
    first_chunk_timeout_s, before any bytes arrive. Only that first wait is
    bounded. The returned iterator closes upstream when it finishes.
    """
    chunks = upstream.aiter_raw(chunk_size)
    try:
        first = await asyncio.wait_for(_first_chunk(chunks), first_chunk_timeout_s)
    except asyncio.TimeoutError:
        raise StreamUnavailableError(
            f"No stream data within {first_chunk_timeout_s}s"
        ) from None
    if first is None:
        raise StreamUnavailableError("Failed to get readable stream from the response")

    async def pipe() -> AsyncIterator[bytes]:
        try:
            yield first
            async for chunk in chunks:
                yield chunk
        except httpx.HTTPError as exc:
            # Headers are already sent; the only option left is ending the body.
            logger.warning("Video stream interrupted", error=repr(exc))
        finally:
            await upstream.aclose()

    return pipe()


@router.get("/video", responses=ERROR_RESPONSES)
async def proxy_video(client: httpx.AsyncClient = Depends(get_upstream_client)):
    """
    Pipe the device's multipart MJPEG stream to the client as it arrives.

    The boundary framing is untouched and the content-type (which carries the
    boundary parameter) is copied from upstream. Only the wait for the first
    bytes is bounded; no read timeout applies to the rest of the stream.
    """
    settings = get_settings()
    try:
        upstream_request = client.build_request(
            "GET",
            "/video",
            headers={"Content-Type": DEFAULT_STREAM_TYPE},
            timeout=httpx.Timeout(settings.upstream_timeout_s, read=None),
        )
        upstream = await client.send(upstream_request, stream=True)
    except Exception as exc:
        logger.warning("Error opening video stream", error=repr(exc))
        raise RelayError.from_exception("Failed to forward video stream", exc) from exc

    try:
        body = await _open_stream(
            upstream, settings.stream_chunk_size, settings.upstream_timeout_s
        )
    except Exception as exc:
        await upstream.aclose()
        logger.warning("Video stream has no readable body", error=repr(exc))
        raise RelayError.from_exception("Failed to forward video stream", exc) from exc

    logger.debug("Piping video stream", status=upstream.status_code)
    return StreamingResponse(
        body,
        status_code=upstream.status_code,
        headers={
            "Content-Type": upstream.headers.get("content-type") or DEFAULT_STREAM_TYPE,
            "Cache-Control": NO_STORE,
        },
        background=BackgroundTask(upstream.aclose),
    )


@router.get("/predict", responses=ERROR_RESPONSES)
async def proxy_predict(request: Request, client: httpx.AsyncClient = Depends(get_upstream_client)):
    """
    Byte-transparent passthrough to the device's prediction endpoint.

    The query string is forwarded unchanged (e.g. ?image_url=...). The body is
    relayed as raw, still-encoded bytes so upstream Content-Encoding stays valid.
    """
    target = "/predict"
    if request.url.query:
        target = f"{target}?{request.url.query}"

    try:
        upstream_request = client.build_request(
            "GET", target, headers=_forwardable(request.headers.raw)
        )
        upstream = await client.send(upstream_request, stream=True)
        try:
            body = b"".join([chunk async for chunk in upstream.aiter_raw()])
        finally:
            await upstream.aclose()
    except Exception as exc:
        logger.warning("Error fetching prediction", error=repr(exc))
        raise RelayError.from_exception("Failed to fetch data from /predict", exc) from exc

    logger.debug("Relayed prediction", status=upstream.status_code, size=len(body))
    response = Response(content=body, status_code=upstream.status_code)
    response.raw_headers = _forwardable(upstream.headers.raw) + [
        (b"content-length", str(len(body)).encode("latin-1")),
    ]
    return response
