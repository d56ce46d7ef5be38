"""Download routes for the target file."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import Response, StreamingResponse

from apkserver.config import ServerConfig
from apkserver.services.apk_service import (
    build_headers,
    content_disposition,
    open_span,
    parse_range,
    stat_apk,
)

router = APIRouter(tags=["APK"])


def get_server_config(request: Request) -> ServerConfig:
    """Dependency returning the configuration the app was built with."""
    return request.app.state.config


async def send_apk(
    config: ServerConfig,
    method: str,
    if_none_match: Optional[str],
    range_header: Optional[str]
) -> Response:
    """
    Build the response for one request of the target file.

    Args:
        config: Server configuration naming the target file
        method: Request method (GET or HEAD)
        if_none_match: Raw If-None-Match header, or None
        range_header: Raw Range header, or None

    Returns:
        304, 416, 206 or 200 response

    Raises:
        ApkNotFoundError: If the file does not exist (404)
        ApkStatError: If the file cannot be stat'ed (500)
        ApkReadError: If the file cannot be opened or first read fails (500)
    """
    stat = await stat_apk(config.apk_path)
    headers = build_headers(stat)

    if if_none_match == stat.etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    byte_range = parse_range(range_header, stat.size)
    if byte_range is not None:
        if not byte_range.is_satisfiable(stat.size):
            headers["Content-Range"] = f"bytes */{stat.size}"
            return Response(
                status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                headers=headers
            )
        status_code = status.HTTP_206_PARTIAL_CONTENT
        headers["Content-Range"] = byte_range.content_range(stat.size)
        headers["Content-Length"] = str(byte_range.length)
    else:
        status_code = status.HTTP_200_OK
        headers["Content-Length"] = str(stat.size)

    headers["Content-Disposition"] = content_disposition(config.apk_file)

    if method == "HEAD":
        return Response(status_code=status_code, headers=headers)

    body = await open_span(config.apk_path, byte_range, stat.size, config.piece_size)
    return StreamingResponse(body, status_code=status_code, headers=headers)


@router.api_route("/", methods=["GET", "HEAD"])
async def download_root(
    request: Request,
    config: ServerConfig = Depends(get_server_config),
    if_none_match: Optional[str] = Header(None),
    range_header: Optional[str] = Header(None, alias="range")
):
    """
    Download the target file from the base path.

    Supports If-None-Match (304) and single "bytes=<start>-[<end>]" ranges
    (206 / 416).
    """
    return await send_apk(config, request.method, if_none_match, range_header)


@router.api_route("/download", methods=["GET", "HEAD"])
async def download(
    request: Request,
    config: ServerConfig = Depends(get_server_config),
    if_none_match: Optional[str] = Header(None),
    range_header: Optional[str] = Header(None, alias="range")
):
    """
    Download the target file. Same behaviour as the base path.
    """
    return await send_apk(config, request.method, if_none_match, range_header)
