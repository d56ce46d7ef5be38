"""Target file access: stat, validation token, byte ranges and streaming."""

import asyncio
import hashlib
import os
import re
from dataclasses import dataclass
from email.utils import formatdate
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Dict, Optional

from common.constants import APK_MEDIA_TYPE, CACHE_CONTROL
from common.logging_config import get_logger
from apkserver.exceptions import (
    ApkNotFoundError,
    ApkReadError,
    ApkStatError,
    StreamInterruptedError,
)

logger = get_logger(__name__)

# First single range only; suffix ranges and other units do not match.
RANGE_PATTERN = re.compile(r"bytes=(\d+)-(\d+)?")


def format_mtime_ms(mtime_ms: float) -> str:
    """
    Render milliseconds the way a JavaScript number prints.

    Integral values have no fractional part ("1700000000000", not
    "1700000000000.0"); other values use the shortest round-trip form.
    """
    if mtime_ms == int(mtime_ms):
        return str(int(mtime_ms))
    return repr(mtime_ms)


def compute_etag(size: int, mtime_ms: float) -> str:
    """
    Compute the validation token for a file state.

    Args:
        size: File size in bytes
        mtime_ms: Modification time in milliseconds since the epoch

    Returns:
        SHA-1 hex digest of "<size>-<mtime_ms>"
    """
    token = f"{size}-{format_mtime_ms(mtime_ms)}"
    return hashlib.sha1(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ApkStat:
    """Metadata of the target file captured by a single stat call."""

    size: int
    mtime_ms: float

    @classmethod
    def from_stat_result(cls, result: os.stat_result) -> "ApkStat":
        return cls(size=result.st_size, mtime_ms=result.st_mtime_ns / 1_000_000)

    @property
    def etag(self) -> str:
        return compute_etag(self.size, self.mtime_ms)

    @property
    def last_modified(self) -> str:
        return formatdate(self.mtime_ms / 1000, usegmt=True)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte span requested through a Range header."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def is_satisfiable(self, size: int) -> bool:
        return self.start < size and self.end < size and self.start <= self.end

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Parse a Range header into a byte span.

    Args:
        header: Raw Range header value, or None
        size: Current file size, used when the end is omitted

    Returns:
        ByteRange (possibly unsatisfiable), or None when the header is
        absent or does not look like "bytes=<start>-[<end>]"
    """
    if not header:
        return None

    match = RANGE_PATTERN.search(header)
    if match is None:
        return None

    start = _parse_offset(match.group(1), size)
    end = _parse_offset(match.group(2), size) if match.group(2) is not None else size - 1
    return ByteRange(start=start, end=end)


def _parse_offset(digits: str, size: int) -> int:
    # Offsets with more digits than the size are past the end; clamp to size
    # instead of converting arbitrarily long numbers.
    significant = digits.lstrip("0") or "0"
    if len(significant) > len(str(size)):
        return size
    return int(significant)


def build_headers(stat: ApkStat) -> Dict[str, str]:
    """
    Headers sent on every response once the target file is known to exist.
    """
    return {
        "Content-Type": APK_MEDIA_TYPE,
        "Last-Modified": stat.last_modified,
        "ETag": stat.etag,
        "Accept-Ranges": "bytes",
        "Cache-Control": CACHE_CONTROL,
    }


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{filename}"'


async def stat_apk(path: Path) -> ApkStat:
    """
    Stat the target file without blocking the event loop.

    Args:
        path: Path of the target file

    Returns:
        ApkStat for the current file state

    Raises:
        ApkNotFoundError: If the file does not exist
        ApkStatError: If the metadata cannot be read for any other reason
    """
    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(None, os.stat, path)
    except (FileNotFoundError, NotADirectoryError) as e:
        raise ApkNotFoundError(f"{path} does not exist") from e
    except OSError as e:
        raise ApkStatError(f"Cannot stat {path}: {e}") from e

    return ApkStat.from_stat_result(result)


def _open_at(path: Path, offset: int) -> BinaryIO:
    handle = open(path, "rb")
    try:
        handle.seek(offset)
    except BaseException:
        handle.close()
        raise
    return handle


def _read_piece(handle: BinaryIO, size: int) -> bytes:
    return handle.read(size)


async def open_span(
    path: Path,
    byte_range: Optional[ByteRange],
    size: int,
    piece_size: int
) -> AsyncIterator[bytes]:
    """
    Open the target file and read the first piece of the span.

    Everything that can fail before the response is committed happens here,
    so a failure can still be answered with a status code. The returned
    iterator yields the rest of the span piece by piece.

    Args:
        path: Path of the target file
        byte_range: Requested span, or None for the whole file
        size: File size from the stat that preceded this call
        piece_size: Maximum bytes per read

    Returns:
        Async iterator over exactly the requested bytes

    Raises:
        ApkReadError: If the file cannot be opened or the first read fails
    """
    if byte_range is None:
        start, length, label = 0, size, "full"
    else:
        start, length, label = byte_range.start, byte_range.length, "range"

    loop = asyncio.get_running_loop()
    try:
        handle = await loop.run_in_executor(None, _open_at, path, start)
    except OSError as e:
        logger.error(f"open error ({label}): {e}", exc_info=True)
        raise ApkReadError(f"Cannot open {path}: {e}") from e

    try:
        first = b""
        if length > 0:
            first = await loop.run_in_executor(None, _read_piece, handle, min(piece_size, length))
    except OSError as e:
        handle.close()
        logger.error(f"stream error ({label}): {e}", exc_info=True)
        raise ApkReadError(f"Cannot read {path}: {e}") from e
    except BaseException:
        handle.close()
        raise

    if length > 0 and not first:
        handle.close()
        logger.error(f"stream error ({label}): file ended before offset {start}")
        raise ApkReadError(f"{path} is shorter than its stat size {size}")

    return _stream_span(handle, first, length - len(first), piece_size, label)


async def _stream_span(
    handle: BinaryIO,
    first: bytes,
    remaining: int,
    piece_size: int,
    label: str
) -> AsyncIterator[bytes]:
    loop = asyncio.get_running_loop()
    try:
        if first:
            yield first

        while remaining > 0:
            try:
                piece = await loop.run_in_executor(
                    None, _read_piece, handle, min(piece_size, remaining)
                )
            except OSError as e:
                logger.error(f"stream error ({label}): {e}", exc_info=True)
                raise StreamInterruptedError(f"Read failed with {remaining} bytes left: {e}") from e

            if not piece:
                logger.error(f"stream error ({label}): file ended with {remaining} bytes left")
                raise StreamInterruptedError(f"Unexpected end of file with {remaining} bytes left")

            remaining -= len(piece)
            yield piece
    finally:
        handle.close()
