"""Service layer for target file access."""

from apkserver.services.apk_service import (
    ApkStat,
    ByteRange,
    compute_etag,
    open_span,
    parse_range,
    stat_apk,
)

__all__ = [
    "ApkStat",
    "ByteRange",
    "compute_etag",
    "open_span",
    "parse_range",
    "stat_apk",
]
