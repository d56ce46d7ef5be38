"""Project-wide constants (media type, cache policy, defaults)."""

from pathlib import Path

APK_MEDIA_TYPE: str = "application/vnd.android.package-archive"
# Target file only changes with a redeploy.
CACHE_CONTROL: str = "public, max-age=31536000, immutable"

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
DEFAULT_APK_DIR: Path = PROJECT_ROOT / "apk"
DEFAULT_APK_FILE: str = "signed.apk"

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 3000
# Peers allowed to set X-Forwarded-* headers.
DEFAULT_FORWARDED_ALLOW_IPS: str = "127.0.0.1"

PIECE_SIZE_BYTES: int = 64 * 1024

# Seconds; kept above the usual 60s idle timeout of load balancers.
KEEP_ALIVE_TIMEOUT: int = 65
HEADERS_TIMEOUT: int = 67
