"""Custom exception classes for the APK server."""


class ApkServerError(Exception):
    """
    Base exception class for all APK server errors.
    """
    pass


class ApkNotFoundError(ApkServerError):
    """
    Raised when the target file does not exist at request time.
    """
    pass


class ApkStatError(ApkServerError):
    """
    Raised when the target file's metadata cannot be read for a reason
    other than it being absent (permissions, I/O error).
    """
    pass


class ApkReadError(ApkServerError):
    """
    Raised when the target file cannot be opened or read before any
    response bytes were sent.
    """
    pass


class StreamInterruptedError(ApkServerError):
    """
    Raised when reading the target file fails after the response headers
    were already sent. The connection can only be aborted.
    """
    pass


class ConfigurationError(ApkServerError):
    """
    Raised when the server configuration cannot be built from the environment.
    """
    pass
