"""Shared pytest fixtures for all tests."""

import pytest
from fastapi.testclient import TestClient

from apkserver.config import ServerConfig
from apkserver.main import create_app

APK_FILE_NAME = 'signed.apk'
APK_SIZE = 200 * 1024 + 123


@pytest.fixture
def apk_bytes():
    """
    Deterministic package content spanning several read pieces.

    Returns:
        Bytes of the sample package
    """
    return bytes((i * 31 + 7) % 256 for i in range(APK_SIZE))


@pytest.fixture
def apk_dir(tmp_path):
    """
    Create temporary directory holding the target file.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to the directory
    """
    directory = tmp_path / 'apk'
    directory.mkdir()
    return directory


@pytest.fixture
def apk_path(apk_dir, apk_bytes):
    """
    Write the sample package to disk.

    Returns:
        Path to the target file
    """
    path = apk_dir / APK_FILE_NAME
    path.write_bytes(apk_bytes)
    return path


@pytest.fixture
def server_config(apk_dir):
    """
    Server configuration pointing at the temporary directory.

    A small piece size makes every full download span many reads.
    """
    return ServerConfig(apk_dir=apk_dir, apk_file=APK_FILE_NAME, port=3000, piece_size=16 * 1024)


@pytest.fixture
def terminations(monkeypatch):
    """
    Replace process termination so fail-fast paths are observable.

    Returns:
        List collecting exit codes passed to the terminator
    """
    codes = []
    monkeypatch.setattr('apkserver.fatal._terminate', codes.append)
    return codes


@pytest.fixture
def app(server_config, terminations):
    """Create FastAPI app for the temporary target file."""
    return create_app(server_config)


@pytest.fixture
def client(app):
    """Create FastAPI test client with startup handlers run."""
    with TestClient(app) as test_client:
        yield test_client
