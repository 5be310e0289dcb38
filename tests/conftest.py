"""Pytest configuration and fixtures for netsuite-mcp tests."""

import socket
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from netsuite_mcp.oauth.session_store import SessionRecord, SessionStore

ACCOUNT_ID = "1234567_SB1"
CLIENT_ID = "test-client-id-abcdef"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def session_store(temp_dir: Path) -> SessionStore:
    """Create a SessionStore with a temporary storage path."""
    return SessionStore(storage_path=temp_dir / "sessions")


@pytest.fixture
def sample_record() -> SessionRecord:
    """Create an authenticated SessionRecord valid for an hour."""
    return SessionRecord(
        access_token="test_access_token_12345",
        refresh_token="test_refresh_token_67890",
        expires_at=datetime.now(UTC) + timedelta(hours=1),
        account_id=ACCOUNT_ID,
        client_id=CLIENT_ID,
        authenticated=True,
    )


@pytest.fixture
def expiring_record(sample_record: SessionRecord) -> SessionRecord:
    """Create a SessionRecord whose access token expires in two minutes."""
    return sample_record.model_copy(
        update={
            "access_token": "old_access_token",
            "expires_at": datetime.now(UTC) + timedelta(minutes=2),
        }
    )


@pytest.fixture
def free_port() -> int:
    """Find a free local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def clean_env(monkeypatch, temp_dir: Path):
    """Remove NetSuite settings from the environment and avoid any local .env."""
    for name in (
        "NETSUITE_ACCOUNT_ID",
        "NETSUITE_CLIENT_ID",
        "NETSUITE_OAUTH_SCOPE",
        "OAUTH_CALLBACK_PORT",
        "SESSION_STORAGE_PATH",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)
