"""Session persistence for NetSuite OAuth tokens.

A single session record is stored per installation as JSON in
``<storage_path>/session.json``. The file may be deleted at any time from
outside the process; that is equivalent to logging out.
"""

import json
import logging
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from netsuite_mcp.utils.errors import SessionStorageError

logger = logging.getLogger(__name__)

SESSION_FILENAME = "session.json"


class SessionRecord(BaseModel):
    """OAuth session for one NetSuite account.

    Serialized with camelCase keys (``accessToken``, ``expiresAt``, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str = Field(default="", description="OAuth access token")
    refresh_token: str | None = Field(default=None, description="OAuth refresh token")
    expires_at: datetime | None = Field(default=None, description="Access token expiry (UTC)")
    account_id: str = Field(..., description="NetSuite account ID")
    client_id: str = Field(..., description="OAuth client ID")
    authenticated: bool = Field(default=False, description="Whether the session is usable")

    @field_validator("expires_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def check_authenticated_has_token(self) -> "SessionRecord":
        """An authenticated record must carry an access token and expiry."""
        if self.authenticated and (not self.access_token or self.expires_at is None):
            raise ValueError("authenticated session requires accessToken and expiresAt")
        return self

    def is_usable(self) -> bool:
        """Check if the record is marked authenticated and has an access token."""
        return self.authenticated and bool(self.access_token)

    def time_until_expiry(self) -> timedelta | None:
        """Get time until the access token expires."""
        if self.expires_at is None:
            return None
        return self.expires_at - datetime.now(UTC)


class SessionStore:
    """File-based storage for the single session record.

    Every call reads or writes the file; nothing is cached in memory so that
    external edits (such as deleting the file) are always observed.
    """

    def __init__(self, storage_path: Path):
        """Initialize session store.

        Args:
            storage_path: Directory holding the session file
        """
        self.storage_path = Path(storage_path)
        self.session_file = self.storage_path / SESSION_FILENAME

    def save(self, record: SessionRecord) -> None:
        """Write the session record atomically.

        Args:
            record: Session record to persist

        Raises:
            SessionStorageError: If the file cannot be written
        """
        text = json.dumps(record.model_dump(mode="json", by_alias=True), indent=2) + "\n"

        tmp_path: str | None = None
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.storage_path, prefix=f".{SESSION_FILENAME}.", suffix=".tmp"
            )
            # mkstemp creates the file with 0o600 already
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.session_file)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to save session: {e}")
            raise SessionStorageError(f"Failed to save session to {self.session_file}: {e}") from e
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)

        logger.debug(f"Saved session to {self.session_file}")

    def load(self) -> SessionRecord | None:
        """Load the session record.

        Returns:
            SessionRecord, or None if no session has been saved yet

        Raises:
            SessionStorageError: If the file exists but cannot be read or decoded
        """
        try:
            text = self.session_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No session file at {self.session_file}")
            return None
        except OSError as e:
            raise SessionStorageError(f"Failed to read session file: {e}") from e

        try:
            return SessionRecord.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise SessionStorageError(f"Corrupt session file {self.session_file}: {e}") from e

    def clear(self) -> None:
        """Delete the session file. Does nothing if it is already gone.

        Raises:
            SessionStorageError: If the file exists but cannot be removed
        """
        try:
            self.session_file.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise SessionStorageError(f"Failed to clear session: {e}") from e
        logger.info("✅ Session cleared")

    def is_authenticated(self) -> bool:
        """Check if a session exists, is authenticated and has an access token.

        Expiry is not considered here.
        """
        record = self.load()
        return record is not None and record.is_usable()
