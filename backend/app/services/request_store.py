import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.config import Settings, settings
from app.exceptions import StorageError
from app.models.deletion_request import DeletionRequest
from app.schemas.request import DeletionRequestRecord

logger = logging.getLogger(__name__)

# Tokens double as file names, so anything outside this alphabet is never a stored key
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")


class RequestStore(ABC):
    """Durable key-value storage for deletion requests, keyed by token."""

    @abstractmethod
    def put(self, token: str, record: DeletionRequestRecord) -> None:
        """Insert or replace the record; must be durable when this returns."""

    @abstractmethod
    def get(self, token: str) -> DeletionRequestRecord | None:
        """Return the record stored under token, or None."""

    @abstractmethod
    def delete(self, token: str) -> None:
        """Remove the record if present."""

    @abstractmethod
    def list_all(self) -> list[DeletionRequestRecord]:
        """Return every stored record."""

    def delete_unconfirmed(self, token: str) -> bool:
        """Remove the record only if it is still unconfirmed; returns whether it was removed.

        Backends that can make the check and the delete one operation should override this.
        """
        record = self.get(token)
        if record is None or record.confirmed:
            return False
        self.delete(token)
        return True


class FileRequestStore(RequestStore):
    """One pretty-printed JSON document per request, named ``<token>.json``."""

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {e}") from e

    def _path(self, token: str) -> Path | None:
        if not TOKEN_PATTERN.match(token):
            return None
        return self.data_dir / f"{token}.json"

    def _read(self, path: Path) -> DeletionRequestRecord:
        return DeletionRequestRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def put(self, token: str, record: DeletionRequestRecord) -> None:
        path = self._path(token)
        if path is None:
            raise StorageError(f"Refusing to store record under malformed token {token!r}")

        payload = record.model_dump_json(by_alias=True, indent=2)
        tmp_name = None
        try:
            # Write beside the target and swap it in so readers never see a partial file
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.data_dir, suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write request {token[:8]}: {e}") from e

    def get(self, token: str) -> DeletionRequestRecord | None:
        path = self._path(token)
        if path is None:
            return None
        try:
            return self._read(path)
        except FileNotFoundError:
            return None
        except (OSError, PydanticValidationError) as e:
            raise StorageError(f"Failed to read request {token[:8]}: {e}") from e

    def delete(self, token: str) -> None:
        path = self._path(token)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete request {token[:8]}: {e}") from e

    def list_all(self) -> list[DeletionRequestRecord]:
        try:
            paths = sorted(self.data_dir.glob("*.json"))
        except OSError as e:
            raise StorageError(f"Failed to list {self.data_dir}: {e}") from e

        records = []
        for path in paths:
            try:
                records.append(self._read(path))
            except FileNotFoundError:
                # Deleted between listing and reading
                continue
            except (OSError, PydanticValidationError) as e:
                logger.error(f"Skipping unreadable request file {path.name}: {e}")
        return records


class SqlRequestStore(RequestStore):
    """Stores requests in the ``deletion_requests`` table, one row per token."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: DeletionRequest) -> DeletionRequestRecord:
        return DeletionRequestRecord(
            token=row.token,
            email=row.email,
            reason=row.reason,
            reason_text=row.reason_text,
            feedback=row.feedback or "",
            created_at=row.created_at,
            confirmed=row.confirmed,
            confirmed_at=row.confirmed_at,
        )

    def put(self, token: str, record: DeletionRequestRecord) -> None:
        try:
            with self.session_factory() as db:
                row = db.get(DeletionRequest, token)
                if row is None:
                    row = DeletionRequest(token=token)
                    db.add(row)

                row.email = record.email
                row.reason = record.reason
                row.reason_text = record.reason_text
                row.feedback = record.feedback
                row.created_at = record.created_at
                row.confirmed = record.confirmed
                row.confirmed_at = record.confirmed_at

                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write request {token[:8]}: {e}") from e

    def get(self, token: str) -> DeletionRequestRecord | None:
        try:
            with self.session_factory() as db:
                row = db.get(DeletionRequest, token)
                return self._to_record(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read request {token[:8]}: {e}") from e

    def delete(self, token: str) -> None:
        try:
            with self.session_factory() as db:
                db.query(DeletionRequest).filter(DeletionRequest.token == token).delete()
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete request {token[:8]}: {e}") from e

    def delete_unconfirmed(self, token: str) -> bool:
        try:
            with self.session_factory() as db:
                deleted = (
                    db.query(DeletionRequest)
                    .filter(DeletionRequest.token == token, DeletionRequest.confirmed.is_(False))
                    .delete()
                )
                db.commit()
                return deleted > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete request {token[:8]}: {e}") from e

    def list_all(self) -> list[DeletionRequestRecord]:
        try:
            with self.session_factory() as db:
                rows = db.query(DeletionRequest).order_by(DeletionRequest.created_at).all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list requests: {e}") from e


def build_request_store(config: Settings = settings) -> RequestStore:
    """Create the store selected by ``STORAGE_BACKEND``"""
    if config.storage_backend == "database":
        from app.database import SessionLocal, init_db

        init_db()
        return SqlRequestStore(SessionLocal)

    return FileRequestStore(config.data_dir)
