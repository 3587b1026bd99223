"""
Flat JSON file persistence for user records.

The file holds a single object: {"version": 1, "users": [...]}.
Writes go to a temp file in the same directory and are moved into place,
so a crash mid-write never leaves a truncated file behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from flower_market.errors import PersistenceError
from flower_market.logging_config import get_logger
from flower_market.models import UserRecord

logger = get_logger("persistence")

FILE_VERSION = 1


class Persistence(Protocol):
    def load_all(self) -> list[UserRecord]: ...

    def save_all(self, records: list[UserRecord]) -> None: ...


class JsonFilePersistence:
    """Stores all user records in one JSON document."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load_all(self) -> list[UserRecord]:
        if not self.path.exists():
            logger.info(f"No data file at {self.path}, starting empty")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        users = data.get("users", []) if isinstance(data, dict) else data

        try:
            records = [UserRecord.model_validate(item) for item in users]
        except PydanticValidationError as e:
            raise PersistenceError(f"Invalid user record in {self.path}: {e}") from e

        logger.info(f"Loaded {len(records)} users from {self.path}")
        return records

    def save_all(self, records: list[UserRecord]) -> None:
        payload = {
            "version": FILE_VERSION,
            "users": [record.model_dump(mode="json") for record in records],
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

        logger.debug(f"Saved {len(records)} users to {self.path}")
