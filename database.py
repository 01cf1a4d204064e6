"""
Storage gateway for the gate pass dataset.

The whole dataset (``users`` and ``requests``) is read and written as one
JSON document. Reads never raise: a missing or unparseable file loads as
an empty dataset so the API stays available. Records that parse as JSON
but not as users or requests are carried through untouched, and a
document with the wrong overall shape is never overwritten. Writes report
success as a boolean instead of raising.
"""
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from config import Settings
from schemas import Dataset

logger = logging.getLogger(__name__)


class JSONFileStore:
    """Dataset persisted as a single pretty-printed JSON file."""

    backend = "file"

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Dataset:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except FileNotFoundError:
            logger.warning("Data file %s not found, starting with an empty dataset", self.path)
            return Dataset()
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error("Error reading database %s: %s", self.path, e)
            return Dataset()
        return Dataset.from_document(raw)

    def save(self, dataset: Dataset) -> bool:
        if dataset.read_only:
            logger.error("Refusing to overwrite %s: the stored document could not be understood", self.path)
            return False
        tmp_name = None
        try:
            payload = json.dumps(dataset.to_document(), indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".%s." % self.path.name, dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error writing to database %s: %s", self.path, e)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

    def describe(self) -> dict:
        return {"backend": self.backend, "location": str(self.path), "exists": self.path.exists()}


class MemoryStore:
    """In-process dataset, used by the test suite and STORAGE_BACKEND=memory.

    Loads and saves go through deep copies so callers can never mutate the
    stored dataset without saving it.
    """

    backend = "memory"

    def __init__(self, dataset: Optional[Dataset] = None, fail_writes: bool = False):
        self._dataset = copy.deepcopy(dataset) if dataset is not None else Dataset()
        self.fail_writes = fail_writes
        self.saves = 0

    def load(self) -> Dataset:
        return copy.deepcopy(self._dataset)

    def save(self, dataset: Dataset) -> bool:
        if self.fail_writes:
            logger.error("Error writing to database: memory store is read-only")
            return False
        self._dataset = copy.deepcopy(dataset)
        self.saves += 1
        return True

    def describe(self) -> dict:
        return {"backend": self.backend, "location": "memory", "exists": True}


def get_store(settings: Settings):
    """Build the store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return MemoryStore()
    if settings.storage_backend != "file":
        raise ValueError("Unknown STORAGE_BACKEND %r" % settings.storage_backend)
    return JSONFileStore(settings.data_path)
