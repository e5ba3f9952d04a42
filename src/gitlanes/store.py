"""Persistence for virtual branch metadata.

All branches of a project live in one JSON document at
``<git-dir>/gitlanes/virtual_branches.json``. The document carries a
revision counter; a save is rejected if the revision on disk moved since
the caller loaded it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .constants import BRANCHES_FILE_NAME, STORE_FORMAT_VERSION
from .errors import BranchNotFoundError, ConcurrentModificationError, ObjectError
from .models import Target, VirtualBranch

logger = logging.getLogger(__name__)


class BranchDocument(BaseModel):
    """On-disk layout of the branch store."""

    version: int = STORE_FORMAT_VERSION
    revision: int = 0
    commit_sequence: int = 0
    target: Target | None = None
    branches: list[VirtualBranch] = Field(default_factory=list)

    def get(self, branch_id: str) -> VirtualBranch:
        """Look up a branch by id.

        Raises:
            BranchNotFoundError: If no branch has that id
        """
        for branch in self.branches:
            if branch.id == branch_id:
                return branch
        raise BranchNotFoundError(f"Virtual branch {branch_id} not found", branch_id=branch_id)

    def by_creation(self) -> list[VirtualBranch]:
        """Branches oldest first; history scanning breaks ties in this order."""
        return sorted(self.branches, key=lambda b: (b.created_at, b.id))


class BranchStore:
    """Loads and saves the branch document of one project.

    Writes go to a temporary file that replaces the document in one rename,
    so readers never see a partial file.
    """

    def __init__(self, metadata_dir: Path):
        self.metadata_dir = metadata_dir
        self.path = metadata_dir / BRANCHES_FILE_NAME

    def load(self) -> BranchDocument:
        """Read the document, or an empty one if none was saved yet."""
        if not self.path.exists():
            return BranchDocument()

        data = self._read()

        version = data.get("version", STORE_FORMAT_VERSION)
        if isinstance(version, int) and version > STORE_FORMAT_VERSION:
            raise ObjectError(
                f"{self.path.name} was written by a newer gitlanes (format {version})"
            )

        try:
            return BranchDocument.model_validate(data)
        except ValidationError as e:
            logger.error(f"Branch store {self.path} is corrupt: {e}")
            raise ObjectError(f"Corrupt branch store {self.path}: {e}") from e

    def save(self, document: BranchDocument) -> BranchDocument:
        """Persist ``document`` if nobody saved since it was loaded.

        Returns:
            The saved document with its revision advanced

        Raises:
            ConcurrentModificationError: If the stored revision differs from
                ``document.revision``
        """
        current = self._stored_revision()
        if current != document.revision:
            raise ConcurrentModificationError(
                f"Branch metadata changed (revision {document.revision} -> {current}); "
                "re-read and retry"
            )

        saved = document.model_copy(update={"revision": document.revision + 1})
        payload = json.dumps(saved.model_dump(mode="json"), indent=2)

        self.metadata_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.metadata_dir, prefix=".branches-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise ObjectError(f"Cannot write {self.path}: {e}") from e

        logger.debug(f"Saved {len(saved.branches)} branches at revision {saved.revision}")
        return saved

    def _stored_revision(self) -> int:
        if not self.path.exists():
            return 0
        revision = self._read().get("revision", 0)
        if not isinstance(revision, int):
            raise ObjectError(f"Corrupt branch store {self.path}: bad revision {revision!r}")
        return revision

    def _read(self) -> dict:
        """Raw JSON of the document.

        Raises:
            ObjectError: If the file cannot be read or is not a JSON object
        """
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            logger.error(f"Branch store {self.path} is corrupt: {e}")
            raise ObjectError(f"Corrupt branch store {self.path}: {e}") from e
        except OSError as e:
            raise ObjectError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ObjectError(f"Corrupt branch store {self.path}: not a JSON object")
        return data
