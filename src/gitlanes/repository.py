"""Git operations wrapper: object store and diff provider.

All access to git goes through :class:`ProjectRepository`. It never moves
HEAD or touches the repository's real index. Trees are assembled in private
index files under ``<git-dir>/gitlanes/``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Iterator, Optional

from git import Actor, Blob, Commit, Repo, Tree
from git.exc import BadName, BadObject, GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from gitdb.base import IStream
from gitdb.util import hex_to_bin

from .constants import (
    METADATA_DIR_NAME,
    NULL_SHA,
    REGULAR_FILE_MODE,
    SCRATCH_INDEX_NAME,
    WORKTREE_INDEX_NAME,
)
from .diff import FileDiff, parse_unified_diff
from .errors import GitLanesError, ObjectError, RemoteError, RepositoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitInfo:
    """The parts of a commit the engine reads."""

    id: str
    parents: tuple[str, ...]
    tree: str
    message: str
    author: str
    committed_date: int

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.committed_date, tz=timezone.utc)


@dataclass
class FileChange:
    """A pending update of one tree entry.

    Exactly one of ``content``/``blob`` is used; ``deleted`` removes the path.
    """

    path: str
    content: bytes | None = None
    blob: str | None = None
    mode: str = REGULAR_FILE_MODE
    deleted: bool = False


def decode_content(data: bytes) -> str:
    """Decode blob bytes the same way GitPython decodes command output."""
    return data.decode("utf-8", "surrogateescape")


def encode_content(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


@contextmanager
def object_errors(operation: str) -> Iterator[None]:
    """Translate GitPython/gitdb failures into :class:`ObjectError`."""
    try:
        yield
    except GitLanesError:
        raise
    except (GitCommandError, BadName, BadObject, ValueError, KeyError, OSError) as e:
        raise ObjectError(f"{operation} failed: {e}") from e


class ProjectRepository:
    """Object store and diff provider for one project working directory."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Lazy-load git repo."""
        if self._repo is None:
            try:
                self._repo = Repo(self.path)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise RepositoryError(f"Not a git repository: {self.path}")
            if self._repo.bare:
                raise RepositoryError(f"Virtual branches need a working directory: {self.path}")
            # Paths with non-ASCII characters stay readable in diff headers
            self._repo.git.set_persistent_git_options(c="core.quotepath=off")
        return self._repo

    @property
    def metadata_dir(self) -> Path:
        path = Path(self.repo.git_dir) / METADATA_DIR_NAME
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def hooks_dir(self) -> Path:
        hooks_path = self.repo.config_reader().get_value("core", "hooksPath", "")
        if hooks_path:
            path = Path(hooks_path)
            return path if path.is_absolute() else self.path / path
        return Path(self.repo.git_dir) / "hooks"

    # ─────────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, rev: str) -> str:
        """Resolve any revision expression to a commit sha."""
        with object_errors(f"resolve {rev!r}"):
            commit = self.repo.commit(rev)
            # Full shas resolve without a lookup
            self.repo.odb.info(commit.binsha)
            return commit.hexsha

    def read_commit(self, sha: str) -> CommitInfo:
        with object_errors(f"read commit {sha}"):
            return _commit_info(self.repo.commit(sha))

    def commit_tree(self, sha: str) -> str:
        return self.read_commit(sha).tree

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is reachable from ``descendant`` (or equal)."""
        if ancestor == descendant:
            return True
        with object_errors(f"merge-base {ancestor}..{descendant}"):
            return self.repo.is_ancestor(ancestor, descendant)

    def commit_chain(self, base: str, head: str) -> list[CommitInfo]:
        """First-parent commits after ``base`` up to ``head``, oldest first."""
        if base == head:
            return []
        with object_errors(f"log {base}..{head}"):
            commits = self.repo.iter_commits(f"{base}..{head}", first_parent=True, reverse=True)
            return [_commit_info(c) for c in commits]

    def _root_tree(self, sha: str) -> Tree:
        # Root trees need an empty path for `/` lookups to work
        return Tree(self.repo, hex_to_bin(sha), Tree.tree_id << 12, "")

    def tree_entry(self, tree: str, path: str) -> tuple[str, str] | None:
        """Return ``(mode, blob sha)`` of ``path`` in ``tree`` or None if absent."""
        with object_errors(f"read tree {tree}"):
            try:
                obj = self._root_tree(tree) / path
            except KeyError:
                return None
            return f"{obj.mode:o}", obj.hexsha

    def read_blob(self, tree: str, path: str) -> bytes | None:
        """Content of ``path`` in ``tree`` or None if the path is absent."""
        with object_errors(f"read {path} from {tree}"):
            try:
                obj = self._root_tree(tree) / path
            except KeyError:
                return None
            return obj.data_stream.read()

    def diff_trees(self, old_tree: str, new_tree: str, context_lines: int) -> list[FileDiff]:
        """Per-file hunks between two trees (diff provider)."""
        if old_tree == new_tree:
            return []
        with object_errors(f"diff {old_tree[:7]}..{new_tree[:7]}"):
            raw = self.repo.git.diff(
                f"--unified={context_lines}",
                "--no-color",
                "--no-ext-diff",
                "--no-textconv",
                "--no-renames",
                "--full-index",
                "--ignore-submodules",
                "--src-prefix=a/",
                "--dst-prefix=b/",
                old_tree,
                new_tree,
            )
        return parse_unified_diff(raw)

    def worktree_tree(self, base_tree: str) -> str:
        """Snapshot the working directory into a tree object.

        Uses a private index seeded from ``base_tree`` so the user's staging
        area is left alone. Ignored files stay out of the snapshot.
        """
        index_path = self.metadata_dir / WORKTREE_INDEX_NAME
        with object_errors("snapshot working tree"):
            with self.repo.git.custom_environment(GIT_INDEX_FILE=str(index_path)):
                self.repo.git.read_tree(base_tree)
                self.repo.git.add("--all")
                return self.repo.git.write_tree()

    # ─────────────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────────────

    def store_blob(self, data: bytes) -> str:
        with object_errors("write blob"):
            istream = self.repo.odb.store(IStream(Blob.type, len(data), BytesIO(data)))
            return istream.hexsha if isinstance(istream.hexsha, str) else istream.hexsha.decode()

    def write_tree(self, base_tree: str, changes: list[FileChange]) -> str:
        """Write a tree equal to ``base_tree`` with ``changes`` applied."""
        if not changes:
            return base_tree

        index_path = self.metadata_dir / SCRATCH_INDEX_NAME
        with object_errors("write tree"):
            with self.repo.git.custom_environment(GIT_INDEX_FILE=str(index_path)):
                self.repo.git.read_tree(base_tree)
                for change in changes:
                    if change.deleted:
                        self.repo.git.update_index("--force-remove", "--", change.path)
                        continue
                    blob = change.blob or self.store_blob(change.content or b"")
                    if blob == NULL_SHA:
                        raise ObjectError(f"No blob for {change.path}")
                    self.repo.git.update_index(
                        "--add", "--cacheinfo", f"{change.mode},{blob},{change.path}"
                    )
                tree = self.repo.git.write_tree()

        logger.debug(f"Wrote tree {tree[:7]} ({len(changes)} changed paths)")
        return tree

    def create_commit(
        self,
        parent: str,
        tree: str,
        message: str,
        author: Actor,
        committer: Actor,
    ) -> str:
        """Create a commit object; no reference is updated."""
        with object_errors("create commit"):
            commit = Commit.create_from_tree(
                self.repo,
                self._root_tree(tree),
                message,
                parent_commits=[self.repo.commit(parent)],
                head=False,
                author=author,
                committer=committer,
            )
            return commit.hexsha

    def signature(
        self, name: str | None = None, email: str | None = None
    ) -> tuple[Actor, Actor]:
        """Author and committer, from overrides or git config."""
        if name and email:
            actor = Actor(name, email)
            return actor, actor
        reader = self.repo.config_reader()
        return Actor.author(reader), Actor.committer(reader)

    # ─────────────────────────────────────────────────────────────────────────
    # Remote
    # ─────────────────────────────────────────────────────────────────────────

    def push(self, remote: str, sha: str, branch: str, force: bool = False) -> None:
        refspec = f"{sha}:refs/heads/{branch}"
        try:
            self.repo.git.push(remote, refspec, force=force)
        except GitCommandError as e:
            raise RemoteError(f"Push to {remote}/{branch} failed: {e}") from e
        logger.info(f"Pushed {sha[:7]} to {remote}/{branch}{' (forced)' if force else ''}")


def _commit_info(commit: Commit) -> CommitInfo:
    return CommitInfo(
        id=commit.hexsha,
        parents=tuple(p.hexsha for p in commit.parents),
        tree=commit.tree.hexsha,
        message=commit.message if isinstance(commit.message, str) else commit.message.decode(),
        author=str(commit.author),
        committed_date=commit.committed_date,
    )
