"""Public API for virtual branches.

Every operation on a project runs under that project's lock, reads
included, so a caller never observes half-written branch state. Errors
leave with the operation name, project path and branch id attached.
"""

from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from git.exc import GitCommandError

from .commit import commit_hunks, select_hunks
from .config import Settings
from .constants import DEFAULT_BRANCH_NAME
from .diff import FileDiff
from .errors import (
    BranchNotFoundError,
    GitLanesError,
    InvalidTargetError,
    ObjectError,
    RemoteError,
    TargetNotSetError,
)
from .hooks import HookRunner
from .locks import CommitHistory
from .models import (
    BranchCreateRequest,
    BranchUpdateRequest,
    ClaimSelector,
    Target,
    VirtualBranch,
    VirtualBranchView,
    utc_now,
)
from .ownership import ReconciledBranches, move_claims, reconcile, resolve_selectors
from .patch import build_integration_tree
from .repository import ProjectRepository
from .reset import reset_branch
from .store import BranchDocument, BranchStore

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    """Branch name usable as a git ref component."""
    slug = re.sub(r"[^A-Za-z0-9._/-]+", "-", name).strip("-./").lower()
    return slug or "virtual-branch"


def unique_branch_name(branches: list[VirtualBranch], name: str = DEFAULT_BRANCH_NAME) -> str:
    """``name``, or ``name 1``, ``name 2``... if already taken."""
    taken = {b.name for b in branches}
    if name not in taken:
        return name
    i = 1
    while f"{name} {i}" in taken:
        i += 1
    return f"{name} {i}"


@dataclass
class _Session:
    """Per-operation handles on one project."""

    repo: ProjectRepository
    store: BranchStore
    document: BranchDocument

    @property
    def target(self) -> Target:
        if self.document.target is None:
            raise TargetNotSetError("No base branch set; run set_base_branch first")
        return self.document.target

    def save(self) -> None:
        self.document = self.store.save(self.document)


@dataclass
class _WorkingState:
    integration_tree: str
    file_diffs: list[FileDiff]
    history: CommitHistory
    reconciled: ReconciledBranches


class Controller:
    """Virtual branch operations over any number of projects.

    Args:
        settings: Runtime settings (default: read from the environment)
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._locks: dict[Path, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _project_lock(self, key: Path) -> threading.RLock:
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.RLock()
            return self._locks[key]

    @contextmanager
    def _operation(
        self, operation: str, project: Path | str, branch_id: str | None = None
    ) -> Iterator[_Session]:
        key = Path(project).resolve()
        with self._project_lock(key):
            try:
                repo = ProjectRepository(key)
                store = BranchStore(repo.metadata_dir)
                yield _Session(repo=repo, store=store, document=store.load())
            except GitLanesError as e:
                e.with_context(operation, str(key), branch_id)
                raise
            except (GitCommandError, ValueError, OSError) as e:
                raise ObjectError(
                    f"{operation} failed: {e}",
                    operation=operation,
                    project=str(key),
                    branch_id=branch_id,
                ) from e

    # ─────────────────────────────────────────────────────────────────────────
    # Reconciliation
    # ─────────────────────────────────────────────────────────────────────────

    def _working_state(self, session: _Session) -> _WorkingState:
        """Recompute the live diff, claims and locks; persist claim changes."""
        target = session.target
        repo = session.repo
        context = self.settings.context_lines

        branches = session.document.by_creation()
        integration_tree = build_integration_tree(repo, target.sha, branches)
        worktree = repo.worktree_tree(integration_tree)
        file_diffs = repo.diff_trees(integration_tree, worktree, context)

        created = False
        if file_diffs and not branches:
            branch = self._new_branch(session, BranchCreateRequest())
            branches = [branch]
            created = True
            logger.info(f"Created {branch.name} for unassigned changes")

        history = CommitHistory.build(repo, branches, integration_tree)
        result = reconcile(branches, file_diffs, history, context)

        session.document.branches = result.branches
        if result.changed or created:
            session.save()

        logger.debug(
            f"Reconciled {len(result.live)} hunks across {len(branches)} branches"
        )
        return _WorkingState(integration_tree, file_diffs, history, result)

    def _new_branch(self, session: _Session, request: BranchCreateRequest) -> VirtualBranch:
        branches = session.document.branches
        selected = request.selected_for_changes
        if selected is None:
            selected = not any(b.selected_for_changes for b in branches)
        if selected:
            for other in branches:
                other.selected_for_changes = False

        order = request.order
        if order is None:
            order = max((b.order for b in branches), default=-1) + 1

        return VirtualBranch(
            name=request.name or unique_branch_name(branches),
            notes=request.notes,
            order=order,
            base=session.target.sha,
            selected_for_changes=selected,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Branches
    # ─────────────────────────────────────────────────────────────────────────

    def list_virtual_branches(self, project: Path | str) -> list[VirtualBranchView]:
        """All virtual branches with their reconciled hunks and locks."""
        with self._operation("list_virtual_branches", project) as session:
            return self._working_state(session).reconciled.views

    def create_virtual_branch(
        self, project: Path | str, request: BranchCreateRequest | None = None
    ) -> str:
        """Create a branch on top of the current target; return its id."""
        request = request or BranchCreateRequest()
        with self._operation("create_virtual_branch", project) as session:
            branch = self._new_branch(session, request)
            session.document.branches.append(branch)
            session.save()
            logger.info(f"Created virtual branch {branch.name} ({branch.id})")
            return branch.id

    def update_virtual_branch(self, project: Path | str, request: BranchUpdateRequest) -> None:
        """Rename, reorder, select, or move hunk claims onto a branch.

        Raises:
            BranchNotFoundError: If the branch does not exist
            OwnershipError: If ``request.ownership`` names unknown hunks
        """
        with self._operation("update_virtual_branch", project, request.id) as session:
            if request.ownership is not None:
                state = self._working_state(session)
                hunks = resolve_selectors(request.ownership, state.reconciled.live)
                session.document.get(request.id)
                session.document.branches = move_claims(
                    session.document.branches, request.id, hunks
                )

            branch = session.document.get(request.id)
            if request.name is not None:
                branch.name = request.name
            if request.notes is not None:
                branch.notes = request.notes
            if request.order is not None:
                branch.order = request.order
            if request.selected_for_changes is not None:
                if request.selected_for_changes:
                    for other in session.document.branches:
                        other.selected_for_changes = False
                branch.selected_for_changes = request.selected_for_changes
            branch.updated_at = utc_now()

            session.save()
            logger.info(f"Updated virtual branch {branch.name}")

    def delete_virtual_branch(self, project: Path | str, branch_id: str) -> None:
        """Remove a branch; its changes return to the pool of unclaimed hunks."""
        with self._operation("delete_virtual_branch", project, branch_id) as session:
            branch = session.document.get(branch_id)
            session.document.branches = [
                b for b in session.document.branches if b.id != branch_id
            ]
            session.save()
            logger.info(f"Deleted virtual branch {branch.name}")

    # ─────────────────────────────────────────────────────────────────────────
    # Commit / reset
    # ─────────────────────────────────────────────────────────────────────────

    def create_commit(
        self,
        project: Path | str,
        branch_id: str,
        message: str,
        explicit_claims: list[ClaimSelector] | None = None,
        run_hooks: bool = False,
        exclude_locked: bool = False,
    ) -> str:
        """Commit hunks owned by a branch and advance its head.

        Args:
            project: Project working directory
            branch_id: Branch to commit to
            message: Commit message
            explicit_claims: Hunks to commit (default: all the branch owns)
            run_hooks: Run the repository's pre-commit and commit-msg hooks
            exclude_locked: Leave hunks locked to earlier commits out

        Returns:
            The new commit's sha

        Raises:
            OwnershipError: If a selected hunk is not owned by the branch
            RepositoryError: If the tree or the commit cannot be written
            HookError: If a hook rejects the commit
        """
        with self._operation("create_commit", project, branch_id) as session:
            state = self._working_state(session)
            branches = state.reconciled.branches
            branch = session.document.get(branch_id)
            repo = session.repo

            if run_hooks:
                hooks = HookRunner(repo.hooks_dir, repo.path)
                hooks.pre_commit()
                message = hooks.commit_msg(message)

            selected = select_hunks(
                branch,
                state.reconciled.live,
                explicit_claims,
                state.history,
                self.settings.context_lines,
                exclude_locked,
            )
            author, committer = repo.signature(
                self.settings.author_name, self.settings.author_email
            )
            result = commit_hunks(
                repo, branch, message, selected, state.integration_tree, author, committer
            )

            session.document.commit_sequence += 1
            result.branch.commit_order = {
                **result.branch.commit_order,
                result.commit_id: session.document.commit_sequence,
            }

            # branches is already in creation order
            updated = [result.branch if b.id == branch_id else b for b in branches]
            # Refuse to record a head that cannot be combined with the others
            build_integration_tree(repo, session.target.sha, updated)

            session.document.branches = updated
            session.save()
            return result.commit_id

    def reset_virtual_branch(
        self, project: Path | str, branch_id: str, target_commit: str
    ) -> None:
        """Move a branch head back to ``target_commit``.

        The changes of the dropped commits become uncommitted again and are
        claimed by the branch currently selected for changes.

        Raises:
            InvalidTargetError: If the target is not between base and head
        """
        with self._operation("reset_virtual_branch", project, branch_id) as session:
            branch = session.document.get(branch_id)
            updated, reexposed = reset_branch(
                session.repo, branch, target_commit, self.settings.context_lines
            )
            session.document.branches = [
                updated if b.id == branch_id else b for b in session.document.branches
            ]
            session.save()

            views = self._working_state(session).reconciled.views
            paths = {fd.path for fd in reexposed}
            owners = sorted({v.name for v in views for f in v.files if f.path in paths})
            logger.info(
                f"Reset {branch.name}: {len(paths)} files uncommitted again, "
                f"now on {', '.join(owners) or 'no branch'}"
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Remote / target
    # ─────────────────────────────────────────────────────────────────────────

    def push_virtual_branch(
        self,
        project: Path | str,
        branch_id: str,
        force: bool = False,
        upstream: str | None = None,
    ) -> str:
        """Push the branch head to the configured remote; return the upstream name."""
        with self._operation("push_virtual_branch", project, branch_id) as session:
            branch = session.document.get(branch_id)
            if branch.head is None:
                raise RemoteError(f"{branch.name} has no commits to push")

            name = upstream or branch.upstream or slugify(branch.name)
            session.repo.push(self.settings.remote, branch.head, name, force=force)

            branch.upstream = name
            branch.updated_at = utc_now()
            session.save()
            return name

    def set_base_branch(self, project: Path | str, ref: str) -> Target:
        """Record the integration target branches are based on.

        Raises:
            InvalidTargetError: If a branch already has commits on the old base
        """
        with self._operation("set_base_branch", project) as session:
            sha = session.repo.resolve(ref)
            with_commits = [b.name for b in session.document.branches if b.head]
            current = session.document.target
            if with_commits and (current is None or current.sha != sha):
                raise InvalidTargetError(
                    f"Cannot move the base while branches have commits: {', '.join(with_commits)}"
                )

            target = Target(ref=ref, sha=sha)
            session.document.target = target
            for branch in session.document.branches:
                branch.base = sha
            session.save()
            logger.info(f"Base branch set to {ref} ({sha[:7]})")
            return target

    def get_base_branch(self, project: Path | str) -> Target | None:
        with self._operation("get_base_branch", project) as session:
            return session.document.target

    def get_branch(self, project: Path | str, branch_id: str) -> VirtualBranchView:
        """Reconciled view of a single branch.

        Raises:
            BranchNotFoundError: If the branch does not exist
        """
        for view in self.list_virtual_branches(project):
            if view.id == branch_id:
                return view
        raise BranchNotFoundError(
            f"Virtual branch {branch_id} not found",
            operation="get_branch",
            project=str(Path(project).resolve()),
            branch_id=branch_id,
        )
