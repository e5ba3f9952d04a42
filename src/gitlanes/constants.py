"""Tunable defaults shared across gitlanes modules."""

# Diff context window (lines of unchanged text around each change block).
DEFAULT_CONTEXT_LINES = 3

# Metadata lives inside the git dir so it never shows up as a worktree change.
METADATA_DIR_NAME = "gitlanes"
BRANCHES_FILE_NAME = "virtual_branches.json"
WORKTREE_INDEX_NAME = "worktree.index"
SCRATCH_INDEX_NAME = "scratch.index"
LOG_FILE_NAME = "gitlanes.log"

# Naming
DEFAULT_BRANCH_NAME = "Virtual branch"
DEFAULT_REMOTE = "origin"

# Store format version, bumped on incompatible layout changes.
STORE_FORMAT_VERSION = 1

# Git's well-known all-zero object id (missing side of an add/delete).
NULL_SHA = "0" * 40

REGULAR_FILE_MODE = "100644"
