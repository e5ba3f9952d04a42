"""Virtual branches over a single git working directory.

Public API:
- Controller: list, create, update, delete, commit, reset and push branches
- Settings: runtime configuration from GITLANES_* environment variables
- GitLanesError: base class of every error the controller raises
"""

from .config import Settings
from .controller import Controller
from .errors import GitLanesError

__all__ = [
    "Controller",
    "Settings",
    "GitLanesError",
]
