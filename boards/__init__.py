"""
Board-level flows for the Portabella encrypted client.

Handles:
- HTTP transport to the backend
- Project sessions (key resolution, encrypted requests)
- Migrations of stored board data
- Organisation sessions and members
- User listings, teams and key distribution
"""

from .migrations import MIGRATIONS, MigrationRunner
from .project import ProjectSession, resolve_board_key
from .team import Role, TeamSession
from .transport import Transport
from .user import DistributionResult, UserClient

__all__ = [
    "Transport",
    "ProjectSession",
    "resolve_board_key",
    "TeamSession",
    "Role",
    "MigrationRunner",
    "MIGRATIONS",
    "UserClient",
    "DistributionResult",
]
