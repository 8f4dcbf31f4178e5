"""
Versioned migrations of already-stored board data.

Each board records in `lastRunMigration` how many steps it has applied.
On load, the pending steps run in order and the checkpoint is persisted
after each one succeeds; a failing step leaves it where it was so the step
is retried on the next load.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from e2ee.exceptions import MigrationStepError

logger = logging.getLogger(__name__)

CHECKPOINT_FIELD = "lastRunMigration"


@dataclass
class MigrationContext:
    """What a migration step may use."""
    decrypt: Callable[[str], str]
    update_board: Callable[[dict[str, Any]], Awaitable[Any]]
    update_column: Callable[[str, dict[str, Any]], Awaitable[Any]]


Migration = Callable[[dict[str, Any], MigrationContext], Awaitable[None]]


async def labels_to_json(project: dict[str, Any], ctx: MigrationContext) -> None:
    """Labels move from one encrypted string to a {id: {label, color}} payload."""
    labels = ctx.decrypt(project["board"]["labels"])
    await ctx.update_board({"labelsV2": json.loads(labels)})


async def column_fields_noop(project: dict[str, Any], ctx: MigrationContext) -> None:
    # Column fields are covered by field-level encryption now
    return None


MIGRATIONS: list[Migration] = [
    labels_to_json,
    column_fields_noop,
]


class MigrationRunner:
    """Applies pending migrations to a board and advances its checkpoint."""

    def __init__(self, migrations: Sequence[Migration] = MIGRATIONS):
        self.migrations = list(migrations)

    def pending(self, project: dict[str, Any]) -> range:
        """Indexes of the steps a project still needs."""
        start = project.get("board", {}).get(CHECKPOINT_FIELD) or 0
        return range(start, len(self.migrations))

    async def run(self, project: dict[str, Any], ctx: MigrationContext) -> int:
        """
        Run every pending step in order.

        Args:
            project: The loaded project (board fields decrypted)
            ctx: Decrypt function and persistence callbacks

        Returns:
            Number of steps applied

        Raises:
            MigrationStepError: If a step fails; its checkpoint is not written
        """
        applied = 0
        for index in self.pending(project):
            logger.info(f"=== MIGRATION {index} ===")
            try:
                await self.migrations[index](project, ctx)
            except Exception as e:
                logger.warning(f"Migration {index} failed, checkpoint stays at {index}")
                raise MigrationStepError(index, e) from e

            await ctx.update_board({CHECKPOINT_FIELD: index + 1})
            logger.info(f"=== MIGRATION {index} completed ===")
            applied += 1
        return applied
