"""Tests for the migration runner."""

import json

import pytest

from boards.migrations import (
    CHECKPOINT_FIELD,
    MIGRATIONS,
    MigrationContext,
    MigrationRunner,
    labels_to_json,
)
from e2ee.exceptions import MigrationStepError


class Recorder:
    """Collects board and column updates made by migration steps."""

    def __init__(self, decrypt=lambda value: value):
        self.board_updates = []
        self.column_updates = []
        self.ctx = MigrationContext(
            decrypt=decrypt,
            update_board=self.update_board,
            update_column=self.update_column,
        )

    async def update_board(self, data):
        self.board_updates.append(data)

    async def update_column(self, column_id, data):
        self.column_updates.append((column_id, data))

    @property
    def checkpoints(self):
        return [u[CHECKPOINT_FIELD] for u in self.board_updates if CHECKPOINT_FIELD in u]


def _project(cursor=None, **board):
    if cursor is not None:
        board[CHECKPOINT_FIELD] = cursor
    return {"id": "b1", "board": board}


def _steps(calls, fail_at=None, count=3):
    def make(i):
        async def step(project, ctx):
            if i == fail_at:
                raise RuntimeError(f"step {i} broke")
            calls.append(i)
        return step
    return [make(i) for i in range(count)]


class TestMigrationRunner:

    @pytest.mark.asyncio
    async def test_runs_all_steps_for_new_board(self):
        calls, recorder = [], Recorder()
        applied = await MigrationRunner(_steps(calls)).run(_project(), recorder.ctx)

        assert applied == 3
        assert calls == [0, 1, 2]
        assert recorder.checkpoints == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_resumes_from_checkpoint(self):
        calls, recorder = [], Recorder()
        applied = await MigrationRunner(_steps(calls)).run(_project(cursor=2), recorder.ctx)

        assert applied == 1
        assert calls == [2]
        assert recorder.checkpoints == [3]

    @pytest.mark.asyncio
    async def test_up_to_date_board_is_untouched(self):
        calls, recorder = [], Recorder()
        applied = await MigrationRunner(_steps(calls)).run(_project(cursor=3), recorder.ctx)

        assert applied == 0
        assert recorder.board_updates == []

    @pytest.mark.asyncio
    async def test_failure_keeps_checkpoint(self):
        calls, recorder = [], Recorder()
        with pytest.raises(MigrationStepError) as exc_info:
            await MigrationRunner(_steps(calls, fail_at=1)).run(_project(), recorder.ctx)

        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert calls == [0]
        assert recorder.checkpoints == [1]

    @pytest.mark.asyncio
    async def test_failed_step_is_retried_next_time(self):
        calls, recorder = [], Recorder()
        with pytest.raises(MigrationStepError):
            await MigrationRunner(_steps(calls, fail_at=1)).run(_project(), recorder.ctx)

        await MigrationRunner(_steps(calls)).run(_project(cursor=recorder.checkpoints[-1]), recorder.ctx)
        assert calls == [0, 1, 2]
        assert recorder.checkpoints == [1, 2, 3]

    def test_pending(self):
        runner = MigrationRunner(_steps([]))
        assert list(runner.pending(_project())) == [0, 1, 2]
        assert list(runner.pending({"board": {CHECKPOINT_FIELD: None}})) == [0, 1, 2]
        assert list(runner.pending(_project(cursor=3))) == []


class TestShippedMigrations:

    def test_count(self):
        assert len(MIGRATIONS) == 2

    @pytest.mark.asyncio
    async def test_labels_to_json(self):
        labels = {"l1": {"label": "Bug", "color": "red"}}
        recorder = Recorder(decrypt=lambda value: value[len("enc:"):])
        project = _project(labels="enc:" + json.dumps(labels))

        await labels_to_json(project, recorder.ctx)
        assert recorder.board_updates == [{"labelsV2": labels}]

    @pytest.mark.asyncio
    async def test_shipped_steps_checkpoint_to_two(self):
        recorder = Recorder()
        project = _project(cursor=0, labels=json.dumps({}))

        await MigrationRunner().run(project, recorder.ctx)
        assert recorder.board_updates == [
            {"labelsV2": {}},
            {CHECKPOINT_FIELD: 1},
            {CHECKPOINT_FIELD: 2},
        ]
