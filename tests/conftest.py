"""Shared fixtures for stagegraph tests."""

import os
import tempfile
from datetime import date, datetime, timezone

# Keep test runs out of the user's log directory; must happen before stagegraph is imported
os.environ.setdefault("STAGEGRAPH_LOG_DIR", tempfile.mkdtemp(prefix="stagegraph-logs-"))

import pytest

from stagegraph.models import Stage, Task

OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)


def make_task(edges, name="Demo", task_id="task_1"):
    """
    Build a task from (parent, child) pairs, e.g. [("root", "A"), ("A", "B")].

    Every stage gets OLD as created_at/updated_at so refreshes are detectable.
    """
    stages = {"root": Stage(id="root", label=name, created_at=OLD, updated_at=OLD)}
    for parent, child in edges:
        for stage_id in (parent, child):
            if stage_id not in stages:
                stages[stage_id] = Stage(id=stage_id, label=stage_id, created_at=OLD, updated_at=OLD)
        stages[parent].children.append(child)
    return Task(id=task_id, name=name, stages=stages, created_at=OLD, updated_at=OLD)


@pytest.fixture
def license_file(tmp_path):
    path = tmp_path / "LICENSE"
    path.write_text(
        f"Copyright (c) {date.today().year} Example Org. All rights reserved.\n"
        "This software is a trade secret of Example Org.\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "tasks.json"
