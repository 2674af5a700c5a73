"""
Command Line Interface for stagegraph.

Every command loads the task collection, performs one user intent through the
AppController and saves the result.
"""

import asyncio
import json
from pathlib import Path

import click

from .version import VERSION
from .collection import TaskCollection
from .controller import AppController
from .data import DataCore, snapshot_schema, find_snapshot_issues
from .graph import GraphView
from .models import parse_status, status_text
from .recovery import RecoverableError, StageGraphError
from .tree import StageTree, find_deepest

NOTICE_ICONS = {"info": "💡", "warning": "⚠️ ", "error": "❌"}


def _echo_notice(level, message):
    click.echo(f"{NOTICE_ICONS.get(level, '')} {message}", err=level != "info")


def _status_arg(ctx, param, value):
    try:
        return parse_status(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _build_controller(ctx) -> AppController:
    store = DataCore.get_store(ctx.obj.get('data_file'))
    gate = DataCore.get_license_gate(ctx.obj.get('license_file'))
    return AppController(TaskCollection(store), GraphView(), gate, notify=_echo_notice)


def _run(ctx, intent, open_task_id=None):
    """Start a controller, optionally open a task, and run ``intent`` against it."""
    controller = _build_controller(ctx)

    async def session():
        await controller.start()
        controller.start_monitoring(DataCore.license_interval())
        try:
            if open_task_id is not None and not await controller.open_task(open_task_id):
                return None
            return await intent(controller)
        finally:
            await controller.shutdown()

    try:
        return asyncio.run(session())
    except RecoverableError:
        # Already reported through the controller's notices
        ctx.exit(1)


def _print_tree(task):
    tree = StageTree(task)
    deepest = set(find_deepest(task.stages))
    for stage_id, _, depth in tree.iter_preorder():
        stage = task.stages[stage_id]
        marker = " ◀ deepest" if stage_id in deepest and depth > 0 else ""
        click.echo(f"{'    ' * depth}• {stage.label} [{status_text(stage.status)}] ({stage_id}){marker}")


@click.group()
@click.version_option(version=VERSION, prog_name="stagegraph")
@click.option('--data-file', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Task data file (.json or .yml); defaults to $STAGEGRAPH_DATA_FILE or ./tasks.json')
@click.option('--license-file', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='License file; defaults to $STAGEGRAPH_LICENSE_FILE or ./LICENSE')
@click.pass_context
def main(ctx, data_file, license_file):
    """
    stagegraph - track the stages of your tasks as a tree.
    """
    ctx.ensure_object(dict)
    ctx.obj['data_file'] = data_file
    ctx.obj['license_file'] = license_file


@main.command()
@click.pass_context
def tasks(ctx):
    """List tasks, in progress first."""
    async def intent(controller):
        for task in controller.sorted_tasks():
            click.echo(f"{task.id}  [{status_text(task.status)}]  {task.name}")
            click.echo(f"    Stages: {len(task.stages)}  Updated: {task.updated_at:%Y-%m-%d %H:%M}")
    _run(ctx, intent)


@main.command('add-task')
@click.argument('name')
@click.pass_context
def add_task(ctx, name):
    """Create a new task."""
    async def intent(controller):
        task = await controller.add_task(name)
        if task is not None:
            click.echo(f"✅ Created task {task.id}")
    _run(ctx, intent)


@main.command('rename-task')
@click.argument('task_id')
@click.argument('name')
@click.pass_context
def rename_task(ctx, task_id, name):
    """Rename a task (its root stage follows)."""
    async def intent(controller):
        if await controller.edit_task(task_id, name):
            click.echo("✅ Task renamed")
    _run(ctx, intent)


@main.command('task-status')
@click.argument('task_id')
@click.argument('status', callback=_status_arg)
@click.pass_context
def task_status(ctx, task_id, status):
    """Change a task's status (in-progress, waiting, completed, failed, frozen)."""
    async def intent(controller):
        if await controller.change_task_status(task_id, status):
            click.echo(f"✅ Task is now {status_text(status)}")
    _run(ctx, intent)


@main.command('delete-task')
@click.argument('task_id')
@click.confirmation_option(prompt='Are you sure you want to delete this task?')
@click.pass_context
def delete_task(ctx, task_id):
    """Delete a task and all of its stages."""
    async def intent(controller):
        if await controller.delete_task(task_id):
            click.echo("✅ Task deleted")
    _run(ctx, intent)


@main.command()
@click.argument('task_id')
@click.pass_context
def show(ctx, task_id):
    """Show a task's stage tree."""
    async def intent(controller):
        task = controller.current_task
        click.echo(f"📋 {task.name} [{status_text(task.status)}]")
        _print_tree(task)
        viewport = controller.view.viewport()
        click.echo(f"🔍 View centred at ({viewport.x:.0f}, {viewport.y:.0f}), zoom {viewport.scale:.2f}")
    _run(ctx, intent, open_task_id=task_id)


@main.command('add-stage')
@click.argument('task_id')
@click.argument('parent_id')
@click.argument('label')
@click.pass_context
def add_stage(ctx, task_id, parent_id, label):
    """Add a stage under PARENT_ID (use 'root' for the top level)."""
    async def intent(controller):
        stage_id = await controller.add_stage(parent_id, label)
        if stage_id is not None:
            click.echo(f"✅ Added stage {stage_id}")
    _run(ctx, intent, open_task_id=task_id)


@main.command('rename-stage')
@click.argument('task_id')
@click.argument('stage_id')
@click.argument('label')
@click.pass_context
def rename_stage(ctx, task_id, stage_id, label):
    """Rename a stage."""
    async def intent(controller):
        if await controller.rename_stage(stage_id, label):
            click.echo("✅ Stage renamed")
    _run(ctx, intent, open_task_id=task_id)


@main.command('stage-status')
@click.argument('task_id')
@click.argument('stage_id')
@click.argument('status', callback=_status_arg)
@click.pass_context
def stage_status(ctx, task_id, stage_id, status):
    """Change a stage's status."""
    async def intent(controller):
        if await controller.change_stage_status(stage_id, status):
            click.echo(f"✅ Stage is now {status_text(status)}")
    _run(ctx, intent, open_task_id=task_id)


@main.command('delete-stage')
@click.argument('task_id')
@click.argument('stage_id')
@click.confirmation_option(prompt='Delete this stage and all of its sub-stages?')
@click.pass_context
def delete_stage(ctx, task_id, stage_id):
    """Delete a stage together with its sub-stages."""
    async def intent(controller):
        removed = await controller.delete_stage(stage_id)
        if removed:
            click.echo(f"✅ Deleted {len(removed)} stage(s)")
    _run(ctx, intent, open_task_id=task_id)


@main.command()
@click.pass_context
def check(ctx):
    """Check the license and the integrity of the data file."""
    problems = 0
    gate = DataCore.get_license_gate(ctx.obj.get('license_file'))
    if gate.check_valid():
        click.echo(f"✅ License: {gate.license_path}")
    else:
        click.echo(f"❌ License missing or invalid: {gate.license_path}")
        problems += 1

    store = DataCore.get_store(ctx.obj.get('data_file'))
    try:
        snapshot = store.read_snapshot()
    except StageGraphError as e:
        click.echo(f"❌ Data file: {e}")
        ctx.exit(1)

    click.echo(f"✅ Data file: {store.file_path} ({len(snapshot.tasks)} tasks)")
    for task_id, issues in find_snapshot_issues(snapshot).items():
        problems += len(issues)
        click.echo(f"⚠️  Task {task_id}:")
        for issue in issues:
            click.echo(f"   - {issue}")
    if problems:
        ctx.exit(1)
    click.echo("✅ No problems found")


@main.command()
def schema():
    """Print the JSON schema of the data file."""
    click.echo(json.dumps(snapshot_schema(), indent=2))


if __name__ == "__main__":
    main()
