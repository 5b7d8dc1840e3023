"""todoq CLI - thin command surface over the task engine.

Every command opens the database, calls one engine operation and prints the
result. Commands that print data accept --json.

Examples:
    todoq init
    todoq import tasks.json
    todoq list --tree
    todoq current --start
    todoq complete 1.1 --notes "done"
    todoq progress
"""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from todoq.config import configure_logging, get_settings
from todoq.core.errors import TodoqError
from todoq.core.models import Task, TaskHierarchyNode
from todoq.core.state_machine import TaskStatus, can_transition, parse_status
from todoq.core.tasks import TaskService
from todoq.persistence.database import Database

app = typer.Typer(
    name="todoq",
    help="todoq: hierarchical task queue with dependencies and cascading completion",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATUS_COLORS = {
    TaskStatus.PENDING: "white",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.COMPLETED: "green",
    TaskStatus.CANCELLED: "dim",
}

DbOption = typer.Option(None, "--db", help="Database file (defaults to TODOQ_DATABASE_PATH)")
JsonOption = typer.Option(False, "--json", help="Print JSON instead of a table")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Hierarchical task queue."""
    configure_logging("DEBUG" if verbose else None)


@contextmanager
def _service(db_path: Optional[Path]) -> Iterator[TaskService]:
    settings = get_settings()
    database = Database(
        db_path or Path(settings.database_path),
        wal_mode=settings.wal_mode,
        busy_timeout=settings.busy_timeout,
    )
    try:
        database.initialize(run_migrations=settings.auto_migrate)
        yield TaskService(database, settings)
    finally:
        database.close()


def _fail(message: Any) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _print_json(data: Any) -> None:
    console.print(json.dumps(data, indent=2), soft_wrap=True, markup=False, highlight=False)


def _status_text(status: TaskStatus) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status.value}[/{color}]"


def _print_task_table(tasks: List[Task], title: str = "Tasks") -> None:
    table = Table(title=title)
    table.add_column("Number", style="bold")
    table.add_column("Status")
    table.add_column("Pri", justify="center")
    table.add_column("%", justify="right")
    table.add_column("Deps", style="dim")
    table.add_column("Name")

    for task in tasks:
        table.add_row(
            task.task_number,
            _status_text(task.status),
            str(task.priority),
            str(task.completion_percentage),
            ", ".join(task.dependencies) or "-",
            task.name,
        )
    console.print(table)


def _print_task(task: Task) -> None:
    console.print(f"\n[bold]{task.task_number}[/bold] {task.name}")
    console.print(f"  Status: {_status_text(task.status)}")
    console.print(f"  Priority: {task.priority}")
    console.print(f"  Completion: {task.completion_percentage}%")
    if task.description:
        console.print(f"  Description: {task.description}")
    if task.dependencies:
        console.print(f"  Depends on: {', '.join(task.dependencies)}")
    if task.files:
        console.print(f"  Files: {', '.join(task.files)}")
    if task.docs_references:
        console.print(f"  Docs: {', '.join(task.docs_references)}")
    if task.testing_strategy:
        console.print(f"  Testing: {task.testing_strategy}")
    if task.notes:
        console.print(f"  Notes: {task.notes}")
    if task.completion_notes:
        console.print(f"  Completion notes: {task.completion_notes}")


def _print_optional_task(task: Optional[Task], as_json: bool, empty_message: str) -> None:
    if as_json:
        _print_json(task.to_dict() if task else None)
    elif task is None:
        console.print(f"[yellow]{empty_message}[/yellow]")
    else:
        _print_task(task)


def _add_branch(tree: Tree, nodes: List[TaskHierarchyNode]) -> None:
    # Explicit stack keeps deep hierarchies off the recursion limit
    stack = [(tree, node) for node in reversed(nodes)]
    while stack:
        parent, node = stack.pop()
        branch = parent.add(
            f"{node.task.task_number} {node.task.name} "
            f"{_status_text(node.task.status)} ({node.task.completion_percentage}%)"
        )
        stack.extend((branch, child) for child in reversed(node.children))


def _load_document(file: Path) -> Any:
    try:
        return json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {file}: {e}")


# =============================================================================
# Store management
# =============================================================================


@app.command()
def init(db_path: Optional[Path] = DbOption) -> None:
    """Create the database and apply migrations."""
    try:
        with _service(db_path) as service:
            console.print("[green]todoq database ready[/green]")
            console.print(f"  Path: {service.db.db_path}")
            console.print(f"  Tasks: {service.repo.count()}")
    except TodoqError as e:
        _fail(e)


@app.command("import")
def import_tasks(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON document with a tasks list"),
    validate_only: bool = typer.Option(False, "--validate-only", help="Validate without importing"),
    skip_errors: bool = typer.Option(False, "--skip-errors", help="Import the valid tasks, report the rest"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Import tasks from a JSON document."""
    data = _load_document(file)
    try:
        with _service(db_path) as service:
            if validate_only:
                report = service.validate_document(data)
                if as_json:
                    _print_json(report.to_dict())
                elif report.valid:
                    console.print(f"[green]Valid:[/green] {report.summary['total']} tasks")
                else:
                    console.print(f"[red]Invalid:[/red] {report.summary['invalid']} of {report.summary['total']} tasks")
                    for issue in report.errors:
                        console.print(f"  {issue.task} [{issue.field}] {issue.error}", markup=False)
                if not report.valid:
                    raise typer.Exit(1)
                return

            result = service.import_document(data, skip_errors=skip_errors)
    except TodoqError as e:
        _fail(e)

    if as_json:
        _print_json(result.to_dict())
    else:
        summary = result.summary
        console.print(
            f"Imported {summary['successful']} of {summary['total']} tasks "
            f"({summary['skipped']} skipped, {summary['failed']} failed)"
        )
        for skipped in result.skipped:
            console.print(f"  [dim]skipped {skipped['task']}: {skipped['reason']}[/dim]")
        for error in result.errors:
            console.print(f"  [red]{error['task']}[/red] {error['error']}")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def export(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Write to this file instead of stdout"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only tasks with this status"),
    db_path: Optional[Path] = DbOption,
) -> None:
    """Export tasks as an importable JSON document."""
    try:
        with _service(db_path) as service:
            document = service.export_document(parse_status(status) if status else None)
    except (TodoqError, ValueError) as e:
        _fail(e)

    if file:
        file.write_text(json.dumps(document, indent=2), encoding="utf-8")
        console.print(f"[green]Exported {len(document['tasks'])} tasks to {file}[/green]")
    else:
        _print_json(document)


@app.command()
def clear(
    confirm: bool = typer.Option(False, "--confirm", help="Required: delete every task"),
    db_path: Optional[Path] = DbOption,
) -> None:
    """Delete every task."""
    if not confirm:
        _fail("Refusing to delete all tasks without --confirm")
    try:
        with _service(db_path) as service:
            count = service.delete_all()
    except TodoqError as e:
        _fail(e)
    console.print(f"[green]Deleted {count} tasks[/green]")


# =============================================================================
# Queries
# =============================================================================


@app.command("list")
def list_tasks(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Only children of this task"),
    no_subtasks: bool = typer.Option(False, "--no-subtasks", help="Only top-level tasks"),
    tree: bool = typer.Option(False, "--tree", help="Show the hierarchy"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """List tasks in numeric order."""
    try:
        with _service(db_path) as service:
            if tree:
                nodes = service.navigation.get_task_hierarchy(parent)
                if as_json:
                    _print_json([node.to_dict() for node in nodes])
                    return
                root = Tree("[bold]Tasks[/bold]")
                _add_branch(root, nodes)
                console.print(root)
                return

            tasks = service.list_tasks(
                status=parse_status(status) if status else None,
                parent=parent,
                no_subtasks=no_subtasks,
            )
    except (TodoqError, ValueError) as e:
        _fail(e)

    if as_json:
        _print_json([task.to_dict() for task in tasks])
    elif not tasks:
        console.print("[yellow]No tasks found.[/yellow]")
    else:
        _print_task_table(tasks)


@app.command()
def show(
    number: str = typer.Argument(..., help="Task number"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show one task with its dependencies and dependents."""
    try:
        with _service(db_path) as service:
            task = service.get(number)
            if task is None:
                _fail(f"Task {number} not found")
            blocked = service.completion.get_blocked_tasks(number)
    except TodoqError as e:
        _fail(e)

    if as_json:
        data = task.to_dict()
        data["blocks"] = [t.task_number for t in blocked]
        _print_json(data)
        return
    _print_task(task)
    if blocked:
        console.print(f"  Blocks: {', '.join(t.task_number for t in blocked)}")


@app.command()
def current(
    start: bool = typer.Option(False, "--start", help="Mark the current task in progress"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show the first open task."""
    try:
        with _service(db_path) as service:
            task = service.navigation.get_current_task()
            if task is not None and start and task.status != TaskStatus.IN_PROGRESS:
                task = service.start_task(task.task_number)
    except TodoqError as e:
        _fail(e)
    _print_optional_task(task, as_json, "No pending tasks")


@app.command("next")
def next_task(
    after: Optional[str] = typer.Argument(None, help="Start after this task (default: current)"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show the next open task."""
    try:
        with _service(db_path) as service:
            task = service.navigation.get_next_task(after)
    except TodoqError as e:
        _fail(e)
    _print_optional_task(task, as_json, "No next task")


@app.command("prev")
def previous_task(
    before: str = typer.Argument(..., help="Task number"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show the task before a number, whatever its status."""
    try:
        with _service(db_path) as service:
            task = service.navigation.get_previous_task(before)
    except TodoqError as e:
        _fail(e)
    _print_optional_task(task, as_json, "No previous task")


@app.command()
def remaining(
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Count pending and in-progress tasks."""
    try:
        with _service(db_path) as service:
            count = service.navigation.get_remaining_task_count()
    except TodoqError as e:
        _fail(e)
    if as_json:
        _print_json({"remaining": count})
    else:
        console.print(f"{count} tasks remaining")


@app.command()
def progress(
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show completion of every task."""
    try:
        with _service(db_path) as service:
            rows = service.completion.get_progress_tree()
    except TodoqError as e:
        _fail(e)

    if as_json:
        _print_json([row.to_dict() for row in rows])
        return
    if not rows:
        console.print("[yellow]No tasks found.[/yellow]")
        return
    for row in rows:
        indent = "  " * row.level
        children = f" [dim]{row.completed_children}/{row.total_children}[/dim]" if row.total_children else ""
        console.print(
            f"{indent}{row.task_number} {row.name} {_status_text(row.status)} "
            f"{row.completion_percentage}%{children}"
        )


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for in number, name or description"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Search tasks."""
    try:
        with _service(db_path) as service:
            tasks = service.navigation.search_tasks(query)
    except TodoqError as e:
        _fail(e)
    if as_json:
        _print_json([task.to_dict() for task in tasks])
    elif not tasks:
        console.print(f"[yellow]No tasks match '{query}'[/yellow]")
    else:
        _print_task_table(tasks, title=f"Matches for '{query}'")


@app.command()
def stats(
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Show task counts per status."""
    try:
        with _service(db_path) as service:
            result = service.get_stats()
    except TodoqError as e:
        _fail(e)
    if as_json:
        _print_json(result.to_dict())
        return
    console.print(f"[bold]Total:[/bold] {result.total}")
    for status in TaskStatus:
        console.print(f"  {_status_text(status)}: {getattr(result, status.value)}")
    console.print(f"[bold]Completion:[/bold] {result.completion_rate}%")


# =============================================================================
# Mutations
# =============================================================================


@app.command()
def start(
    number: str = typer.Argument(..., help="Task number"),
    force: bool = typer.Option(False, "--force", help="Allow starting a closed task"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Mark a task in progress."""
    _change_status(number, TaskStatus.IN_PROGRESS, force, db_path, as_json)


@app.command()
def reopen(
    number: str = typer.Argument(..., help="Task number"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Move a completed or cancelled task back to pending."""
    _change_status(number, TaskStatus.PENDING, False, db_path, as_json)


def _change_status(
    number: str,
    target: TaskStatus,
    force: bool,
    db_path: Optional[Path],
    as_json: bool,
) -> None:
    try:
        with _service(db_path) as service:
            task = service.get(number)
            if task is None:
                _fail(f"Task {number} not found")
            if not force and not can_transition(task.status, target):
                _fail(f"Cannot move task {number} from {task.status.value} to {target.value}")
            task = service.update(number, {"status": target})
    except TodoqError as e:
        _fail(e)

    if as_json:
        _print_json(task.to_dict())
    else:
        console.print(f"Task {task.task_number} is now {_status_text(task.status)}")


@app.command()
def complete(
    number: str = typer.Argument(..., help="Task number"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Completion notes"),
    force: bool = typer.Option(False, "--force", help="Complete even if blocked or closed"),
    db_path: Optional[Path] = DbOption,
    as_json: bool = JsonOption,
) -> None:
    """Complete a task; finished parents are completed automatically."""
    try:
        with _service(db_path) as service:
            task = service.get(number)
            if task is None:
                _fail(f"Task {number} not found")
            auto_completed: List[str] = []
            if force:
                # Bypasses the dependency check
                patch = {"status": TaskStatus.COMPLETED}
                if notes:
                    patch["completion_notes"] = notes
                task = service.update(number, patch)
            else:
                if task.status == TaskStatus.CANCELLED:
                    _fail(f"Task {number} is cancelled; reopen it first or use --force")
                result = service.complete_task(number, notes)
                task = result.task
                auto_completed = result.auto_completed
    except TodoqError as e:
        _fail(e)

    if as_json:
        _print_json({"task": task.to_dict(), "auto_completed": auto_completed})
        return
    console.print(f"[green]Completed task {task.task_number}[/green] {task.name}")
    if auto_completed:
        console.print(f"  Auto-completed: {', '.join(auto_completed)}")


@app.command()
def delete(
    number: str = typer.Argument(..., help="Task number"),
    db_path: Optional[Path] = DbOption,
) -> None:
    """Delete a task and all of its subtasks."""
    try:
        with _service(db_path) as service:
            count = service.delete(number)
    except TodoqError as e:
        _fail(e)
    console.print(f"[green]Deleted {count} tasks[/green]")
