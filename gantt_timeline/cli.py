"""Command line entry point for scheduling, editing and exporting projects."""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .business_days import parse_iso_date
from .config import DEFAULT_CONFIG_FILE, TimelineSettings, load_settings
from .exporters import export_as_csv, export_as_markdown, export_as_pdf
from .history import (
    ChangeHistoryEntry,
    ChangeType,
    EntityType,
    HistoryOptions,
    generate_change_description,
    get_filtered_history,
    group_history_by_date,
)
from .milestones import add_milestone_with_tracking, remove_milestone_with_tracking, rename_milestone_with_tracking
from .models import Milestone, TaskOperationResult, find_task
from .operations import (
    add_task_with_tracking,
    move_task_with_tracking,
    remove_task_with_tracking,
    update_task_with_tracking,
    validate_dependencies,
)
from .replay import rollback_to_change
from .scheduler import compute_schedule
from .storage import (
    FileProjectStore,
    Project,
    ProjectNotFoundError,
    create_project,
    import_milestones,
    save_milestones_json,
)


def configure_logging(level: str = "INFO") -> None:
    """Configure the loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan> | {message}",
    )


def _settings(args: argparse.Namespace) -> TimelineSettings:
    return args.settings


def _store(args: argparse.Namespace) -> FileProjectStore:
    root = Path(args.store).expanduser() if args.store else _settings(args).storage_dir
    return FileProjectStore(root)


def _options(args: argparse.Namespace) -> HistoryOptions:
    return HistoryOptions(user=_settings(args).user)


def _report_validation(milestones: List[Milestone]) -> bool:
    result = validate_dependencies(milestones)
    for warning in result.warnings:
        sys.stderr.write(f"warning: {warning}\n")
    for error in result.errors:
        sys.stderr.write(f"error: {error}\n")
    return result.is_valid


def _schedule(
    milestones: List[Milestone],
    project: Project,
    settings: TimelineSettings,
    pinned_task_id: Optional[str] = None,
) -> List[Milestone]:
    """Date a project's milestones without changing what the ledger recorded.

    Only ``pinned_task_id`` keeps the dates it carries; every other task is
    recomputed. Dependencies added by milestone sequencing stay in the
    scheduler's working copy and are never stored.
    """
    working = milestones
    if pinned_task_id is not None:
        working = [
            replace(m, tasks=[t if t.task_id == pinned_task_id else t.clear_schedule() for t in m.tasks])
            for m in milestones
        ]
    scheduled = compute_schedule(
        working,
        project.project_start_date,
        pinned_task_id is not None,
        auto_sequence=settings.auto_sequence_milestones,
    )
    return _with_dates(milestones, scheduled)


def _with_dates(milestones: List[Milestone], scheduled: List[Milestone]) -> List[Milestone]:
    """Copy computed dates from ``scheduled`` onto ``milestones``."""
    dated = []
    for milestone, planned in zip(milestones, scheduled):
        tasks = [
            replace(task, depends_on=list(task.depends_on), start_date=plan.start_date, end_date=plan.end_date)
            for task, plan in zip(milestone.tasks, planned.tasks)
        ]
        dated.append(replace(milestone, tasks=tasks, start_date=planned.start_date, end_date=planned.end_date))
    return dated


def _print_schedule(milestones: List[Milestone]) -> None:
    for milestone in milestones:
        span = f"{milestone.start_date} .. {milestone.end_date}" if milestone.start_date else "unscheduled"
        sys.stdout.write(f"{milestone.milestone_id}  {milestone.milestone_name}  [{span}]\n")
        for task in milestone.tasks:
            deps = f"  after {', '.join(task.depends_on)}" if task.depends_on else ""
            sys.stdout.write(
                f"    {task.task_id}  {task.name}  {task.start_date} .. {task.end_date}"
                f"  ({task.duration_days}d){deps}\n"
            )


def _apply(
    args: argparse.Namespace,
    project: Project,
    result: TaskOperationResult,
    pinned_task_id: Optional[str] = None,
) -> int:
    """Validate, reschedule and persist an operation result."""
    if not result.changes and pinned_task_id is None:
        sys.stderr.write("Nothing changed\n")
        return 1
    if not _report_validation(result.milestones):
        return 1
    settings = _settings(args)
    scheduled = _schedule(result.milestones, project, settings, pinned_task_id)
    history: List[ChangeHistoryEntry] = [*project.history, *result.changes]
    _store(args).save(replace(project, milestones=scheduled, history=history))
    for entry in result.changes:
        sys.stdout.write(generate_change_description(entry) + "\n")
    if pinned_task_id is not None:
        task, _ = find_task(scheduled, pinned_task_id)
        sys.stdout.write(f"Task {pinned_task_id} pinned to {task.start_date} .. {task.end_date}\n")
    return 0


# Commands ------------------------------------------------------------------

def _cmd_schedule(args: argparse.Namespace) -> int:
    milestones = import_milestones(args.path)
    if not _report_validation(milestones):
        return 1
    settings = _settings(args)
    start = parse_iso_date(args.start) if args.start else settings.project_start_date
    if start is None:
        sys.stderr.write("A project start date is required (--start or project_start_date setting)\n")
        return 1
    scheduled = compute_schedule(
        milestones,
        start,
        args.preserve_manual or settings.preserve_manual_dates,
        auto_sequence=settings.auto_sequence_milestones and not args.no_auto_sequence,
    )
    if args.output:
        save_milestones_json(args.output, scheduled)
    else:
        _print_schedule(scheduled)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    milestones = import_milestones(args.path)
    valid = _report_validation(milestones)
    sys.stdout.write("valid\n" if valid else "invalid\n")
    return 0 if valid else 1


def _cmd_import(args: argparse.Namespace) -> int:
    """Create a project whose ledger records every imported milestone and task."""
    milestones = import_milestones(args.path)
    if not _report_validation(milestones):
        return 1
    settings = _settings(args)
    start = parse_iso_date(args.start) if args.start else settings.project_start_date
    if start is None:
        sys.stderr.write("A project start date is required (--start or project_start_date setting)\n")
        return 1

    options = _options(args)
    state: List[Milestone] = []
    history: List[ChangeHistoryEntry] = []
    for milestone in milestones:
        result = add_milestone_with_tracking(state, replace(milestone, tasks=[]), options)
        state, history = result.milestones, [*history, *result.changes]
    # Tasks go in after every milestone exists so replay can place them.
    for milestone in milestones:
        for task in milestone.tasks:
            result = add_task_with_tracking(state, milestone.milestone_id, task.clear_schedule(), options)
            state, history = result.milestones, [*history, *result.changes]

    project = create_project(args.name or Path(args.path).stem, start)
    project = replace(project, milestones=_schedule(state, project, settings), history=history)
    saved = _store(args).save(project)
    sys.stdout.write(json.dumps({"id": saved.project_id, "name": saved.name, "changes": len(history)}) + "\n")
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    for project in _store(args).list():
        sys.stdout.write(
            f"{project.project_id}  {project.name}  start={project.project_start_date.isoformat()}"
            f"  milestones={len(project.milestones)}  changes={len(project.history)}\n"
        )
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    _print_schedule(_store(args).load(args.project_id).milestones)
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    positions = {entry.entry_id: index for index, entry in enumerate(project.history)}
    entries = get_filtered_history(
        project.history,
        entity_type=EntityType(args.entity_type) if args.entity_type else None,
        entity_id=args.entity_id,
        change_type=ChangeType(args.change_type) if args.change_type else None,
    )
    for label, group in group_history_by_date(entries).items():
        sys.stdout.write(f"{label}\n")
        for entry in group:
            who = f" ({entry.user})" if entry.user else ""
            sys.stdout.write(f"  [{positions[entry.entry_id]}] {generate_change_description(entry)}{who}\n")
    return 0


def _cmd_rollback(args: argparse.Namespace) -> int:
    store = _store(args)
    project = store.load(args.project_id)
    if not 0 <= args.index < len(project.history):
        sys.stderr.write(f"Index {args.index} out of range (history has {len(project.history)} entries)\n")
        return 1
    result = rollback_to_change(project.history, args.index)
    if not _report_validation(result.milestones):
        return 1
    scheduled = _schedule(result.milestones, project, _settings(args))
    store.save(replace(project, milestones=scheduled, history=result.history))
    sys.stdout.write(
        f"Rolled back to change {args.index}; discarded {len(project.history) - len(result.history)} change(s)\n"
    )
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    output = Path(args.output)
    if args.format == "csv":
        export_as_csv(output, project.milestones)
    elif args.format == "json":
        save_milestones_json(output, project.milestones)
    elif args.format == "markdown":
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(export_as_markdown(project.milestones, project.name), encoding="utf-8")
    else:
        export_as_pdf(output, project.milestones, include_dates=not args.no_dates)
    logger.info("Exported {} as {} to {}", project.project_id, args.format, output)
    return 0


def _cmd_task_update(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    updates = {}
    if args.name is not None:
        updates["name"] = args.name
    if args.description is not None:
        updates["description"] = args.description
    if args.team is not None:
        updates["team"] = args.team
    if args.duration is not None:
        if args.duration <= 0:
            sys.stderr.write("Duration must be a positive number of days\n")
            return 1
        updates["duration_days"] = args.duration
    if args.depends_on is not None:
        updates["depends_on"] = [dep for dep in args.depends_on.split(",") if dep]

    pinned_task_id = None
    if args.start is not None or args.end is not None:
        if args.start is None or args.end is None:
            sys.stderr.write("Both --start and --end are required to pin a task\n")
            return 1
        start, end = parse_iso_date(args.start), parse_iso_date(args.end)
        if end < start:
            sys.stderr.write("--end must not be before --start\n")
            return 1
        if find_task(project.milestones, args.task_id)[0] is None:
            sys.stderr.write(f"Task {args.task_id} not found\n")
            return 1
        updates["start_date"] = start.isoformat()
        updates["end_date"] = end.isoformat()
        pinned_task_id = args.task_id

    result = update_task_with_tracking(project.milestones, args.task_id, updates, _options(args))
    return _apply(args, project, result, pinned_task_id)


def _cmd_task_remove(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    return _apply(args, project, remove_task_with_tracking(project.milestones, args.task_id, _options(args)))


def _cmd_task_move(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    result = move_task_with_tracking(
        project.milestones, args.task_id, args.from_milestone, args.to_milestone, _options(args)
    )
    return _apply(args, project, result)


def _cmd_milestone_rename(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    result = rename_milestone_with_tracking(project.milestones, args.milestone_id, args.name, _options(args))
    return _apply(args, project, result)


def _cmd_milestone_remove(args: argparse.Namespace) -> int:
    project = _store(args).load(args.project_id)
    result = remove_milestone_with_tracking(project.milestones, args.milestone_id, _options(args))
    return _apply(args, project, result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dependency-driven Gantt timeline tools")
    parser.add_argument("--config", default=None, help=f"Settings file (default: ./{DEFAULT_CONFIG_FILE})")
    parser.add_argument("--store", default=None, help="Project directory (overrides storage_dir)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    schedule = subparsers.add_parser("schedule", help="Compute dates for a milestone file")
    schedule.add_argument("path")
    schedule.add_argument("--start", default=None, help="Project start date (YYYY-MM-DD)")
    schedule.add_argument("--preserve-manual", action="store_true")
    schedule.add_argument("--no-auto-sequence", action="store_true")
    schedule.add_argument("--output", default=None, help="Write the scheduled milestones as JSON")
    schedule.set_defaults(func=_cmd_schedule)

    validate = subparsers.add_parser("validate", help="Check dependencies of a milestone file")
    validate.add_argument("path")
    validate.set_defaults(func=_cmd_validate)

    importer = subparsers.add_parser("import", help="Create a project from a JSON/CSV milestone file")
    importer.add_argument("path")
    importer.add_argument("--name", default=None)
    importer.add_argument("--start", default=None)
    importer.set_defaults(func=_cmd_import)

    listing = subparsers.add_parser("list", help="List stored projects")
    listing.set_defaults(func=_cmd_list)

    show = subparsers.add_parser("show", help="Print a project's schedule")
    show.add_argument("project_id")
    show.set_defaults(func=_cmd_show)

    history = subparsers.add_parser("history", help="Show a project's change history")
    history.add_argument("project_id")
    history.add_argument("--entity-type", choices=[e.value for e in EntityType], default=None)
    history.add_argument("--entity-id", default=None)
    history.add_argument("--change-type", choices=[c.value for c in ChangeType], default=None)
    history.set_defaults(func=_cmd_history)

    rollback = subparsers.add_parser("rollback", help="Roll a project back to a history entry")
    rollback.add_argument("project_id")
    rollback.add_argument("index", type=int)
    rollback.set_defaults(func=_cmd_rollback)

    export = subparsers.add_parser("export", help="Export a project")
    export.add_argument("project_id")
    export.add_argument("--format", choices=["csv", "json", "markdown", "pdf"], default="json")
    export.add_argument("--output", required=True)
    export.add_argument("--no-dates", action="store_true", help="Omit Start/End columns in the PDF")
    export.set_defaults(func=_cmd_export)

    task = subparsers.add_parser("task", help="Edit tasks")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)
    tupdate = task_sub.add_parser("update", help="Update task fields")
    tupdate.add_argument("project_id")
    tupdate.add_argument("task_id")
    tupdate.add_argument("--name", default=None)
    tupdate.add_argument("--description", default=None)
    tupdate.add_argument("--team", default=None)
    tupdate.add_argument("--duration", type=int, default=None)
    tupdate.add_argument("--depends-on", default=None, help="Comma separated task IDs")
    tupdate.add_argument("--start", default=None, help="Pin the task's start date (YYYY-MM-DD, needs --end)")
    tupdate.add_argument("--end", default=None, help="Pin the task's end date (YYYY-MM-DD, needs --start)")
    tupdate.set_defaults(func=_cmd_task_update)
    tremove = task_sub.add_parser("remove", help="Remove a task")
    tremove.add_argument("project_id")
    tremove.add_argument("task_id")
    tremove.set_defaults(func=_cmd_task_remove)
    tmove = task_sub.add_parser("move", help="Move a task to another milestone")
    tmove.add_argument("project_id")
    tmove.add_argument("task_id")
    tmove.add_argument("from_milestone")
    tmove.add_argument("to_milestone")
    tmove.set_defaults(func=_cmd_task_move)

    milestone = subparsers.add_parser("milestone", help="Edit milestones")
    milestone_sub = milestone.add_subparsers(dest="milestone_cmd", required=True)
    mrename = milestone_sub.add_parser("rename", help="Rename a milestone")
    mrename.add_argument("project_id")
    mrename.add_argument("milestone_id")
    mrename.add_argument("name")
    mrename.set_defaults(func=_cmd_milestone_rename)
    mremove = milestone_sub.add_parser("remove", help="Remove a milestone")
    mremove.add_argument("project_id")
    mremove.add_argument("milestone_id")
    mremove.set_defaults(func=_cmd_milestone_remove)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config_path = Path(args.config) if args.config else Path.cwd() / DEFAULT_CONFIG_FILE
    try:
        args.settings = load_settings(config_path)
    except ValueError as exc:
        sys.stderr.write(f"Invalid settings: {exc}\n")
        return 1
    try:
        configure_logging(args.log_level or args.settings.log_level)
        return int(args.func(args) or 0)
    except ProjectNotFoundError as exc:
        sys.stderr.write(f"Project not found: {exc.args[0]}\n")
        return 1
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
