"""Task mutations that return new state together with their ledger entries."""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from loguru import logger

from .history import (
    HistoryOptions,
    detect_task_changes,
    log_task_addition,
    log_task_move,
    log_task_removal,
)
from .ids import generate_unique_id
from .models import (
    Milestone,
    Task,
    TaskOperationResult,
    ValidationResult,
    all_task_ids,
    find_milestone,
    find_task,
)

_UPDATABLE_FIELDS = frozenset(f.name for f in fields(Task)) - {"task_id"}


@dataclass
class CloneOptions:
    target_milestone_id: str
    include_dependencies: bool = False
    new_task_name: Optional[str] = None


@dataclass
class SplitPart:
    name: str
    duration: int


@dataclass
class SplitConfig:
    splits: List[SplitPart] = field(default_factory=list)


def generate_unique_task_id(milestones: List[Milestone], extra_ids: Iterable[str] = ()) -> str:
    """Return a ``T{millis}_{token}`` ID unused by any task in ``milestones``."""
    existing = all_task_ids(milestones)
    existing.update(extra_ids)
    return generate_unique_id("T", existing)


def _replace_milestone(milestones: List[Milestone], milestone_id: str, **changes: Any) -> List[Milestone]:
    return [
        replace(m, **changes) if m.milestone_id == milestone_id else m
        for m in milestones
    ]


# Plain transformations --------------------------------------------------

def clone_task(task: Task, milestones: List[Milestone], options: CloneOptions) -> Task:
    """Copy ``task`` under a fresh ID with its dates cleared."""
    return replace(
        task,
        task_id=generate_unique_task_id(milestones),
        name=options.new_task_name or f"{task.name} (Copy)",
        depends_on=list(task.depends_on) if options.include_dependencies else [],
        start_date=None,
        end_date=None,
    )


def add_cloned_task_to_milestone(
    milestones: List[Milestone],
    cloned_task: Task,
    target_milestone_id: str,
) -> List[Milestone]:
    target = find_milestone(milestones, target_milestone_id)
    if target is None:
        return milestones
    return _replace_milestone(milestones, target_milestone_id, tasks=[*target.tasks, cloned_task])


def split_task(task: Task, milestones: List[Milestone], config: SplitConfig) -> List[Task]:
    """Turn ``task`` into a chain of tasks, one per configured part.

    The first part inherits the original dependencies; every later part
    depends only on the part before it.
    """
    if not config.splits:
        return [task]
    parts: List[Task] = []
    for index, part in enumerate(config.splits):
        task_id = generate_unique_task_id(milestones, (p.task_id for p in parts))
        depends_on = list(task.depends_on) if index == 0 else [parts[-1].task_id]
        parts.append(
            replace(
                task,
                task_id=task_id,
                name=part.name,
                duration_days=part.duration,
                depends_on=depends_on,
                start_date=None,
                end_date=None,
            )
        )
    return parts


def update_dependencies_after_split(
    milestones: List[Milestone],
    original_task_id: str,
    split_tasks: List[Task],
) -> List[Milestone]:
    """Point dependents of the split task at the last task of the chain."""
    if not split_tasks:
        return milestones
    last_id = split_tasks[-1].task_id
    return [
        replace(
            milestone,
            tasks=[
                replace(task, depends_on=[last_id if dep == original_task_id else dep for dep in task.depends_on])
                if original_task_id in task.depends_on
                else task
                for task in milestone.tasks
            ],
        )
        for milestone in milestones
    ]


def move_task_between_milestones(
    milestones: List[Milestone],
    task_id: str,
    from_milestone_id: str,
    to_milestone_id: str,
) -> List[Milestone]:
    source = find_milestone(milestones, from_milestone_id)
    task = source.find_task(task_id) if source else None
    if task is None:
        return milestones
    result = _replace_milestone(
        milestones,
        from_milestone_id,
        tasks=[t for t in source.tasks if t.task_id != task_id],
    )
    target = find_milestone(result, to_milestone_id)
    if target is None:
        return result
    return _replace_milestone(result, to_milestone_id, tasks=[*target.tasks, task])


# Validation --------------------------------------------------------------

def validate_dependencies(milestones: List[Milestone]) -> ValidationResult:
    """Check for duplicate IDs, dangling references and circular dependencies.

    References into another milestone are legal but reported as warnings.
    Only the first cycle found is reported.
    """
    errors: List[str] = []
    warnings: List[str] = []
    tasks: Dict[str, Task] = {}
    owner: Dict[str, str] = {}
    for milestone in milestones:
        for task in milestone.tasks:
            if task.task_id in tasks:
                errors.append(f'Duplicate task ID {task.task_id} used by "{tasks[task.task_id].name}" and "{task.name}"')
                continue
            tasks[task.task_id] = task
            owner[task.task_id] = milestone.milestone_id

    for milestone in milestones:
        for task in milestone.tasks:
            for dep in task.depends_on:
                if dep not in tasks:
                    errors.append(f'Task "{task.name}" ({task.task_id}) depends on non-existent task {dep}')
                elif owner[dep] != milestone.milestone_id:
                    warnings.append(f'Task "{task.name}" depends on task in different milestone')

    visited: Set[str] = set()
    for task_id in tasks:
        if task_id in visited:
            continue
        cycle_at = _find_cycle(task_id, tasks, visited)
        if cycle_at is not None:
            errors.append(f"Circular dependency detected involving task {cycle_at}")
            break

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _find_cycle(root: str, tasks: Dict[str, Task], visited: Set[str]) -> Optional[str]:
    """Depth-first walk from ``root``; return a task on a cycle, if any."""
    on_stack = {root}
    visited.add(root)
    stack: List[Tuple[str, Iterator[str]]] = [(root, iter(tasks[root].depends_on))]
    while stack:
        node, deps = stack[-1]
        for dep in deps:
            if dep not in tasks:
                continue
            if dep in on_stack:
                return dep
            if dep not in visited:
                visited.add(dep)
                on_stack.add(dep)
                stack.append((dep, iter(tasks[dep].depends_on)))
                break
        else:
            on_stack.discard(node)
            stack.pop()
    return None


def validate_task(task: Task) -> ValidationResult:
    errors = []
    if not task.name or not task.name.strip():
        errors.append("Task name is required")
    if task.duration_days <= 0:
        errors.append(f'Task "{task.name}" duration must be a positive number of days')
    if task.task_id in task.depends_on:
        errors.append(f'Task "{task.name}" cannot depend on itself')
    return ValidationResult(is_valid=not errors, errors=errors)


# Change-tracked operations ----------------------------------------------

def add_task_with_tracking(
    milestones: List[Milestone],
    milestone_id: str,
    task: Task,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    milestone = find_milestone(milestones, milestone_id)
    if milestone is None:
        logger.debug("add_task: milestone {} not found", milestone_id)
        return TaskOperationResult(milestones, [])
    new_milestones = _replace_milestone(milestones, milestone_id, tasks=[*milestone.tasks, task])
    entry = log_task_addition(task, milestone_id, milestone.milestone_name, options)
    return TaskOperationResult(new_milestones, [entry])


def remove_task_with_tracking(
    milestones: List[Milestone],
    task_id: str,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    task, milestone = find_task(milestones, task_id)
    if task is None:
        logger.debug("remove_task: task {} not found", task_id)
        return TaskOperationResult(milestones, [])
    new_milestones = _replace_milestone(
        milestones,
        milestone.milestone_id,
        tasks=[t for t in milestone.tasks if t.task_id != task_id],
    )
    entry = log_task_removal(task, milestone.milestone_id, milestone.milestone_name, options)
    return TaskOperationResult(new_milestones, [entry])


def update_task_with_tracking(
    milestones: List[Milestone],
    task_id: str,
    updates: Mapping[str, Any],
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    """Apply field ``updates`` to a task and log one entry per changed field.

    Only name, description, team, duration and dependencies are tracked.
    ``sprint``, ``start_date`` and ``end_date`` are applied to the returned
    state but produce no ledger entry, so replaying the ledger does not
    restore them. Dates are schedule output and are recomputed after replay.

    Raises:
        ValueError: ``updates`` names a field a task does not have.
    """
    unknown = set(updates) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
    original, milestone = find_task(milestones, task_id)
    if original is None:
        logger.debug("update_task: task {} not found", task_id)
        return TaskOperationResult(milestones, [])

    changes = dict(updates)
    changes["depends_on"] = list(changes.get("depends_on", original.depends_on) or [])
    updated = replace(original, **changes)
    new_milestones = _replace_milestone(
        milestones,
        milestone.milestone_id,
        tasks=[updated if t.task_id == task_id else t for t in milestone.tasks],
    )
    entries = detect_task_changes(original, updated, milestone.milestone_id, options)
    logger.debug("update_task: task={} changes={}", task_id, [e.change_type.value for e in entries])
    return TaskOperationResult(new_milestones, entries)


def move_task_with_tracking(
    milestones: List[Milestone],
    task_id: str,
    from_milestone_id: str,
    to_milestone_id: str,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    source = find_milestone(milestones, from_milestone_id)
    target = find_milestone(milestones, to_milestone_id)
    task = source.find_task(task_id) if source else None
    if task is None or target is None:
        logger.debug("move_task: task {} not in {} or target {} missing", task_id, from_milestone_id, to_milestone_id)
        return TaskOperationResult(milestones, [])
    new_milestones = move_task_between_milestones(milestones, task_id, from_milestone_id, to_milestone_id)
    entry = log_task_move(
        task,
        from_milestone_id,
        source.milestone_name,
        to_milestone_id,
        target.milestone_name,
        options,
    )
    return TaskOperationResult(new_milestones, [entry])


def clone_task_with_tracking(
    milestones: List[Milestone],
    task: Task,
    options: CloneOptions,
    history_options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    target = find_milestone(milestones, options.target_milestone_id)
    if target is None:
        logger.debug("clone_task: target milestone {} not found", options.target_milestone_id)
        return TaskOperationResult(milestones, [])
    cloned = clone_task(task, milestones, options)
    new_milestones = add_cloned_task_to_milestone(milestones, cloned, target.milestone_id)
    entry = log_task_addition(cloned, target.milestone_id, target.milestone_name, history_options)
    return TaskOperationResult(new_milestones, [entry])


def split_task_with_tracking(
    milestones: List[Milestone],
    task: Task,
    config: SplitConfig,
    history_options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    """Replace ``task`` with its split chain and rewire its dependents.

    Logged as the removal of the original, one addition per part, then a
    dependency change for every rewired dependent.
    """
    _, milestone = find_task(milestones, task.task_id)
    if milestone is None or not config.splits:
        logger.debug("split_task: nothing to split for task {}", task.task_id)
        return TaskOperationResult(milestones, [])

    parts = split_task(task, milestones, config)
    new_milestones = _replace_milestone(
        milestones,
        milestone.milestone_id,
        tasks=[*(t for t in milestone.tasks if t.task_id != task.task_id), *parts],
    )
    rewired = update_dependencies_after_split(new_milestones, task.task_id, parts)

    changes = [log_task_removal(task, milestone.milestone_id, milestone.milestone_name, history_options)]
    changes.extend(
        log_task_addition(part, milestone.milestone_id, milestone.milestone_name, history_options)
        for part in parts
    )
    # Rewired dependents get their own dependency entries.
    for before, after in zip(new_milestones, rewired):
        for old_task, new_task in zip(before.tasks, after.tasks):
            if old_task is not new_task:
                changes.extend(detect_task_changes(old_task, new_task, after.milestone_id, history_options))
    return TaskOperationResult(rewired, changes)
