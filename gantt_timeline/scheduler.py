"""Dependency-driven schedule computation."""
from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .business_days import add_business_days, format_iso_date, next_business_day, parse_iso_date
from .models import Milestone, Task, copy_milestones

_DEFAULT_MILESTONE_SPAN = timedelta(days=7)


class CyclicDependencyError(ValueError):
    """Raised when the scheduler is handed a dependency graph with a cycle."""

    def __init__(self, task_ids: Iterable[str]) -> None:
        self.task_ids = sorted(task_ids)
        super().__init__(
            "Cannot schedule: circular dependency among tasks " + ", ".join(self.task_ids)
        )


@dataclass
class DependencyInfo:
    depends_on: List[Task] = field(default_factory=list)
    dependents: List[Task] = field(default_factory=list)

    @property
    def has_dependencies(self) -> bool:
        return bool(self.depends_on or self.dependents)


def compute_schedule(
    milestones: List[Milestone],
    project_start: date,
    preserve_manual: bool = False,
    *,
    auto_sequence: bool = True,
) -> List[Milestone]:
    """Return a scheduled copy of ``milestones``.

    Every task receives ``start_date``/``end_date`` and every milestone with
    tasks receives the min/max of its task dates. The input list is never
    modified.

    Args:
        milestones: Milestones to schedule.
        project_start: Start date for tasks without dependencies.
        preserve_manual: Keep the dates of tasks that already carry both a
            start and an end date.
        auto_sequence: Chain milestones in ``milestone_id`` order when the
            data does not already link them.

    Raises:
        CyclicDependencyError: The dependency graph is not acyclic. Callers
            are expected to run ``validate_dependencies`` first.
    """
    if isinstance(project_start, datetime):
        project_start = project_start.date()

    working = copy_milestones(milestones)
    if auto_sequence:
        _sequence_milestones(working)

    tasks_by_id: Dict[str, Task] = {}
    for milestone in working:
        for task in milestone.tasks:
            tasks_by_id.setdefault(task.task_id, task)

    dates = _resolve_dates(tasks_by_id, project_start, preserve_manual)

    for milestone in working:
        for task in milestone.tasks:
            start, end = dates[task.task_id]
            task.start_date = format_iso_date(start)
            task.end_date = format_iso_date(end)
        if milestone.tasks:
            milestone.start_date = min(task.start_date for task in milestone.tasks)
            milestone.end_date = max(task.end_date for task in milestone.tasks)

    logger.debug(
        "Schedule computed: milestones={} tasks={} start={} preserve_manual={}",
        len(working),
        len(tasks_by_id),
        project_start,
        preserve_manual,
    )
    return working


def _sequence_milestones(milestones: List[Milestone]) -> None:
    """Make each milestone's first task wait on the previous milestone's last task."""
    owner = {task.task_id: milestone.milestone_id for milestone in milestones for task in milestone.tasks}
    ordered = sorted(milestones, key=lambda milestone: milestone.milestone_id)
    for previous, current in zip(ordered, ordered[1:]):
        if not previous.tasks or not current.tasks:
            continue
        first = current.tasks[0]
        last_previous = previous.tasks[-1]
        linked = any(
            dep in owner and owner[dep] != current.milestone_id for dep in first.depends_on
        )
        if not linked and last_previous.task_id not in first.depends_on:
            first.depends_on.append(last_previous.task_id)


def _resolve_dates(
    tasks_by_id: Dict[str, Task],
    project_start: date,
    preserve_manual: bool,
) -> Dict[str, Tuple[date, date]]:
    """Resolve every task once, dependencies first (Kahn's algorithm)."""
    pinned = {
        task_id
        for task_id, task in tasks_by_id.items()
        if preserve_manual and task.has_schedule()
    }

    successors: Dict[str, List[str]] = defaultdict(list)
    in_degree: Dict[str, int] = {}
    for task_id, task in tasks_by_id.items():
        if task_id in pinned:
            in_degree[task_id] = 0
            continue
        deps = {dep for dep in task.depends_on if dep in tasks_by_id}
        for dep in deps:
            successors[dep].append(task_id)
        in_degree[task_id] = len(deps)

    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    dates: Dict[str, Tuple[date, date]] = {}
    while queue:
        task_id = queue.popleft()
        task = tasks_by_id[task_id]
        if task_id in pinned:
            dates[task_id] = (parse_iso_date(task.start_date), parse_iso_date(task.end_date))
        else:
            dates[task_id] = _task_window(task, project_start, dates)
        for successor in successors[task_id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    if len(dates) != len(tasks_by_id):
        raise CyclicDependencyError(set(tasks_by_id) - set(dates))
    return dates


def _task_window(task: Task, project_start: date, resolved: Dict[str, Tuple[date, date]]) -> Tuple[date, date]:
    if task.depends_on:
        latest_end = project_start
        for dep in task.depends_on:
            if dep in resolved:
                latest_end = max(latest_end, resolved[dep][1])
        start = next_business_day(latest_end + timedelta(days=1))
    else:
        start = next_business_day(project_start)
    return start, add_business_days(start, task.duration_days - 1)


def find_dependent_tasks(task_id: str, milestones: List[Milestone]) -> List[Task]:
    """Return every task that lists ``task_id`` among its dependencies."""
    return [
        task
        for milestone in milestones
        for task in milestone.tasks
        if task_id in task.depends_on
    ]


def get_task_dependency_info(task: Task, milestones: List[Milestone]) -> DependencyInfo:
    by_id = {candidate.task_id: candidate for milestone in milestones for candidate in milestone.tasks}
    return DependencyInfo(
        depends_on=[by_id[dep] for dep in task.depends_on if dep in by_id],
        dependents=find_dependent_tasks(task.task_id, milestones),
    )


def milestone_date_range(milestone: Milestone, today: Optional[date] = None) -> Tuple[date, date]:
    """Return the span covered by a milestone's dated tasks.

    Milestones without dated tasks fall back to their own stored dates, and
    then to a one week window starting ``today``.
    """
    dated = [task for task in milestone.tasks if task.has_schedule()]
    if dated:
        return (
            min(parse_iso_date(task.start_date) for task in dated),
            max(parse_iso_date(task.end_date) for task in dated),
        )
    start = parse_iso_date(milestone.start_date) if milestone.start_date else (today or date.today())
    end = parse_iso_date(milestone.end_date) if milestone.end_date else start + _DEFAULT_MILESTONE_SPAN
    return start, end


def project_date_range(milestones: List[Milestone]) -> Optional[Tuple[date, date]]:
    """Return the earliest start and latest end over all dated tasks."""
    dated = [task for milestone in milestones for task in milestone.tasks if task.has_schedule()]
    if not dated:
        return None
    return (
        min(parse_iso_date(task.start_date) for task in dated),
        max(parse_iso_date(task.end_date) for task in dated),
    )
