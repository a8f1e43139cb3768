"""Data models shared across the timeline core."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .history import ChangeHistoryEntry


@dataclass
class Task:
    """Serializable representation of a single task."""

    task_id: str
    name: str
    description: str = ""
    team: str = ""
    duration_days: int = 1
    depends_on: List[str] = field(default_factory=list)
    sprint: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def has_schedule(self) -> bool:
        """Return True when both start and end dates are defined."""
        return self.start_date is not None and self.end_date is not None

    def clear_schedule(self) -> "Task":
        """Return a copy without computed dates."""
        return replace(self, depends_on=list(self.depends_on), start_date=None, end_date=None)

    def copy(self) -> "Task":
        return replace(self, depends_on=list(self.depends_on))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "taskId": self.task_id,
            "name": self.name,
            "description": self.description,
            "team": self.team,
            "durationDays": self.duration_days,
            "dependsOn": list(self.depends_on),
        }
        if self.sprint is not None:
            data["sprint"] = self.sprint
        if self.start_date is not None:
            data["startDate"] = self.start_date
        if self.end_date is not None:
            data["endDate"] = self.end_date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a task from the persisted camelCase shape."""
        if not isinstance(data, dict):
            raise ValueError(f"Invalid task: expected object, got {type(data).__name__}")
        task_id = data.get("taskId")
        if not task_id:
            raise ValueError("Invalid task: missing taskId")
        depends_on = data.get("dependsOn") or []
        if not isinstance(depends_on, list):
            raise ValueError(f"Invalid task {task_id}: dependsOn must be a list")
        try:
            duration = int(data.get("durationDays", 1))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid task {task_id}: durationDays must be an integer") from exc
        return cls(
            task_id=str(task_id),
            name=str(data.get("name", "")),
            description=str(data.get("description") or ""),
            team=str(data.get("team") or ""),
            duration_days=duration,
            depends_on=[str(dep) for dep in depends_on],
            sprint=data.get("sprint") or None,
            start_date=data.get("startDate") or None,
            end_date=data.get("endDate") or None,
        )


@dataclass
class Milestone:
    """A named group of tasks with derived start/end dates."""

    milestone_id: str
    milestone_name: str
    tasks: List[Task] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

    def copy(self) -> "Milestone":
        """Deep copy: the task list and every task are duplicated."""
        return replace(self, tasks=[task.copy() for task in self.tasks])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "milestoneId": self.milestone_id,
            "milestoneName": self.milestone_name,
            "tasks": [task.to_dict() for task in self.tasks],
        }
        if self.start_date is not None:
            data["startDate"] = self.start_date
        if self.end_date is not None:
            data["endDate"] = self.end_date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Milestone":
        """Build a milestone (and its tasks) from the persisted shape."""
        if not isinstance(data, dict):
            raise ValueError(f"Invalid milestone: expected object, got {type(data).__name__}")
        milestone_id = data.get("milestoneId")
        if not milestone_id:
            raise ValueError("Invalid milestone: missing milestoneId")
        tasks = data.get("tasks") or []
        if not isinstance(tasks, list):
            raise ValueError(f"Invalid milestone {milestone_id}: tasks must be a list")
        return cls(
            milestone_id=str(milestone_id),
            milestone_name=str(data.get("milestoneName", "")),
            tasks=[Task.from_dict(task) for task in tasks],
            start_date=data.get("startDate") or None,
            end_date=data.get("endDate") or None,
        )


@dataclass
class ValidationResult:
    """Outcome of a validation pass; problems are reported, never raised."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TaskOperationResult:
    """New milestone list plus the change entries describing the edit."""

    milestones: List[Milestone]
    changes: List[ChangeHistoryEntry] = field(default_factory=list)


def copy_milestones(milestones: List[Milestone]) -> List[Milestone]:
    return [milestone.copy() for milestone in milestones]


def milestones_from_dicts(items: List[Dict[str, Any]]) -> List[Milestone]:
    return [Milestone.from_dict(item) for item in items]


def milestones_to_dicts(milestones: List[Milestone]) -> List[Dict[str, Any]]:
    return [milestone.to_dict() for milestone in milestones]


def find_task(milestones: List[Milestone], task_id: str) -> Tuple[Optional[Task], Optional[Milestone]]:
    """Locate a task and the milestone that owns it."""
    for milestone in milestones:
        task = milestone.find_task(task_id)
        if task is not None:
            return task, milestone
    return None, None


def find_milestone(milestones: List[Milestone], milestone_id: str) -> Optional[Milestone]:
    for milestone in milestones:
        if milestone.milestone_id == milestone_id:
            return milestone
    return None


def all_task_ids(milestones: List[Milestone]) -> set:
    return {task.task_id for milestone in milestones for task in milestone.tasks}
