"""Append-only change ledger and its read-side views."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .ids import now_millis, random_token
from .models import Milestone, Task


class EntityType(str, Enum):
    TASK = "task"
    MILESTONE = "milestone"


class ChangeType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    NAME = "name"
    MILESTONE_NAME = "milestone_name"
    DESCRIPTION = "description"
    DURATION = "duration"
    TEAM = "team"
    DEPENDENCY = "dependency"
    STATUS = "status"
    TASK_MOVE = "task_move"


@dataclass(frozen=True)
class ChangeContext:
    """Display and replay details captured when the change happened."""

    milestone_id: Optional[str] = None
    target_milestone_id: Optional[str] = None
    task_name: Optional[str] = None
    milestone_name: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        data = {
            "milestoneId": self.milestone_id,
            "targetMilestoneId": self.target_milestone_id,
            "taskName": self.task_name,
            "milestoneName": self.milestone_name,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeContext":
        return cls(
            milestone_id=data.get("milestoneId"),
            target_milestone_id=data.get("targetMilestoneId"),
            task_name=data.get("taskName"),
            milestone_name=data.get("milestoneName"),
        )


@dataclass(frozen=True)
class HistoryOptions:
    user: Optional[str] = None
    context: ChangeContext = field(default_factory=ChangeContext)

    def with_context(self, **values: Optional[str]) -> "HistoryOptions":
        """Return options whose context is overlaid with ``values``."""
        return replace(self, context=replace(self.context, **values))


@dataclass(frozen=True)
class ChangeHistoryEntry:
    """A single immutable ledger record.

    ``old_value``/``new_value`` are typed by ``change_type``: add and remove
    carry a ``Task`` or ``Milestone`` (``None`` on the empty side), duration
    carries ``int``, dependency carries ``list[str]`` and every other change
    type carries ``str``.
    """

    entry_id: str
    timestamp: int
    entity_type: EntityType
    entity_id: str
    change_type: ChangeType
    old_value: Any = None
    new_value: Any = None
    user: Optional[str] = None
    context: Optional[ChangeContext] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "entryId": self.entry_id,
            "timestamp": self.timestamp,
            "entityType": self.entity_type.value,
            "entityId": self.entity_id,
            "changeType": self.change_type.value,
            "oldValue": _encode_value(self.old_value),
            "newValue": _encode_value(self.new_value),
        }
        if self.user is not None:
            data["user"] = self.user
        if self.context is not None:
            data["context"] = self.context.to_dict()
        return data


def _encode_value(value: Any) -> Any:
    if isinstance(value, (Task, Milestone)):
        return value.to_dict()
    if isinstance(value, list):
        return list(value)
    return value


def _decode_value(entity_type: EntityType, change_type: ChangeType, raw: Any) -> Any:
    if raw is None:
        return None
    if change_type in (ChangeType.ADD, ChangeType.REMOVE):
        if entity_type is EntityType.MILESTONE:
            return Milestone.from_dict(raw)
        return Task.from_dict(raw)
    if change_type is ChangeType.DURATION:
        return int(raw)
    if change_type is ChangeType.DEPENDENCY:
        if not isinstance(raw, list):
            raise ValueError("Invalid history entry: dependency values must be lists")
        return [str(dep) for dep in raw]
    return str(raw)


def entry_from_dict(data: Dict[str, Any]) -> ChangeHistoryEntry:
    """Rebuild an entry from its persisted camelCase shape."""
    try:
        entity_type = EntityType(data["entityType"])
        change_type = ChangeType(data["changeType"])
        context = data.get("context")
        return ChangeHistoryEntry(
            entry_id=str(data["entryId"]),
            timestamp=int(data["timestamp"]),
            entity_type=entity_type,
            entity_id=str(data["entityId"]),
            change_type=change_type,
            old_value=_decode_value(entity_type, change_type, data.get("oldValue")),
            new_value=_decode_value(entity_type, change_type, data.get("newValue")),
            user=data.get("user"),
            context=ChangeContext.from_dict(context) if context else None,
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Invalid history entry: {exc}") from exc


def generate_change_entry_id() -> str:
    return f"CH{now_millis()}_{random_token(6)}"


def create_change_entry(
    entity_type: EntityType,
    entity_id: str,
    change_type: ChangeType,
    old_value: Any,
    new_value: Any,
    options: Optional[HistoryOptions] = None,
) -> ChangeHistoryEntry:
    """Stamp a new entry with a fresh ID and the current time."""
    options = options or HistoryOptions()
    return ChangeHistoryEntry(
        entry_id=generate_change_entry_id(),
        timestamp=now_millis(),
        entity_type=EntityType(entity_type),
        entity_id=entity_id,
        change_type=ChangeType(change_type),
        old_value=old_value,
        new_value=new_value,
        user=options.user,
        context=options.context,
    )


def log_change(
    history: List[ChangeHistoryEntry],
    entity_type: EntityType,
    entity_id: str,
    change_type: ChangeType,
    old_value: Any,
    new_value: Any,
    options: Optional[HistoryOptions] = None,
) -> List[ChangeHistoryEntry]:
    """Return ``history`` plus one new entry; the input list is left alone."""
    entry = create_change_entry(entity_type, entity_id, change_type, old_value, new_value, options)
    return [*history, entry]


def generate_change_description(entry: ChangeHistoryEntry) -> str:
    """Describe ``entry`` using only what the entry itself recorded."""
    entity_type = entry.entity_type.value
    change_type = entry.change_type
    old_value, new_value = entry.old_value, entry.new_value
    context = entry.context or ChangeContext()
    name = context.task_name or context.milestone_name or f"{entity_type} {entry.entity_id}"

    if change_type is ChangeType.ADD:
        return f'Added {entity_type} "{name}"'
    if change_type is ChangeType.REMOVE:
        return f'Removed {entity_type} "{name}"'
    if change_type in (ChangeType.NAME, ChangeType.MILESTONE_NAME):
        label = "Task" if entry.entity_type is EntityType.TASK else "Milestone"
        return f'{label} "{old_value}" renamed to "{new_value}"'
    if change_type is ChangeType.DESCRIPTION:
        return (
            f'Task "{name}" description changed from '
            f"{_description_preview(old_value)} to {_description_preview(new_value)}"
        )
    if change_type is ChangeType.DURATION:
        return f'Task "{name}" duration changed from {old_value} to {new_value} days'
    if change_type is ChangeType.TEAM:
        return f'Task "{name}" team changed from "{old_value}" to "{new_value}"'
    if change_type is ChangeType.DEPENDENCY:
        return _describe_dependency_change(name, old_value, new_value)
    if change_type is ChangeType.TASK_MOVE:
        source = context.milestone_name or "unknown milestone"
        target = str(new_value) if new_value else "unknown milestone"
        return f'Task "{name}" moved from "{source}" to "{target}"'
    if change_type is ChangeType.STATUS:
        return f'Task "{name}" status changed from "{old_value}" to "{new_value}"'
    return f'{entity_type} "{name}" {change_type.value} changed'


def _description_preview(value: Any) -> str:
    if not value:
        return "empty"
    return f'"{str(value)[:30]}..."'


def _describe_dependency_change(name: str, old_value: Any, new_value: Any) -> str:
    if isinstance(old_value, list) and isinstance(new_value, list):
        added = [dep for dep in new_value if dep not in old_value]
        removed = [dep for dep in old_value if dep not in new_value]
        if added and not removed:
            return f'Task "{name}" added {len(added)} dependency(ies)'
        if removed and not added:
            return f'Task "{name}" removed {len(removed)} dependency(ies)'
    return f'Task "{name}" dependencies modified'


def get_entity_display_name(entity_type: EntityType, entity_id: str, milestones: List[Milestone]) -> str:
    """Look up a live display name, falling back to the raw ID."""
    if EntityType(entity_type) is EntityType.MILESTONE:
        for milestone in milestones:
            if milestone.milestone_id == entity_id:
                return milestone.milestone_name or entity_id
        return entity_id
    for milestone in milestones:
        task = milestone.find_task(entity_id)
        if task is not None:
            return task.name
    return entity_id


def group_history_by_date(history: List[ChangeHistoryEntry]) -> Dict[str, List[ChangeHistoryEntry]]:
    """Bucket entries by local calendar day, e.g. ``Mon Jan 01 2024``."""
    groups: Dict[str, List[ChangeHistoryEntry]] = {}
    for entry in history:
        label = datetime.fromtimestamp(entry.timestamp / 1000).strftime("%a %b %d %Y")
        groups.setdefault(label, []).append(entry)
    return groups


def get_filtered_history(
    history: List[ChangeHistoryEntry],
    entity_type: Optional[EntityType] = None,
    entity_id: Optional[str] = None,
    change_type: Optional[ChangeType] = None,
) -> List[ChangeHistoryEntry]:
    result = []
    for entry in history:
        if entity_type and entry.entity_type != entity_type:
            continue
        if entity_id and entry.entity_id != entity_id:
            continue
        if change_type and entry.change_type != change_type:
            continue
        result.append(entry)
    return result


def with_change_tracking(
    update: Callable[..., List[Milestone]],
    detect: Callable[..., List[ChangeHistoryEntry]],
) -> Callable[..., Tuple[List[Milestone], List[ChangeHistoryEntry]]]:
    """Wrap ``update`` so each call also appends the changes ``detect`` finds.

    The returned callable takes ``(milestones, history, *args)`` and returns
    ``(new_milestones, new_history)``.
    """

    def tracked(milestones, history, *args):
        new_milestones = update(milestones, *args)
        changes = detect(milestones, new_milestones, *args)
        return new_milestones, [*history, *changes]

    return tracked


def detect_task_changes(
    old_task: Task,
    new_task: Task,
    milestone_id: str,
    options: Optional[HistoryOptions] = None,
) -> List[ChangeHistoryEntry]:
    """Emit one entry per changed field between two versions of a task."""
    options = (options or HistoryOptions()).with_context(milestone_id=milestone_id, task_name=new_task.name)
    task_id = old_task.task_id
    fields = (
        (ChangeType.NAME, old_task.name, new_task.name),
        (ChangeType.DESCRIPTION, old_task.description, new_task.description),
        (ChangeType.TEAM, old_task.team, new_task.team),
        (ChangeType.DURATION, old_task.duration_days, new_task.duration_days),
    )
    changes = [
        create_change_entry(EntityType.TASK, task_id, change_type, old, new, options)
        for change_type, old, new in fields
        if old != new
    ]
    old_deps = list(old_task.depends_on or [])
    new_deps = list(new_task.depends_on or [])
    if sorted(old_deps) != sorted(new_deps):
        changes.append(
            create_change_entry(EntityType.TASK, task_id, ChangeType.DEPENDENCY, old_deps, new_deps, options)
        )
    return changes


def detect_milestone_changes(
    old_milestone: Milestone,
    new_milestone: Milestone,
    options: Optional[HistoryOptions] = None,
) -> List[ChangeHistoryEntry]:
    if old_milestone.milestone_name == new_milestone.milestone_name:
        return []
    options = (options or HistoryOptions()).with_context(milestone_name=new_milestone.milestone_name)
    return [
        create_change_entry(
            EntityType.MILESTONE,
            old_milestone.milestone_id,
            ChangeType.MILESTONE_NAME,
            old_milestone.milestone_name,
            new_milestone.milestone_name,
            options,
        )
    ]


def log_task_addition(
    task: Task,
    milestone_id: str,
    milestone_name: str,
    options: Optional[HistoryOptions] = None,
) -> ChangeHistoryEntry:
    options = (options or HistoryOptions()).with_context(
        milestone_id=milestone_id, milestone_name=milestone_name, task_name=task.name
    )
    return create_change_entry(EntityType.TASK, task.task_id, ChangeType.ADD, None, task.copy(), options)


def log_task_removal(
    task: Task,
    milestone_id: str,
    milestone_name: str,
    options: Optional[HistoryOptions] = None,
) -> ChangeHistoryEntry:
    options = (options or HistoryOptions()).with_context(
        milestone_id=milestone_id, milestone_name=milestone_name, task_name=task.name
    )
    return create_change_entry(EntityType.TASK, task.task_id, ChangeType.REMOVE, task.copy(), None, options)


def log_milestone_addition(milestone: Milestone, options: Optional[HistoryOptions] = None) -> ChangeHistoryEntry:
    options = (options or HistoryOptions()).with_context(milestone_name=milestone.milestone_name)
    return create_change_entry(
        EntityType.MILESTONE, milestone.milestone_id, ChangeType.ADD, None, milestone.copy(), options
    )


def log_milestone_removal(milestone: Milestone, options: Optional[HistoryOptions] = None) -> ChangeHistoryEntry:
    options = (options or HistoryOptions()).with_context(milestone_name=milestone.milestone_name)
    return create_change_entry(
        EntityType.MILESTONE, milestone.milestone_id, ChangeType.REMOVE, milestone.copy(), None, options
    )


def log_task_move(
    task: Task,
    from_milestone_id: str,
    from_milestone_name: str,
    to_milestone_id: str,
    to_milestone_name: str,
    options: Optional[HistoryOptions] = None,
) -> ChangeHistoryEntry:
    options = (options or HistoryOptions()).with_context(
        milestone_id=from_milestone_id,
        target_milestone_id=to_milestone_id,
        task_name=task.name,
        milestone_name=from_milestone_name,
    )
    return create_change_entry(
        EntityType.TASK, task.task_id, ChangeType.TASK_MOVE, from_milestone_name, to_milestone_name, options
    )
