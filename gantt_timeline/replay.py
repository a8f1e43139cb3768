"""Rebuild milestone state from the change ledger and roll back to an entry."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Tuple

from loguru import logger

from .history import ChangeHistoryEntry, ChangeType, EntityType
from .models import Milestone, Task

# Single-field task edits: change type -> (Task attribute, value coercion).
_TASK_FIELDS: Dict[ChangeType, Tuple[str, Callable[[Any], Any]]] = {
    ChangeType.NAME: ("name", str),
    ChangeType.DESCRIPTION: ("description", str),
    ChangeType.DURATION: ("duration_days", int),
    ChangeType.TEAM: ("team", str),
    ChangeType.DEPENDENCY: ("depends_on", list),
}


@dataclass
class RollbackResult:
    milestones: List[Milestone]
    history: List[ChangeHistoryEntry] = field(default_factory=list)


def reconstruct_state_at_change(history: List[ChangeHistoryEntry], target_index: int) -> List[Milestone]:
    """Replay ``history[0..target_index]`` on top of an empty project."""
    if target_index >= len(history):
        raise IndexError(f"History index {target_index} out of range (length {len(history)})")
    state: List[Milestone] = []
    if target_index < 0:
        return state
    for entry in history[: target_index + 1]:
        state = apply_change_to_state(state, entry)
    return state


def rollback_to_change(history: List[ChangeHistoryEntry], target_index: int) -> RollbackResult:
    """Discard every entry after ``target_index`` and rebuild the state."""
    milestones = reconstruct_state_at_change(history, target_index)
    truncated = list(history[: max(target_index + 1, 0)])
    logger.info(
        "Rolled back history: kept={} discarded={}",
        len(truncated),
        len(history) - len(truncated),
    )
    return RollbackResult(milestones=milestones, history=truncated)


def apply_change_to_state(milestones: List[Milestone], entry: ChangeHistoryEntry) -> List[Milestone]:
    """Return the state after ``entry``; entries that cannot apply leave it unchanged."""
    change_type = entry.change_type
    is_task = entry.entity_type is EntityType.TASK
    context = entry.context

    if change_type is ChangeType.ADD:
        if entry.new_value is None:
            return milestones
        if not is_task:
            return [*milestones, entry.new_value.copy()]
        if context and context.milestone_id:
            return _append_task(milestones, context.milestone_id, entry.new_value.copy())
        return milestones

    if change_type is ChangeType.REMOVE:
        if not is_task:
            return [m for m in milestones if m.milestone_id != entry.entity_id]
        return [_without_task(m, entry.entity_id) for m in milestones]

    if change_type is ChangeType.MILESTONE_NAME:
        if is_task:
            return milestones
        return [
            replace(m, milestone_name=str(entry.new_value)) if m.milestone_id == entry.entity_id else m
            for m in milestones
        ]

    if change_type in _TASK_FIELDS:
        if not is_task:
            return milestones
        attribute, coerce = _TASK_FIELDS[change_type]
        value = coerce(entry.new_value)
        return [_update_task(m, entry.entity_id, **{attribute: value}) for m in milestones]

    if change_type is ChangeType.TASK_MOVE:
        if is_task and context and context.target_milestone_id:
            return _move_task(milestones, entry.entity_id, context.target_milestone_id)
        return milestones

    # TODO: give STATUS entries a replay effect once Task carries a status field.
    logger.debug("Skipping {} entry {} during replay", change_type.value, entry.entry_id)
    return milestones


def _append_task(milestones: List[Milestone], milestone_id: str, task: Task) -> List[Milestone]:
    return [
        replace(m, tasks=[*m.tasks, task]) if m.milestone_id == milestone_id else m
        for m in milestones
    ]


def _without_task(milestone: Milestone, task_id: str) -> Milestone:
    if milestone.find_task(task_id) is None:
        return milestone
    return replace(milestone, tasks=[t for t in milestone.tasks if t.task_id != task_id])


def _update_task(milestone: Milestone, task_id: str, **changes: Any) -> Milestone:
    if milestone.find_task(task_id) is None:
        return milestone
    return replace(
        milestone,
        tasks=[replace(t, **changes) if t.task_id == task_id else t for t in milestone.tasks],
    )


def _move_task(milestones: List[Milestone], task_id: str, target_id: str) -> List[Milestone]:
    moving = None
    remaining = []
    for milestone in milestones:
        task = milestone.find_task(task_id)
        if task is not None and moving is None:
            moving = task
        remaining.append(_without_task(milestone, task_id))
    if moving is None:
        return milestones
    return _append_task(remaining, target_id, moving)
