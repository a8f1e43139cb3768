"""Milestone creation, validation and change-tracked edits."""
from __future__ import annotations

from dataclasses import replace
from typing import List, Optional

from loguru import logger

from .history import (
    HistoryOptions,
    detect_milestone_changes,
    log_milestone_addition,
    log_milestone_removal,
)
from .ids import generate_unique_id
from .models import Milestone, TaskOperationResult, ValidationResult, find_milestone


def generate_unique_milestone_id(milestones: List[Milestone]) -> str:
    return generate_unique_id("M", {milestone.milestone_id for milestone in milestones})


def create_new_milestone(milestone_name: str, milestones: List[Milestone]) -> Milestone:
    """Build an empty milestone; dates appear once it has scheduled tasks."""
    return Milestone(
        milestone_id=generate_unique_milestone_id(milestones),
        milestone_name=milestone_name.strip(),
    )


def validate_milestone(
    milestone_name: str,
    milestones: List[Milestone],
    exclude_milestone_id: Optional[str] = None,
) -> ValidationResult:
    """Require a name that no other milestone uses (case-insensitive)."""
    errors = []
    trimmed = (milestone_name or "").strip()
    if not trimmed:
        errors.append("Milestone name is required")
    duplicate = any(
        m.milestone_id != exclude_milestone_id and m.milestone_name.lower() == trimmed.lower()
        for m in milestones
    )
    if trimmed and duplicate:
        errors.append(f'Milestone name "{trimmed}" already exists')
    return ValidationResult(is_valid=not errors, errors=errors)


def add_milestone_with_tracking(
    milestones: List[Milestone],
    milestone: Milestone,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    if find_milestone(milestones, milestone.milestone_id) is not None:
        logger.debug("add_milestone: {} already present", milestone.milestone_id)
        return TaskOperationResult(milestones, [])
    entry = log_milestone_addition(milestone, options)
    return TaskOperationResult([*milestones, milestone], [entry])


def remove_milestone_with_tracking(
    milestones: List[Milestone],
    milestone_id: str,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    milestone = find_milestone(milestones, milestone_id)
    if milestone is None:
        logger.debug("remove_milestone: {} not found", milestone_id)
        return TaskOperationResult(milestones, [])
    remaining = [m for m in milestones if m.milestone_id != milestone_id]
    return TaskOperationResult(remaining, [log_milestone_removal(milestone, options)])


def rename_milestone_with_tracking(
    milestones: List[Milestone],
    milestone_id: str,
    new_name: str,
    options: Optional[HistoryOptions] = None,
) -> TaskOperationResult:
    milestone = find_milestone(milestones, milestone_id)
    if milestone is None:
        logger.debug("rename_milestone: {} not found", milestone_id)
        return TaskOperationResult(milestones, [])
    renamed = replace(milestone, milestone_name=new_name.strip())
    new_milestones = [renamed if m.milestone_id == milestone_id else m for m in milestones]
    return TaskOperationResult(new_milestones, detect_milestone_changes(milestone, renamed, options))
