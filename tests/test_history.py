from datetime import datetime

import pytest

from gantt_timeline.history import (
    ChangeContext,
    ChangeHistoryEntry,
    ChangeType,
    EntityType,
    HistoryOptions,
    create_change_entry,
    detect_milestone_changes,
    detect_task_changes,
    entry_from_dict,
    generate_change_description,
    get_entity_display_name,
    get_filtered_history,
    group_history_by_date,
    log_change,
    log_milestone_addition,
    log_task_addition,
    log_task_move,
    log_task_removal,
    with_change_tracking,
)
from gantt_timeline.models import Milestone, Task


def _entry(change_type, old=None, new=None, entity_type=EntityType.TASK, context=None, timestamp=0):
    return ChangeHistoryEntry(
        entry_id="CH1_abcdef",
        timestamp=timestamp,
        entity_type=entity_type,
        entity_id="T1",
        change_type=change_type,
        old_value=old,
        new_value=new,
        context=context,
    )


def _millis(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


def test_create_change_entry_stamps_id_and_options() -> None:
    options = HistoryOptions(user="sam", context=ChangeContext(milestone_id="M1"))

    entry = create_change_entry(EntityType.TASK, "T1", ChangeType.TEAM, "UX", "UI", options)

    assert entry.entry_id.startswith("CH")
    assert len(entry.entry_id.split("_")[1]) == 6
    assert entry.timestamp > 0
    assert entry.user == "sam"
    assert entry.context.milestone_id == "M1"


def test_log_change_returns_new_list() -> None:
    history = []

    updated = log_change(history, EntityType.TASK, "T1", ChangeType.DURATION, 3, 5)

    assert history == []
    assert len(updated) == 1
    assert updated[0].old_value == 3
    assert updated[0].new_value == 5


@pytest.mark.parametrize(
    "entry, expected",
    [
        (
            _entry(ChangeType.ADD, new=Task(task_id="T1", name="Wireframes"), context=ChangeContext(task_name="Wireframes")),
            'Added task "Wireframes"',
        ),
        (
            _entry(ChangeType.REMOVE, entity_type=EntityType.MILESTONE, context=ChangeContext(milestone_name="Build")),
            'Removed milestone "Build"',
        ),
        (_entry(ChangeType.ADD), 'Added task "task T1"'),
        (_entry(ChangeType.NAME, "Old", "New"), 'Task "Old" renamed to "New"'),
        (
            _entry(ChangeType.MILESTONE_NAME, "Alpha", "Beta", entity_type=EntityType.MILESTONE),
            'Milestone "Alpha" renamed to "Beta"',
        ),
        (
            _entry(ChangeType.DURATION, 3, 5, context=ChangeContext(task_name="API")),
            'Task "API" duration changed from 3 to 5 days',
        ),
        (
            _entry(ChangeType.TEAM, "UX", "UI", context=ChangeContext(task_name="API")),
            'Task "API" team changed from "UX" to "UI"',
        ),
        (
            _entry(ChangeType.DEPENDENCY, ["T2"], ["T2", "T3", "T4"], context=ChangeContext(task_name="API")),
            'Task "API" added 2 dependency(ies)',
        ),
        (
            _entry(ChangeType.DEPENDENCY, ["T2", "T3"], [], context=ChangeContext(task_name="API")),
            'Task "API" removed 2 dependency(ies)',
        ),
        (
            _entry(ChangeType.DEPENDENCY, ["T2"], ["T3"], context=ChangeContext(task_name="API")),
            'Task "API" dependencies modified',
        ),
        (
            _entry(
                ChangeType.TASK_MOVE,
                "UI Design",
                "Build",
                context=ChangeContext(task_name="API", milestone_name="UI Design"),
            ),
            'Task "API" moved from "UI Design" to "Build"',
        ),
        (_entry(ChangeType.TASK_MOVE, context=ChangeContext(task_name="API")),
         'Task "API" moved from "unknown milestone" to "unknown milestone"'),
        (
            _entry(ChangeType.STATUS, "todo", "done", context=ChangeContext(task_name="API")),
            'Task "API" status changed from "todo" to "done"',
        ),
    ],
)
def test_generate_change_description(entry, expected) -> None:
    assert generate_change_description(entry) == expected


def test_description_change_is_truncated() -> None:
    entry = _entry(
        ChangeType.DESCRIPTION,
        "",
        "A very long description that keeps going past thirty characters",
        context=ChangeContext(task_name="API"),
    )

    assert generate_change_description(entry) == (
        'Task "API" description changed from empty to "A very long description that k..."'
    )


def test_detect_task_changes_reports_each_field() -> None:
    old = Task(task_id="T1", name="Old", team="UX", duration_days=3, depends_on=["T2", "T3"])
    new = Task(task_id="T1", name="New", team="UX", duration_days=4, depends_on=["T3", "T2"])

    changes = detect_task_changes(old, new, "M1", HistoryOptions(user="sam"))

    assert [change.change_type for change in changes] == [ChangeType.NAME, ChangeType.DURATION]
    assert all(change.context.milestone_id == "M1" for change in changes)
    assert all(change.context.task_name == "New" for change in changes)
    assert all(change.user == "sam" for change in changes)


def test_detect_task_changes_dependency_values_are_lists() -> None:
    old = Task(task_id="T1", name="API", depends_on=["T2"])
    new = Task(task_id="T1", name="API", depends_on=["T2", "T3"])

    [change] = detect_task_changes(old, new, "M1")

    assert change.change_type is ChangeType.DEPENDENCY
    assert change.old_value == ["T2"]
    assert change.new_value == ["T2", "T3"]


def test_detect_milestone_changes() -> None:
    old = Milestone(milestone_id="M1", milestone_name="Alpha")

    assert detect_milestone_changes(old, old.copy()) == []
    [change] = detect_milestone_changes(old, Milestone(milestone_id="M1", milestone_name="Beta"))
    assert change.change_type is ChangeType.MILESTONE_NAME
    assert (change.old_value, change.new_value) == ("Alpha", "Beta")


def test_structural_log_helpers_copy_values(design_milestones) -> None:
    task = design_milestones[0].tasks[0]

    added = log_task_addition(task, "M1", "UI Design")
    removed = log_task_removal(task, "M1", "UI Design")
    task.name = "Changed"

    assert added.new_value.name == "Wireframes"
    assert added.old_value is None
    assert removed.old_value.name == "Wireframes"
    assert removed.context.milestone_id == "M1"

    milestone_entry = log_milestone_addition(design_milestones[1])
    design_milestones[1].tasks.clear()
    assert len(milestone_entry.new_value.tasks) == 2


def test_log_task_move_records_both_milestones(design_milestones) -> None:
    entry = log_task_move(design_milestones[0].tasks[0], "M1", "UI Design", "M2", "Build")

    assert (entry.old_value, entry.new_value) == ("UI Design", "Build")
    assert entry.context.milestone_id == "M1"
    assert entry.context.target_milestone_id == "M2"
    assert generate_change_description(entry) == 'Task "Wireframes" moved from "UI Design" to "Build"'


def test_filtered_history() -> None:
    history = [
        _entry(ChangeType.NAME, "a", "b"),
        _entry(ChangeType.TEAM, "a", "b"),
        _entry(ChangeType.MILESTONE_NAME, "a", "b", entity_type=EntityType.MILESTONE),
    ]

    assert get_filtered_history(history) == history
    assert get_filtered_history(history, entity_type=EntityType.MILESTONE) == history[2:]
    assert get_filtered_history(history, change_type=ChangeType.TEAM) == history[1:2]
    assert get_filtered_history(history, entity_id="T9") == []


def test_group_history_by_date() -> None:
    history = [
        _entry(ChangeType.NAME, timestamp=_millis(2024, 1, 1, 9)),
        _entry(ChangeType.TEAM, timestamp=_millis(2024, 1, 1, 17)),
        _entry(ChangeType.DURATION, timestamp=_millis(2024, 1, 2, 9)),
    ]

    groups = group_history_by_date(history)

    assert list(groups) == ["Mon Jan 01 2024", "Tue Jan 02 2024"]
    assert len(groups["Mon Jan 01 2024"]) == 2


def test_entity_display_name(design_milestones) -> None:
    assert get_entity_display_name(EntityType.TASK, "T2", design_milestones) == "Mockups"
    assert get_entity_display_name(EntityType.MILESTONE, "M2", design_milestones) == "Build"
    assert get_entity_display_name(EntityType.TASK, "T9", design_milestones) == "T9"


def test_entry_dict_round_trip(design_milestones) -> None:
    entries = [
        log_task_addition(design_milestones[0].tasks[1], "M1", "UI Design", HistoryOptions(user="sam")),
        log_milestone_addition(design_milestones[1]),
        _entry(ChangeType.DEPENDENCY, ["T1"], []),
        _entry(ChangeType.DURATION, 2, 4),
    ]

    for entry in entries:
        assert entry_from_dict(entry.to_dict()) == entry


def test_entry_to_dict_shape() -> None:
    data = _entry(ChangeType.TEAM, "UX", "UI", context=ChangeContext(milestone_id="M1")).to_dict()

    assert data == {
        "entryId": "CH1_abcdef",
        "timestamp": 0,
        "entityType": "task",
        "entityId": "T1",
        "changeType": "team",
        "oldValue": "UX",
        "newValue": "UI",
        "context": {"milestoneId": "M1"},
    }


def test_entry_from_dict_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        entry_from_dict({"entityType": "task"})
    with pytest.raises(ValueError):
        entry_from_dict(
            {"entryId": "x", "timestamp": 1, "entityType": "robot", "entityId": "T1", "changeType": "add"}
        )


def test_with_change_tracking(design_milestones) -> None:
    def rename(milestones, milestone_id, name):
        updated = [m.copy() for m in milestones]
        for milestone in updated:
            if milestone.milestone_id == milestone_id:
                milestone.milestone_name = name
        return updated

    def detect(old, new, milestone_id, name):
        changes = []
        for before, after in zip(old, new):
            changes.extend(detect_milestone_changes(before, after))
        return changes

    tracked = with_change_tracking(rename, detect)
    milestones, history = tracked(design_milestones, [], "M2", "Ship")

    assert milestones[1].milestone_name == "Ship"
    assert design_milestones[1].milestone_name == "Build"
    assert [entry.change_type for entry in history] == [ChangeType.MILESTONE_NAME]
