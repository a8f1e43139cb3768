from gantt_timeline.history import ChangeType, HistoryOptions
from gantt_timeline.milestones import (
    add_milestone_with_tracking,
    create_new_milestone,
    generate_unique_milestone_id,
    remove_milestone_with_tracking,
    rename_milestone_with_tracking,
    validate_milestone,
)
from gantt_timeline.models import Milestone


def test_create_new_milestone(design_milestones) -> None:
    milestone = create_new_milestone("  Launch  ", design_milestones)

    assert milestone.milestone_name == "Launch"
    assert milestone.milestone_id.startswith("M")
    assert milestone.milestone_id not in {"M1", "M2"}
    assert milestone.tasks == []
    assert milestone.start_date is None


def test_generate_unique_milestone_id_format(design_milestones) -> None:
    prefix, token = generate_unique_milestone_id(design_milestones).split("_")

    assert prefix[1:].isdigit()
    assert len(token) == 4


def test_validate_milestone_names(design_milestones) -> None:
    assert validate_milestone("Launch", design_milestones).is_valid
    assert validate_milestone("   ", design_milestones).errors == ["Milestone name is required"]
    assert validate_milestone(" build ", design_milestones).errors == ['Milestone name "build" already exists']
    assert validate_milestone("Build", design_milestones, exclude_milestone_id="M2").is_valid


def test_add_milestone_with_tracking(design_milestones) -> None:
    milestone = Milestone(milestone_id="M3", milestone_name="Launch")

    result = add_milestone_with_tracking(design_milestones, milestone, HistoryOptions(user="sam"))

    assert [m.milestone_id for m in result.milestones] == ["M1", "M2", "M3"]
    [entry] = result.changes
    assert entry.change_type is ChangeType.ADD
    assert entry.new_value == milestone
    assert entry.context.milestone_name == "Launch"
    assert len(design_milestones) == 2


def test_add_existing_milestone_is_noop(design_milestones) -> None:
    result = add_milestone_with_tracking(design_milestones, Milestone(milestone_id="M1", milestone_name="Again"))

    assert result.milestones is design_milestones
    assert result.changes == []


def test_remove_milestone_with_tracking(design_milestones) -> None:
    result = remove_milestone_with_tracking(design_milestones, "M1")

    assert [m.milestone_id for m in result.milestones] == ["M2"]
    [entry] = result.changes
    assert entry.change_type is ChangeType.REMOVE
    assert [t.task_id for t in entry.old_value.tasks] == ["T1", "T2"]
    assert remove_milestone_with_tracking(design_milestones, "M9").changes == []


def test_rename_milestone_with_tracking(design_milestones) -> None:
    result = rename_milestone_with_tracking(design_milestones, "M2", " Ship ")

    assert result.milestones[1].milestone_name == "Ship"
    [entry] = result.changes
    assert entry.change_type is ChangeType.MILESTONE_NAME
    assert (entry.old_value, entry.new_value) == ("Build", "Ship")
    assert design_milestones[1].milestone_name == "Build"


def test_rename_to_same_name_logs_nothing(design_milestones) -> None:
    result = rename_milestone_with_tracking(design_milestones, "M2", "Build")

    assert result.changes == []
    assert rename_milestone_with_tracking(design_milestones, "M9", "x").milestones is design_milestones
