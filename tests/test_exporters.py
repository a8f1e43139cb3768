from datetime import date
from pathlib import Path
import csv

import pytest

from gantt_timeline.exporters import (
    CSV_HEADERS,
    TEAM_COLORS,
    export_as_csv,
    export_as_markdown,
    export_as_pdf,
    team_color,
)
from gantt_timeline.scheduler import compute_schedule


@pytest.fixture
def scheduled(design_milestones):
    return compute_schedule(design_milestones, date(2024, 1, 1))


def test_export_csv_marks_active_weekdays(tmp_path: Path, scheduled) -> None:
    path = tmp_path / "export.csv"

    export_as_csv(path, scheduled)

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))

    assert rows[0][:5] == CSV_HEADERS
    assert rows[0][5] == "2024-01-01"
    assert rows[0][-1] == "2024-01-18"
    assert len(rows) == 5

    assert rows[1][:5] == ["UI Design", "Wireframes", "UX", "2024-01-01", "2024-01-04"]
    assert rows[1][5:10] == ["X", "X", "X", "X", ""]

    assert rows[3][:5] == ["Build", "API", "Backend", "2024-01-12", "2024-01-16"]
    assert rows[3][5 + 11:5 + 16] == ["X", "", "", "X", "X"]


def test_export_csv_handles_unscheduled_tasks(tmp_path: Path, design_milestones) -> None:
    path = tmp_path / "draft.csv"

    export_as_csv(path, design_milestones)

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))

    assert rows[0] == CSV_HEADERS
    assert rows[1] == ["UI Design", "Wireframes", "UX", "", ""]


def test_export_markdown(scheduled) -> None:
    text = export_as_markdown(scheduled, "Website")

    lines = text.splitlines()
    assert lines[0] == "# Website"
    assert "## UI Design" in lines
    assert "- **Dates:** 2024-01-01 → 2024-01-11" in lines
    assert "- **Tasks:** 2" in lines
    assert "### Wireframes" in lines
    assert "Low fidelity" in lines
    assert "- **Duration:** 5 days" in lines
    assert "- **Team:** Backend" in lines
    assert "- **Depends on:** T2" in lines
    assert text.endswith("\n")
    assert not text.endswith("\n\n")


def test_export_markdown_sections_can_be_omitted(design_milestones) -> None:
    milestones_only = export_as_markdown(design_milestones, "Website", include_tasks=False)
    tasks_only = export_as_markdown(design_milestones, "Website", include_milestones=False)

    assert "### Wireframes" not in milestones_only
    assert "## Build" in milestones_only
    assert "## Build" not in tasks_only
    assert "### Frontend" in tasks_only
    with pytest.raises(ValueError):
        export_as_markdown(design_milestones, "Website", include_milestones=False, include_tasks=False)


def test_team_colors() -> None:
    assert team_color("UX") == TEAM_COLORS["UX"]
    assert team_color("Unknown team") == TEAM_COLORS["Default"]


def test_export_pdf_writes_file(tmp_path: Path, qapp, scheduled) -> None:
    path = tmp_path / "chart.pdf"

    export_as_pdf(path, scheduled)

    assert path.exists()
    assert path.read_bytes().startswith(b"%PDF")


def test_export_pdf_without_milestones(tmp_path: Path, qapp) -> None:
    path = tmp_path / "nested" / "empty.pdf"

    export_as_pdf(path, [], include_dates=False)

    assert path.stat().st_size > 0
