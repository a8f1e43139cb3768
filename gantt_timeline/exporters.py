"""Export helpers for CSV, Markdown and PDF."""
from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, List, Optional

from PyQt6.QtCore import Qt, QRectF
from PyQt6.QtGui import QColor, QFont, QPageLayout, QPageSize, QPainter, QPen, QPdfWriter

from .business_days import is_weekend, parse_iso_date
from .models import Milestone
from .scheduler import project_date_range

CSV_HEADERS = ["Milestone", "Task", "Team", "Start", "End"]
CSV_ACTIVE_MARKER = "X"

TEAM_COLORS = {
    "Analysis": "#3b82f6",
    "Development": "#f59e0b",
    "Documentation": "#8b5cf6",
    "Automation": "#10b981",
    "QA": "#ef4444",
    "Infrastructure": "#6366f1",
    "UX": "#3b82f6",
    "UI": "#8b5cf6",
    "PM": "#10b981",
    "Dev": "#f59e0b",
    "Backend": "#6366f1",
    "Frontend": "#06b6d4",
    "Design": "#ec4899",
    "Marketing": "#84cc16",
    "Default": "#6b7280",
}

PDF_LABEL_MIN_WIDTH = 160
PDF_LABEL_MAX_WIDTH_RATIO = 0.35  # fraction of available width
PDF_LABEL_PADDING = 48
PDF_START_END_WIDTH = 150
PDF_TIMELINE_MIN_COL_WIDTH = 6
PDF_PAGE_MARGIN_RATIO = 0.04
PDF_HEADER_HEIGHT = 40
PDF_ROW_HEIGHT_MIN = 24
PDF_ROW_HEIGHT_MAX = 48
PDF_FONT_SIZE = 8
PDF_ROW_TEXT_BOTTOM_PADDING = 4
PDF_MILESTONE_COLOR = QColor("#37474f")
PDF_WEEKEND_COLOR = QColor("#f5f5f5")


def team_color(team: str) -> str:
    return TEAM_COLORS.get(team, TEAM_COLORS["Default"])


def _timeline_days(milestones: List[Milestone]) -> List[date]:
    span = project_date_range(milestones)
    if span is None:
        return []
    start, end = span
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def export_as_csv(path: Path | str, milestones: Iterable[Milestone]) -> None:
    """Export a rich CSV with one column per calendar day of the project."""
    csv_path = Path(path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    milestone_list = list(milestones)
    days = _timeline_days(milestone_list)

    header = CSV_HEADERS + [day.isoformat() for day in days]
    with csv_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(header)
        for milestone in milestone_list:
            for task in milestone.tasks:
                row = [milestone.milestone_name, task.name, task.team, task.start_date or "", task.end_date or ""]
                markers = []
                start = parse_iso_date(task.start_date) if task.start_date else None
                end = parse_iso_date(task.end_date) if task.end_date else None
                for day in days:
                    active = start is not None and end is not None and start <= day <= end
                    markers.append(CSV_ACTIVE_MARKER if active and not is_weekend(day) else "")
                writer.writerow(row + markers)


def export_as_markdown(
    milestones: Iterable[Milestone],
    project_name: str,
    include_milestones: bool = True,
    include_tasks: bool = True,
) -> str:
    """Render the project as a Markdown outline.

    Milestones become ``##`` sections and tasks ``###`` subsections.
    """
    if not include_milestones and not include_tasks:
        raise ValueError("Select at least one content type to export")

    lines = [f"# {project_name}", ""]
    for milestone in milestones:
        if include_milestones:
            lines.append(f"## {milestone.milestone_name}")
            lines.append("")
            if milestone.start_date and milestone.end_date:
                lines.append(f"- **Dates:** {milestone.start_date} → {milestone.end_date}")
            lines.append(f"- **Tasks:** {len(milestone.tasks)}")
            lines.append("")
        if not include_tasks:
            continue
        for task in milestone.tasks:
            lines.append(f"### {task.name}")
            lines.append("")
            if task.description:
                lines.append(task.description)
                lines.append("")
            lines.append(f"- **Duration:** {task.duration_days} days")
            if task.team:
                lines.append(f"- **Team:** {task.team}")
            if task.sprint:
                lines.append(f"- **Sprint:** {task.sprint}")
            if task.start_date and task.end_date:
                lines.append(f"- **Dates:** {task.start_date} → {task.end_date}")
            if task.depends_on:
                lines.append(f"- **Depends on:** {', '.join(task.depends_on)}")
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


@dataclass
class _ChartRow:
    label: str
    start: Optional[date]
    end: Optional[date]
    color: QColor
    milestone: bool = False


def _chart_rows(milestones: List[Milestone]) -> List[_ChartRow]:
    rows = []
    for milestone in milestones:
        rows.append(
            _ChartRow(
                label=milestone.milestone_name,
                start=parse_iso_date(milestone.start_date) if milestone.start_date else None,
                end=parse_iso_date(milestone.end_date) if milestone.end_date else None,
                color=PDF_MILESTONE_COLOR,
                milestone=True,
            )
        )
        for task in milestone.tasks:
            rows.append(
                _ChartRow(
                    label=f"    {task.name}",
                    start=parse_iso_date(task.start_date) if task.start_date else None,
                    end=parse_iso_date(task.end_date) if task.end_date else None,
                    color=QColor(team_color(task.team)),
                )
            )
    return rows


def export_as_pdf(path: Path | str, milestones: Iterable[Milestone], *, include_dates: bool = True) -> None:
    """Render the scheduled Gantt chart to a landscape PDF page."""
    pdf_path = Path(path)
    pdf_path.parent.mkdir(parents=True, exist_ok=True)

    writer = QPdfWriter(str(pdf_path))
    writer.setPageSize(QPageSize(QPageSize.PageSizeId.A4))
    writer.setPageOrientation(QPageLayout.Orientation.Landscape)
    writer.setResolution(300)

    milestone_list = list(milestones)
    painter = QPainter(writer)
    _draw_pdf_chart(painter, writer, _timeline_days(milestone_list), _chart_rows(milestone_list), include_dates)
    painter.end()


def _compute_text_columns(font_metrics, content_rect, rows: List[_ChartRow], include_dates: bool) -> List[tuple[str, int]]:
    """Figure out how wide the label/Start/End columns should be."""
    longest = max((font_metrics.horizontalAdvance(row.label) for row in rows), default=0)
    proportional_cap = int(content_rect.width() * PDF_LABEL_MAX_WIDTH_RATIO)
    name_width = max(PDF_LABEL_MIN_WIDTH, min(longest + PDF_LABEL_PADDING, proportional_cap))
    columns = [("Milestone / Task", name_width)]
    if include_dates:
        columns.extend([("Start", PDF_START_END_WIDTH), ("End", PDF_START_END_WIDTH)])
    return columns


def _compute_timeline_layout(content_rect, text_columns, day_count: int):
    """Decide where the day columns begin and how wide each day is."""
    text_total_width = sum(width for _, width in text_columns)
    remaining = max(1, content_rect.width() - text_total_width)
    day_count = max(1, day_count)
    col_width = max(PDF_TIMELINE_MIN_COL_WIDTH, remaining / day_count)
    return col_width, content_rect.left() + text_total_width


def _compute_row_height(content_rect, row_count: int):
    """Compute a bounded row height so all rows fit on the page."""
    available_height = max(PDF_ROW_HEIGHT_MIN, content_rect.height() - PDF_HEADER_HEIGHT)
    return max(PDF_ROW_HEIGHT_MIN, min(PDF_ROW_HEIGHT_MAX, int(available_height / max(1, row_count))))


def _draw_pdf_chart(
    painter: QPainter,
    writer: QPdfWriter,
    days: List[date],
    rows: List[_ChartRow],
    include_dates: bool,
) -> None:
    page_rect = writer.pageLayout().paintRectPixels(writer.resolution())
    margin = int(page_rect.width() * PDF_PAGE_MARGIN_RATIO)
    content_rect = page_rect.adjusted(margin, margin, -margin, -margin)

    painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
    font = QFont(painter.font())
    font.setPointSize(PDF_FONT_SIZE)
    painter.setFont(font)
    pen = QPen(QColor("#333333"))
    pen.setWidth(1)
    painter.setPen(pen)

    text_columns = _compute_text_columns(painter.fontMetrics(), content_rect, rows, include_dates)
    col_width, timeline_start_x = _compute_timeline_layout(content_rect, text_columns, len(days))
    row_height = _compute_row_height(content_rect, len(rows))
    header_y = content_rect.top()

    column_positions: List[float] = []
    cursor_x = content_rect.left()
    for _, width in text_columns:
        column_positions.append(cursor_x)
        cursor_x += width

    for (title, width), x in zip(text_columns, column_positions):
        rect = QRectF(x, header_y, width, PDF_HEADER_HEIGHT)
        painter.fillRect(rect, QColor("#eceff1"))
        painter.drawRect(rect)
        painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, title)

    for index, day in enumerate(days):
        rect = QRectF(timeline_start_x + index * col_width, header_y, col_width, PDF_HEADER_HEIGHT)
        painter.fillRect(rect, PDF_WEEKEND_COLOR if is_weekend(day) else QColor("#e8eaf6"))
        painter.drawRect(rect)
        if day.weekday() == 0:
            painter.drawText(rect.adjusted(0, 0, col_width * 4, 0), Qt.AlignmentFlag.AlignLeft, day.strftime("%d/%m"))

    current_y = header_y + PDF_HEADER_HEIGHT
    for row in rows:
        values = [row.label]
        if include_dates:
            values.extend([row.start.isoformat() if row.start else "", row.end.isoformat() if row.end else ""])
        row_font = QFont(font)
        row_font.setBold(row.milestone)
        painter.setFont(row_font)
        for (_title, width), x, value in zip(text_columns, column_positions, values):
            rect = QRectF(x, current_y, width, row_height)
            painter.drawRect(rect)
            first = x == column_positions[0]
            alignment = Qt.AlignmentFlag.AlignVCenter | (
                Qt.AlignmentFlag.AlignLeft if first else Qt.AlignmentFlag.AlignCenter
            )
            padding = 6 if first else 0
            painter.drawText(rect.adjusted(padding, 0, -padding, -PDF_ROW_TEXT_BOTTOM_PADDING), alignment, value)
        painter.setFont(font)

        for index, day in enumerate(days):
            rect = QRectF(timeline_start_x + index * col_width, current_y, col_width, row_height)
            if is_weekend(day):
                painter.fillRect(rect, PDF_WEEKEND_COLOR)
            if row.start is not None and row.end is not None and row.start <= day <= row.end:
                painter.fillRect(rect.adjusted(0, 3, 0, -3), row.color)
        current_y += row_height

    if not rows:
        rect = QRectF(content_rect.left(), current_y, content_rect.width(), row_height)
        painter.drawRect(rect)
        painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, "No milestones defined")
