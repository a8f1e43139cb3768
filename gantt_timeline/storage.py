"""Project persistence plus JSON/CSV milestone import helpers."""
from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from loguru import logger

from .business_days import format_iso_date, parse_iso_date
from .history import ChangeHistoryEntry, entry_from_dict
from .ids import now_millis, random_token
from .models import Milestone, Task, milestones_from_dicts, milestones_to_dicts

CSV_HEADER = [
    "milestoneId",
    "milestoneName",
    "taskId",
    "taskName",
    "taskDescription",
    "team",
    "sprint",
    "durationDays",
    "dependsOn",
]
_DEPENDENCY_SEPARATOR = "|"


class ProjectNotFoundError(KeyError):
    """Raised by a project store when no project has the requested ID."""


@dataclass
class Project:
    """A named timeline with its schedule start date and change ledger."""

    project_id: str
    name: str
    project_start_date: date
    milestones: List[Milestone] = field(default_factory=list)
    history: List[ChangeHistoryEntry] = field(default_factory=list)
    expanded_milestones: List[str] = field(default_factory=list)
    created_at: int = 0
    last_modified: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.project_id,
            "name": self.name,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
            "timelineData": {
                "projectStartDate": format_iso_date(self.project_start_date),
                "milestones": milestones_to_dicts(self.milestones),
                "expandedMilestones": list(self.expanded_milestones),
                "changeHistory": [entry.to_dict() for entry in self.history],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        if not isinstance(data, dict) or not isinstance(data.get("timelineData"), dict):
            raise ValueError("Invalid project document: missing timelineData")
        timeline = data["timelineData"]
        milestones = timeline.get("milestones") or []
        history = timeline.get("changeHistory") or []
        if not isinstance(milestones, list) or not isinstance(history, list):
            raise ValueError("Invalid project document: milestones and changeHistory must be lists")
        start = timeline.get("projectStartDate")
        if not start:
            raise ValueError("Invalid project document: missing projectStartDate")
        return cls(
            project_id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            # Older documents stored a full ISO timestamp here.
            project_start_date=parse_iso_date(str(start)[:10]),
            milestones=milestones_from_dicts(milestones),
            history=[entry_from_dict(entry) for entry in history],
            expanded_milestones=[str(m) for m in timeline.get("expandedMilestones") or []],
            created_at=int(data.get("createdAt", 0)),
            last_modified=int(data.get("lastModified", 0)),
        )


def generate_project_id() -> str:
    return f"project_{now_millis()}_{random_token(9)}"


def create_project(name: str, project_start_date: date, milestones: Iterable[Milestone] = ()) -> Project:
    now = now_millis()
    return Project(
        project_id=generate_project_id(),
        name=name,
        project_start_date=project_start_date,
        milestones=list(milestones),
        created_at=now,
        last_modified=now,
    )


class ProjectStore(Protocol):
    """Persistence port used by callers that keep projects between runs."""

    def load(self, project_id: str) -> Project: ...

    def save(self, project: Project) -> Project: ...

    def list(self) -> List[Project]: ...

    def delete(self, project_id: str) -> bool: ...


class FileProjectStore:
    """One JSON document per project inside ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, project_id: str) -> Path:
        if not project_id or "/" in project_id or "\\" in project_id or project_id.startswith("."):
            raise ValueError(f"Invalid project id {project_id!r}")
        return self.root / f"{project_id}.json"

    def load(self, project_id: str) -> Project:
        path = self._path(project_id)
        if not path.exists():
            raise ProjectNotFoundError(project_id)
        with path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path.name}: JSONDecodeError: {exc}") from exc
        return Project.from_dict(data)

    def save(self, project: Project) -> Project:
        """Write ``project`` and return it with a refreshed ``last_modified``."""
        saved = replace(project, last_modified=now_millis())
        path = self._path(saved.project_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(saved.to_dict(), handle, indent=2)
        tmp_path.replace(path)
        logger.info("Saved project {} to {}", saved.project_id, path)
        return saved

    def list(self) -> List[Project]:
        """Return every readable project, most recently modified first."""
        if not self.root.exists():
            return []
        projects = []
        for path in sorted(self.root.glob("*.json")):
            try:
                projects.append(self.load(path.stem))
            except ValueError as exc:
                logger.warning("Skipping unreadable project file {}: {}", path.name, exc)
        return sorted(projects, key=lambda project: project.last_modified, reverse=True)

    def delete(self, project_id: str) -> bool:
        path = self._path(project_id)
        if not path.exists():
            logger.warning("Project {} not found", project_id)
            return False
        path.unlink()
        logger.info("Deleted project {}", project_id)
        return True


def save_milestones_json(path: Path | str, milestones: Iterable[Milestone]) -> None:
    json_path = Path(path)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with json_path.open("w", encoding="utf-8") as handle:
        json.dump(milestones_to_dicts(list(milestones)), handle, indent=2)


def load_milestones_json(path: Path | str) -> List[Milestone]:
    json_path = Path(path)
    with json_path.open("r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {json_path.name}: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError("The JSON file must contain an array of milestones")
    return milestones_from_dicts(data)


def save_milestones_csv(path: Path | str, milestones: Iterable[Milestone]) -> None:
    """Persist milestones in the flat one-row-per-task CSV format."""
    csv_path = Path(path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    with csv_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(CSV_HEADER)
        for milestone in milestones:
            for task in milestone.tasks:
                writer.writerow([
                    milestone.milestone_id,
                    milestone.milestone_name,
                    task.task_id,
                    task.name,
                    task.description,
                    task.team,
                    task.sprint or "",
                    task.duration_days,
                    _DEPENDENCY_SEPARATOR.join(task.depends_on),
                ])


def load_milestones_csv(path: Path | str) -> List[Milestone]:
    """Load milestones from the flat CSV format, grouping rows by milestone."""
    csv_path = Path(path)
    with csv_path.open("r", newline="", encoding="utf-8") as handle:
        reader = csv.reader(handle)
        header = next(reader, None)
        if header is None or [column.strip() for column in header] != CSV_HEADER:
            raise ValueError("CSV header does not match expected format")

        milestones: Dict[str, Milestone] = {}
        for line_number, row in enumerate(reader, start=2):
            if not any(cell.strip() for cell in row):
                continue
            if len(row) != len(CSV_HEADER):
                logger.warning("Skipping CSV line {}: expected {} columns, got {}", line_number, len(CSV_HEADER), len(row))
                continue
            milestone_id, milestone_name, task_id, name, description, team, sprint, duration, depends = row
            milestone = milestones.setdefault(
                milestone_id, Milestone(milestone_id=milestone_id, milestone_name=milestone_name)
            )
            milestone.tasks.append(
                Task(
                    task_id=task_id,
                    name=name,
                    description=description,
                    team=team,
                    sprint=sprint or None,
                    duration_days=_parse_duration(duration, line_number),
                    depends_on=_parse_dependencies(depends),
                )
            )

        return list(milestones.values())


def import_milestones(path: Path | str) -> List[Milestone]:
    """Load a ``.json`` or ``.csv`` milestone file."""
    suffix = Path(path).suffix.lower()
    if suffix == ".json":
        return load_milestones_json(path)
    if suffix == ".csv":
        return load_milestones_csv(path)
    raise ValueError("Unsupported file format. Use .json or .csv")


def _parse_duration(value: str, line_number: int) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid durationDays {value!r} on CSV line {line_number}") from exc


def _parse_dependencies(value: Optional[str]) -> List[str]:
    text = value.strip() if value is not None else ""
    if not text:
        return []
    return [dep.strip() for dep in text.split(_DEPENDENCY_SEPARATOR) if dep.strip()]
