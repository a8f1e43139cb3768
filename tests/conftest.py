import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtWidgets import QApplication  # noqa: E402

from gantt_timeline.models import Milestone, Task  # noqa: E402


@pytest.fixture(scope="session")
def qapp():
    """Provide a shared QApplication for tests that paint with Qt."""
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def design_milestones():
    """Two milestones whose tasks are chained within each milestone."""
    return [
        Milestone(
            milestone_id="M1",
            milestone_name="UI Design",
            tasks=[
                Task(task_id="T1", name="Wireframes", description="Low fidelity", team="UX", duration_days=4),
                Task(task_id="T2", name="Mockups", team="UI", duration_days=5, depends_on=["T1"]),
            ],
        ),
        Milestone(
            milestone_id="M2",
            milestone_name="Build",
            tasks=[
                Task(task_id="T3", name="API", team="Backend", duration_days=3),
                Task(task_id="T4", name="Frontend", team="Frontend", duration_days=2, depends_on=["T3"]),
            ],
        ),
    ]
