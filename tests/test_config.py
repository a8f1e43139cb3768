from datetime import date
from pathlib import Path

import pytest

from gantt_timeline.config import ENV_LOG_LEVEL, ENV_STORAGE_DIR, TimelineSettings, load_settings


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "absent.yaml", environ={})

    assert settings == TimelineSettings()
    assert settings.auto_sequence_milestones is True
    assert settings.preserve_manual_dates is False
    assert settings.log_level == "INFO"


def test_empty_file_is_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_settings(path, environ={}) == TimelineSettings()


def test_load_settings_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "gantt-timeline.yaml"
    path.write_text(
        "project_start_date: 2024-01-01\n"
        "preserve_manual_dates: true\n"
        "auto_sequence_milestones: false\n"
        f"storage_dir: {tmp_path / 'store'}\n"
        "log_level: debug\n"
        "user: sam\n"
    )

    settings = load_settings(path, environ={})

    assert settings.project_start_date == date(2024, 1, 1)
    assert settings.preserve_manual_dates is True
    assert settings.auto_sequence_milestones is False
    assert settings.storage_dir == tmp_path / "store"
    assert settings.log_level == "DEBUG"
    assert settings.user == "sam"


def test_quoted_start_date_is_parsed(tmp_path: Path) -> None:
    path = tmp_path / "quoted.yaml"
    path.write_text('project_start_date: "2024-02-05"\n')

    assert load_settings(path, environ={}).project_start_date == date(2024, 2, 5)


def test_environment_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("log_level: ERROR\nstorage_dir: /somewhere\n")

    settings = load_settings(path, environ={ENV_LOG_LEVEL: "warning", ENV_STORAGE_DIR: str(tmp_path)})

    assert settings.log_level == "WARNING"
    assert settings.storage_dir == tmp_path


@pytest.mark.parametrize(
    "content, message",
    [
        ("- a\n- b\n", "expected mapping"),
        ("colour: red\n", "Unknown setting"),
        ("preserve_manual_dates: maybe\n", "true or false"),
        ("log_level: LOUD\n", "Invalid log level"),
        ("project_start_date: soon\n", "YYYY-MM-DD"),
        ("key: [unclosed\n", "YAMLError"),
    ],
)
def test_invalid_settings(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ValueError, match=message):
        load_settings(path, environ={})
