from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from backup_monitor.config import SETTINGS_HEADER, Settings, dump_settings, load_settings, parse_settings, save_settings
from backup_monitor.errors import ConfigError

MINIMAL = """\
scripts:
- name: Backup
  backup-script: |
    #!/usr/bin/env bash
    set -o errexit
    /usr/bin/backup.sh
  interval: 1day
"""

FULL = """\
icon-name: backup
title: Backup
scripts:
- name: Backup
  icon-name: null
  backup-script: |
    #!/usr/bin/env bash
    set -o errexit
    /usr/bin/backup.sh
  backup-path: /mnt/backup
  interval: 1day
  reminder: 7days
  post-backup-actions:
    - label: Unmount backup HDD
      script: |
        #!/usr/bin/env bash
        set -o errexit
        umount /mnt/backup
  last-backup: 2024-10-24T20:18:00.857399073Z
autostart: true
"""


def test_parse_empty():
    settings = parse_settings("")

    assert settings == Settings()
    assert settings.title == "Backup"
    assert settings.scripts == []
    assert settings.tick_interval == timedelta(minutes=1)
    assert settings.retry_interval == timedelta(hours=1)
    assert settings.reminder_interval == timedelta(hours=4)


def test_parse_minimal():
    settings = parse_settings(MINIMAL)

    assert len(settings.scripts) == 1
    job = settings.scripts[0]
    assert job.name == "Backup"
    assert job.backup_script == "#!/usr/bin/env bash\nset -o errexit\n/usr/bin/backup.sh\n"
    assert job.interval == timedelta(days=1)
    assert job.reminder is None
    assert job.backup_path is None
    assert job.post_backup_actions == []


def test_parse_full():
    settings = parse_settings(FULL)

    job = settings.job("Backup")
    assert job is not None
    assert job.icon_name is None
    assert job.backup_path == Path("/mnt/backup")
    assert job.reminder == timedelta(days=7)
    assert job.post_action_labels == ["Unmount backup HDD"]
    assert job.post_backup_actions[0].script.endswith("umount /mnt/backup\n")
    assert job.last_backup == datetime(2024, 10, 24, 20, 18, 0, 857399, tzinfo=timezone.utc)


def test_parse_durations_and_intervals():
    settings = parse_settings("tick-interval: 30s\nretry-interval: 2h 30m\nreminder-interval: 1d\n")

    assert settings.tick_interval == timedelta(seconds=30)
    assert settings.retry_interval == timedelta(hours=2, minutes=30)
    assert settings.reminder_interval == timedelta(days=1)


def test_duplicate_names_are_rejected():
    with pytest.raises(ConfigError, match="script names must be unique"):
        parse_settings(MINIMAL + MINIMAL.replace("scripts:\n", ""))


@pytest.mark.parametrize("text, message", [
    ("scripts: [", "Invalid settings file"),
    ("- just\n- a list\n", "expected a mapping"),
    ("scripts:\n- name: Backup\n  backup-script: echo\n  interval: soon\n", "Invalid settings"),
    ("scripts:\n- name: Backup\n  backup-script: echo\n  interval: 0s\n", "interval must be positive"),
    ("scripts:\n- name: Backup\n  backup-script: echo\n", "Invalid settings"),
])
def test_invalid_settings(text: str, message: str):
    with pytest.raises(ConfigError, match=message):
        parse_settings(text)


def test_dump_and_parse(tmp_path: Path):
    settings = parse_settings(FULL)
    path = tmp_path / "backup-monitor.yaml"

    save_settings(settings, path)

    text = path.read_text()
    assert text.startswith(SETTINGS_HEADER)
    assert "interval: 1day" in text
    assert "reminder: 7days" in text
    assert load_settings(path) == settings


def test_dump_omits_unset_fields():
    text = dump_settings(parse_settings(MINIMAL))

    assert "backup-path" not in text
    assert "reminder:" not in text
    assert "backup-script" in text


def test_load_creates_default_file(tmp_path: Path):
    path = tmp_path / "config" / "backup-monitor.yaml"

    settings = load_settings(path)

    assert path.exists()
    assert settings == Settings()


def test_load_invalid_file(tmp_path: Path):
    path = tmp_path / "backup-monitor.yaml"
    path.write_text("scripts: [")

    with pytest.raises(ConfigError):
        load_settings(path)


def test_unknown_keys_are_ignored_and_not_written_back():
    settings = parse_settings(FULL)

    assert "autostart" not in Settings.model_fields
    assert "autostart" not in dump_settings(settings)
