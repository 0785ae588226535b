from pathlib import Path

from backup_monitor.app import main, parse_args
from backup_monitor.errors import BackupMonitorError, ConfigError, UnknownJobError


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("BACKUP_MONITOR_LOG_LEVEL", raising=False)

    args = parse_args([])

    assert args.config is None
    assert args.database is None
    assert args.log_level == "info"


def test_parse_args(tmp_path: Path):
    args = parse_args(["--config", str(tmp_path / "settings.yaml"), "--database", "sqlite+aiosqlite://", "--log-level", "debug"])

    assert args.config == tmp_path / "settings.yaml"
    assert args.database == "sqlite+aiosqlite://"
    assert args.log_level == "debug"


def test_main_fails_on_invalid_settings(tmp_path: Path):
    path = tmp_path / "backup-monitor.yaml"
    path.write_text("scripts: [")

    assert main(["--config", str(path), "--database", "sqlite+aiosqlite://"]) == 1


def test_error_hierarchy():
    assert issubclass(ConfigError, BackupMonitorError)
    error = UnknownJobError("Photos")
    assert isinstance(error, KeyError)
    assert error.job_key == "Photos"
    assert str(error) == "No job configured with name 'Photos'"
