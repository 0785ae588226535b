import logging

import pytest

from backup_monitor.domain.run import RunKind, RunOutcome
from backup_monitor.domain.state import AggregateStatus, JobStatusRecord, Phase
from backup_monitor.presenters.log import LoggingPresenter


@pytest.fixture(scope="function")
def presenter() -> LoggingPresenter:
    return LoggingPresenter("Backup")


def make_status(description: str = "Never backed up before\nNext backup now") -> JobStatusRecord:
    return JobStatusRecord(key="Home", phase=Phase.WAITING_FOR_INTERVAL, description=description)


def test_publish_logs_only_changes(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO)
    statuses = [make_status()]

    presenter.publish(statuses, AggregateStatus.from_statuses(statuses))
    presenter.publish(statuses, AggregateStatus.from_statuses(statuses))

    messages = [record.getMessage() for record in caplog.records]
    assert len(messages) == 1
    assert "Home:\nNever backed up before\nNext backup now" in messages[0]


def test_publish_without_jobs(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO)

    presenter.publish([], AggregateStatus())

    assert "No backup scripts configured" in caplog.text


def test_degraded_warning_on_transition(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING)
    statuses = [make_status()]

    presenter.publish(statuses, AggregateStatus(degraded=True))
    presenter.publish(statuses, AggregateStatus(degraded=True))

    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1


def test_failed_run_is_a_warning(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO)

    presenter.job_finished("Home", RunKind.BACKUP, "Home", RunOutcome.FAILURE, "Home failed with exit code 1")

    assert caplog.records[-1].levelno == logging.WARNING
    assert caplog.records[-1].getMessage() == "Home failed with exit code 1"


def test_offer_post_actions_lists_choices(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO)

    presenter.offer_post_actions("Home", ["Unmount", "Power off"])

    assert "[0] Unmount, [1] Power off" in caplog.text


def test_reminder(presenter: LoggingPresenter, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING)

    presenter.show_reminder(["Home", "Photos"])

    assert "Backup out of date (Home, Photos)" in caplog.text
