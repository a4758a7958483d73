from pathlib import Path

import pytest
from pydantic import ValidationError

from ledger_categorizer.core import settings
from ledger_categorizer.core.settings import AutomationOptions
from ledger_categorizer.domain.backoff import backoff_delay
from ledger_categorizer.domain.labels import merge_labels, parse_id_list
from ledger_categorizer.domain.timefmt import format_duration
from ledger_categorizer.models import AutoApplySettings


def test_read_config_file(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "# auto-apply\n"
        "AUTO_APPLY_ENABLED: true\n"
        "AUTO_APPLY_SCHEDULE: \"0 6 * * 1\"  # mondays\n"
        "LOG_LEVEL:\n"
        "not a pair\n",
        encoding="utf-8",
    )

    assert settings.read_config_file(str(config)) == {
        "AUTO_APPLY_ENABLED": "true",
        "AUTO_APPLY_SCHEDULE": "0 6 * * 1",
    }
    assert settings.read_config_file(str(tmp_path / "missing.yaml")) == {}


def test_env_getters(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_APPLY_BATCH_SIZE", "25")
    monkeypatch.setenv("AUTO_APPLY_MAX_RETRIES", "-1")
    monkeypatch.setenv("UNDO_RATE_ALERT_THRESHOLD", "abc")
    monkeypatch.setenv("AUTO_APPLY_ENABLED", "yes")
    monkeypatch.setenv("AUTO_APPLY_ACCOUNT_IDS", "1, 2,x")

    assert settings.get_env_int("AUTO_APPLY_BATCH_SIZE", 100, min_value=1) == 25
    assert settings.get_env_int("AUTO_APPLY_MAX_RETRIES", 5, min_value=0) == 5
    assert settings.get_env_float("UNDO_RATE_ALERT_THRESHOLD", 0.2) == 0.2
    assert settings.get_env_bool("AUTO_APPLY_ENABLED") is True
    assert settings.get_env_ids("AUTO_APPLY_ACCOUNT_IDS") == []


def test_automation_options_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AUTO_APPLY_SCHEDULE", raising=False)
    monkeypatch.setenv("AUTO_APPLY_BATCH_SIZE", "10")
    monkeypatch.setenv("UNDO_RETENTION_DAYS", "7")
    monkeypatch.delenv("AUTO_APPLY_MAX_RETRIES", raising=False)
    monkeypatch.delenv("AUTO_APPLY_COOLDOWN_SECONDS", raising=False)
    monkeypatch.delenv("UNDO_RATE_ALERT_THRESHOLD", raising=False)

    options = AutomationOptions.from_env()

    assert options.schedule == "0 6 * * *"
    assert options.batch_size == 10
    assert options.max_retries == 5
    assert options.cooldown_seconds == 300.0
    assert options.undo_retention_days == 7
    assert options.undo_rate_alert_threshold == 0.2


def test_blank_schedule_means_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_APPLY_SCHEDULE", "  ")
    assert AutomationOptions.from_env().schedule is None


def test_default_auto_apply_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_APPLY_ENABLED", "1")
    monkeypatch.setenv("AUTO_APPLY_MIN_CONFIDENCE", "0.9")
    monkeypatch.setenv("AUTO_APPLY_EXCLUDED_CATEGORY_IDS", "3,4,3")
    monkeypatch.delenv("AUTO_APPLY_INTERVAL_MINUTES", raising=False)
    monkeypatch.delenv("AUTO_APPLY_ACCOUNT_IDS", raising=False)

    values = AutoApplySettings(**settings.default_auto_apply_values())

    assert values.enabled is True
    assert values.min_confidence == 0.9
    assert values.interval_minutes == 15
    assert values.account_ids == []
    assert values.excluded_category_ids == [3, 4]


def test_settings_validation() -> None:
    assert AutoApplySettings(schedule=" ").schedule is None
    assert AutoApplySettings(schedule=" 0 6 * * * ").schedule == "0 6 * * *"
    with pytest.raises(ValidationError):
        AutoApplySettings(schedule="0 0 30 2 *")
    with pytest.raises(ValidationError):
        AutoApplySettings(min_confidence=1.5)
    with pytest.raises(ValidationError):
        AutoApplySettings(interval_minutes=0)


def test_backoff_delay() -> None:
    assert [backoff_delay(attempt) for attempt in range(4)] == [1.0, 2.0, 4.0, 8.0]
    with pytest.raises(ValueError):
        backoff_delay(-1)


@pytest.mark.parametrize(("seconds", "text"), [
    (0, "0 s"),
    (1.5, "1.5 s"),
    (90, "1.5 min"),
    (5400, "1.5 h"),
    (129600, "1.5 d"),
])
def test_format_duration(seconds: float, text: str) -> None:
    assert format_duration(seconds) == text


def test_label_helpers() -> None:
    assert parse_id_list("1, 2, 2") == [1, 2]
    assert parse_id_list(None) == []
    with pytest.raises(ValueError):
        parse_id_list("1,a")
    assert merge_labels(["a", "b"], ["b", "c", ""]) == ["a", "b", "c"]
