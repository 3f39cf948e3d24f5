import pytest

from agenda.config import AppConfig, SchedulingConfig, StoreAdapter
from agenda.domain.exceptions import InvalidTimeFormatError
from agenda.domain.models import NotificationChannel


class TestAppConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir("/")

        config = AppConfig()

        assert config.clinic_timezone == "America/Sao_Paulo"
        assert config.store_adapter == StoreAdapter.MEMORY
        assert config.scheduling.slot_minutes == 30
        assert config.reminders.interval_seconds == 300
        assert config.reminders.default_channels == (
            NotificationChannel.EMAIL,
            NotificationChannel.SMS,
        )

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENDA_STORE_ADAPTER", "sql")
        monkeypatch.setenv("AGENDA_DB_URL", "sqlite+aiosqlite:///tmp/test.db")
        monkeypatch.setenv("AGENDA_SCHEDULING_WORK_START", "7:30")
        monkeypatch.setenv("AGENDA_SCHEDULING_DEFAULT_ACTOR_ID", "system")
        monkeypatch.setenv("AGENDA_REMINDERS_WEBHOOK_URL", "https://notify.test/hook")

        config = AppConfig()

        assert config.store_adapter == StoreAdapter.SQL
        assert config.database.url == "sqlite+aiosqlite:///tmp/test.db"
        assert config.scheduling.work_start == "07:30"
        assert config.scheduling.default_actor_id == "system"
        assert config.reminders.webhook_url == "https://notify.test/hook"

    def test_rejects_malformed_work_hours(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENDA_SCHEDULING_WORK_END", "six pm")

        with pytest.raises(InvalidTimeFormatError):
            SchedulingConfig()
