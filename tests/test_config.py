from datetime import timedelta

import pytest

from autokudos.config import EngineConfig, OpenedAtPolicy, Settings


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig(self_id=1)
        assert config.size_threshold == 25
        assert config.age_threshold == timedelta(hours=1)
        assert config.max_drain == 100
        assert config.send_delay == 1.5

    def test_from_settings(self):
        s = Settings(
            SELF_ATHLETE_ID=42,
            TIMEZONE="America/New_York",
            SIZE_THRESHOLD=10,
            AGE_THRESHOLD_MINUTES=30,
            MAX_BATCH_DRAIN=82,
            POLL_INTERVAL_MINUTES=20,
            OPENED_AT_POLICY="preserve",
        )
        config = EngineConfig.from_settings(s)
        assert config.self_id == 42
        assert config.time_zone == "America/New_York"
        assert config.size_threshold == 10
        assert config.age_threshold == timedelta(minutes=30)
        assert config.max_drain == 82
        assert config.poll_interval == timedelta(minutes=20)
        assert config.opened_at_policy is OpenedAtPolicy.PRESERVE

    @pytest.mark.parametrize("field,value", [
        ("size_threshold", 0),
        ("max_drain", 0),
        ("age_threshold", timedelta(0)),
        ("quiet_start_hour", 24),
        ("send_delay", -1),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            EngineConfig(self_id=1, **{field: value})

    def test_rejects_unknown_time_zone(self):
        with pytest.raises(Exception):
            EngineConfig(self_id=1, time_zone="Mars/Olympus_Mons")


class TestQuietWindow:
    def test_wrapping_window(self):
        config = EngineConfig(self_id=1, quiet_start_hour=23, quiet_end_hour=6)
        assert config.in_quiet_window(23) is True
        assert config.in_quiet_window(0) is True
        assert config.in_quiet_window(5) is True
        assert config.in_quiet_window(6) is False
        assert config.in_quiet_window(22) is False

    def test_same_day_window(self):
        config = EngineConfig(self_id=1, quiet_start_hour=1, quiet_end_hour=5)
        assert config.in_quiet_window(1) is True
        assert config.in_quiet_window(5) is False
        assert config.in_quiet_window(0) is False

    def test_equal_bounds_disable_window(self):
        config = EngineConfig(self_id=1, quiet_start_hour=0, quiet_end_hour=0)
        assert config.in_quiet_window(0) is False
