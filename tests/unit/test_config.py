"""Tests for settings and the dwell-threshold override file."""

from datetime import timedelta

import pytest

from wastetrack.core.config import Settings, load_dwell_overrides
from wastetrack.core.lifecycle import ShipmentStatus


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestDwellDefaults:

    def test_default_thresholds(self):
        thresholds = _settings().dwell_thresholds()

        assert thresholds == {
            ShipmentStatus.CREATED: timedelta(hours=48),
            ShipmentStatus.IN_TRANSIT: timedelta(hours=72),
            ShipmentStatus.DELIVERED: timedelta(hours=48),
            ShipmentStatus.SORTING: timedelta(hours=72),
            ShipmentStatus.RECYCLING: timedelta(hours=168),
        }

    def test_completed_never_has_a_threshold(self):
        assert ShipmentStatus.COMPLETED not in _settings().dwell_thresholds()

    def test_zero_hours_disables_auto_advance(self):
        thresholds = _settings(dwell_recycling_hours=0).dwell_thresholds()
        assert ShipmentStatus.RECYCLING not in thresholds
        assert ShipmentStatus.SORTING in thresholds

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DWELL_CREATED_HOURS", "6")
        monkeypatch.setenv("AUTO_APPROVAL_BATCH_LIMIT", "25")
        settings = _settings()

        assert settings.dwell_thresholds()[ShipmentStatus.CREATED] == timedelta(hours=6)
        assert settings.auto_approval_batch_limit == 25

    def test_clock_skew(self, monkeypatch):
        assert _settings().max_clock_skew == timedelta(minutes=5)

        monkeypatch.setenv("MAX_CLOCK_SKEW_SECONDS", "30")
        assert _settings().max_clock_skew == timedelta(seconds=30)

    def test_cors_origins_list(self):
        settings = _settings(cors_origins="https://a.example, https://b.example,")
        assert settings.cors_origins_list == ["https://a.example", "https://b.example"]


class TestDwellConfigFile:

    def test_file_overrides_environment(self, tmp_path):
        path = tmp_path / "dwell.yaml"
        path.write_text("created: 12\nrecycling: 0\n")
        settings = _settings(dwell_config_file=str(path))

        thresholds = settings.dwell_thresholds()
        assert thresholds[ShipmentStatus.CREATED] == timedelta(hours=12)
        assert thresholds[ShipmentStatus.IN_TRANSIT] == timedelta(hours=72)
        assert ShipmentStatus.RECYCLING not in thresholds

    def test_empty_file_means_no_overrides(self, tmp_path):
        path = tmp_path / "dwell.yaml"
        path.write_text("")
        assert load_dwell_overrides(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_dwell_overrides(str(tmp_path / "absent.yaml"))

    def test_unknown_status(self, tmp_path):
        path = tmp_path / "dwell.yaml"
        path.write_text("shipped: 4\n")
        with pytest.raises(ValueError, match="Unknown shipment status"):
            load_dwell_overrides(str(path))

    def test_completed_is_rejected(self, tmp_path):
        path = tmp_path / "dwell.yaml"
        path.write_text("completed: 4\n")
        with pytest.raises(ValueError, match="terminal"):
            load_dwell_overrides(str(path))

    @pytest.mark.parametrize("value", ["soon", "true", "[1, 2]"])
    def test_non_numeric_hours(self, tmp_path, value):
        path = tmp_path / "dwell.yaml"
        path.write_text(f"sorting: {value}\n")
        with pytest.raises(ValueError, match="must be a number"):
            load_dwell_overrides(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "dwell.yaml"
        path.write_text("- created\n- sorting\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_dwell_overrides(str(path))
