"""Tests for the detection service helpers — message parsing and config reload."""

import pytest

from detector import main as service
from detector.config import ConfigStore, DetectionConfig
from detector.diagnostics import DATA, DiagnosticLog
from detector.main import parse_message, reload_config
from detector.store import APPEND, REPLACE


class TestParseMessage:
    def setup_method(self):
        self.diagnostics = DiagnosticLog()

    def test_single_record(self):
        mode, entries = parse_message(
            {"timestamp": 1_700_000_000, "ip": "203.45.1.9", "user": "root",
             "status": "failed"},
            self.diagnostics,
        )
        assert mode == APPEND
        assert entries[0].source_address == "203.45.1.9"
        assert len(self.diagnostics) == 0

    def test_bulk_replace(self):
        records = [{"timestamp": 1_700_000_000, "source_address": "1.2.3.4",
                    "account": "a", "outcome": "success"}] * 3
        mode, entries = parse_message({"mode": "replace", "entries": records},
                                      self.diagnostics)
        assert mode == REPLACE
        assert len(entries) == 3

    def test_bad_records_skipped_and_recorded(self):
        records = [
            {"timestamp": 1_700_000_000, "source_address": "1.2.3.4", "account": "a",
             "outcome": "failed"},
            {"timestamp": 1_700_000_000, "source_address": "1.2.3.4",
             "outcome": "failed"},
            {"timestamp": 1_700_000_000, "source_address": "1.2.3.4", "account": "a",
             "outcome": "maybe"},
        ]
        _, entries = parse_message({"entries": records}, self.diagnostics)
        assert len(entries) == 1
        assert len(self.diagnostics.by_category(DATA)) == 2

    def test_bad_bulk_mode_rejected(self):
        mode, entries = parse_message({"mode": "merge", "entries": []},
                                      self.diagnostics)
        assert (mode, entries) == (APPEND, [])
        assert len(self.diagnostics.by_category(DATA)) == 1

    @pytest.mark.parametrize("timestamp", ["yesterday", 1_700_000_000_000, None])
    def test_unparseable_timestamp_recorded(self, timestamp):
        _, entries = parse_message(
            {"timestamp": timestamp, "source_address": "1.2.3.4", "account": "a",
             "outcome": "failed"},
            self.diagnostics,
        )
        assert len(entries) == 1
        assert entries[0].timestamp is None
        recorded = self.diagnostics.by_category(DATA)
        assert len(recorded) == 1
        assert recorded[0].context == "1.2.3.4"
        assert "timestamp" in recorded[0].message


class TestConfigReload:
    def test_signal_handler_only_flags(self, monkeypatch):
        monkeypatch.setattr(service, "reload_requested", False)
        store = ConfigStore()
        # as if the signal arrived while a tick was copying the config
        with store._lock:
            service._request_reload(None, None)
        assert service.reload_requested is True
        assert store.get() == DetectionConfig()

    def test_reload_replaces_config(self, tmp_path):
        path = tmp_path / "detection.yml"
        path.write_text("brute_force_threshold: 9\n")
        store = ConfigStore()
        assert reload_config(path, store) is True
        assert store.get().brute_force_threshold == 9

    @pytest.mark.parametrize("text", [
        "brute_force: 9\n",
        "geo_fence: [unclosed\n",
        "geo_fence:\n  mode: block\n",
    ])
    def test_bad_file_keeps_previous_config(self, tmp_path, text):
        path = tmp_path / "detection.yml"
        path.write_text(text)
        store = ConfigStore(DetectionConfig(brute_force_threshold=7))
        assert reload_config(path, store) is False
        assert store.get().brute_force_threshold == 7

    def test_missing_file_keeps_previous_config(self, tmp_path):
        store = ConfigStore(DetectionConfig(brute_force_threshold=7))
        assert reload_config(tmp_path / "gone.yml", store) is False
        assert store.get().brute_force_threshold == 7
