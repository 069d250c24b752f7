"""Tests for the public configuration entrypoint ``hypermedia_config.load_registry``."""

from __future__ import annotations

import pytest

from hypermedia_config import CompilationFailedError, load_registry

NOTE_YAML = """\
resource_type: note
initial_state: open
states: [open, closed]
transitions:
  - name: close
    from: open
    to: closed
"""


class TestLoadRegistry:
    def test_shipped_types(self):
        registry = load_registry()
        assert registry.names == ("document", "leave-request", "render-job")

    def test_emits_config_trace(self, captured_logs):
        load_registry()
        (trace,) = [r for r in captured_logs() if r["message"] == "RESOURCE_CONFIG_TRACE"]
        assert trace["trace_type"] == "RESOURCE_CONFIG_TRACE"
        assert trace["resource_types"] == ["document", "leave-request", "render-job"]
        assert trace["resource_type_count"] == 3
        assert len(trace["checksum"]) == 64

    def test_custom_directory(self, tmp_path, captured_logs):
        (tmp_path / "note.yaml").write_text(NOTE_YAML)
        registry = load_registry(tmp_path)
        assert registry.names == ("note",)

        warnings = [r for r in captured_logs() if r["message"] == "resource_config_warning"]
        assert len(warnings) == 1
        assert "terminal state 'closed'" in warnings[0]["warning"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_registry(tmp_path / "missing")

    def test_invalid_set(self, tmp_path):
        (tmp_path / "note.yaml").write_text(NOTE_YAML.replace("to: closed", "to: done"))
        with pytest.raises(CompilationFailedError):
            load_registry(tmp_path)

    def test_duplicate_types_across_files(self, tmp_path):
        (tmp_path / "a.yaml").write_text(NOTE_YAML)
        (tmp_path / "b.yaml").write_text(NOTE_YAML)
        with pytest.raises(CompilationFailedError) as exc_info:
            load_registry(tmp_path)
        assert "Duplicate resource type: note" in str(exc_info.value)
