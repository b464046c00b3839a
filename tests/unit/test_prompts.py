"""Tests for system prompt construction."""

from pathlib import Path

import pytest

from termbridge.errors import ConfigError
from termbridge.prompts import DEFAULT_WORLD, build_system_prompt, load_world, wrap_with_snapshot
from termbridge.types import BridgeMode


class TestBuildSystemPrompt:
    """Tests for build_system_prompt()."""

    def test_mode_rules_differ(self):
        prompts = {mode: build_system_prompt(mode) for mode in BridgeMode}

        assert len(set(prompts.values())) == 3
        assert "terminal_output" in prompts[BridgeMode.FIELD]
        assert "state_update" in prompts[BridgeMode.CALLS]

    def test_state_preamble_only_when_stateful(self):
        assert "[session state]" in build_system_prompt(BridgeMode.CALLS, stateful=True)
        assert "[session state]" not in build_system_prompt(BridgeMode.CALLS, stateful=False)

    def test_custom_world(self):
        prompt = build_system_prompt(BridgeMode.TEXT, world="A lighthouse control node.")

        assert "A lighthouse control node." in prompt
        assert DEFAULT_WORLD not in prompt


class TestWorld:
    """Tests for load_world()."""

    def test_default(self):
        assert load_world(None) == DEFAULT_WORLD

    def test_from_file(self, tmp_path: Path):
        path = tmp_path / "world.txt"
        path.write_text("  An orbital relay.\n")

        assert load_world(path) == "An orbital relay."

    def test_empty_file_falls_back(self, tmp_path: Path):
        path = tmp_path / "world.txt"
        path.write_text("\n")

        assert load_world(path) == DEFAULT_WORLD


def test_wrap_with_snapshot():
    assert wrap_with_snapshot("ls", "cwd: /") == "[session state]\ncwd: /\n[/session state]\n\nls"


def test_missing_world_file_raises_config_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="Cannot read world file"):
        load_world(tmp_path / "absent.txt")
