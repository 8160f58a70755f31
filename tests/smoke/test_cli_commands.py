"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work and that
domain errors map to their exit codes.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

WEATHER = "The weather is sunny and warm today."

TOM = """Why did Tom stay home?
A) He felt sick
B) It was raining
C) He had homework
D) His car broke
Answer: A"""


def run_cli_command(*args: str, timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m difficulty_gate.cli.main'
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    env = {**os.environ, "LLM_BACKEND": "none", "EMBEDDING_BACKEND": "hash"}
    result = subprocess.run(
        [sys.executable, "-m", "difficulty_gate.cli.main", *args],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "difficulty-gate" in stdout
        assert "generate-cloze" in stdout

    @pytest.mark.parametrize("command", ["score", "target", "structure", "generate-cloze", "generate-mc", "serve"])
    def test_command_help(self, command):
        code, stdout, stderr = run_cli_command(command, "--help")

        assert code == 0, f"{command} --help failed: {stderr}"
        assert "Usage" in stdout


class TestScoringCommands:
    """Test D and weight commands."""

    def test_score(self):
        code, stdout, stderr = run_cli_command("score", "0.4", "0.3", "0.5", "0.25")

        assert code == 0, f"score failed: {stderr}"
        assert "D = 0.3650" in stdout

    def test_score_bad_weight(self):
        code, stdout, _ = run_cli_command("score", "0.4", "0.3", "0.5", "0.25", "--wl=-1")

        assert code == 2
        assert "BAD_REQUEST" in stdout

    def test_weights(self):
        code, stdout, stderr = run_cli_command("weights")

        assert code == 0, f"weights failed: {stderr}"
        assert "wL" in stdout


class TestTargetAndStructure:
    """Test target estimation and structure recovery."""

    def test_target_json(self):
        code, stdout, stderr = run_cli_command("target", WEATHER, "--json")

        assert code == 0, f"target failed: {stderr}"
        assert '"stability": "Low"' in stdout

    def test_target_too_many_sources(self):
        code, stdout, _ = run_cli_command("target", WEATHER, WEATHER, WEATHER, WEATHER)

        assert code == 2
        assert "too_many_sources" in stdout

    def test_structure_prefix_blanks(self):
        code, stdout, stderr = run_cli_command("structure", "The c__ sat on the ___.")

        assert code == 0, f"structure failed: {stderr}"
        assert "prefix_blank" in stdout

    def test_structure_multiple_choice(self, tmp_path):
        source = tmp_path / "item.txt"
        source.write_text(TOM, encoding="utf-8")

        code, stdout, stderr = run_cli_command("structure", "--file", str(source), "--json")

        assert code == 0, f"structure failed: {stderr}"
        assert '"parseMethod": "trailing_block"' in stdout


class TestGenerationCommands:
    """Test the generation pipelines without a text generation provider."""

    def test_generate_cloze(self):
        code, stdout, stderr = run_cli_command("generate-cloze", WEATHER, "--json")

        assert code == 0, f"generate-cloze failed: {stderr}"
        assert '"answerKey"' in stdout

    def test_generate_cloze_with_target_source(self):
        code, stdout, stderr = run_cli_command("generate-cloze", WEATHER, "--target-source", WEATHER, "--json")

        assert code == 0, f"generate-cloze failed: {stderr}"
        assert '"targetComparison"' in stdout

    def test_generate_cloze_empty_source(self):
        code, stdout, _ = run_cli_command("generate-cloze", "   ")

        assert code == 3
        assert "EMPTY_SOURCE" in stdout

    def test_generate_mc_reused_answer(self):
        code, stdout, _ = run_cli_command("generate-mc", TOM)

        assert code == 6
        assert "CORRECT_CHOICE_REUSED" in stdout

    def test_missing_source(self):
        code, stdout, _ = run_cli_command("generate-mc")

        assert code == 2
        assert "Provide TEXT or --file" in stdout
