"""End-to-end tests for the agentinterop CLI."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import yaml
from click.testing import CliRunner

from agentinterop import __version__
from agentinterop.cli import cli


def _write_config(agents: dict) -> None:
    Path("agentinterop.yaml").write_text(
        yaml.dump({"version": "1", "agents": agents}), encoding="utf-8"
    )


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "agents" in result.output
    assert "chat" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"agentinterop, version {__version__}" in result.output


class TestCatalogueCommands:
    def test_list(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["agents", "list", "--json"])
        assert result.exit_code == 0
        agents = json.loads(result.output)
        assert [a["id"] for a in agents] == ["mock-agent"]
        assert agents[0]["skills"][0]["id"] == "chat"

    def test_json_flag_does_not_change_output(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            plain = runner.invoke(cli, ["agents", "describe", "mock-agent"])
            flagged = runner.invoke(cli, ["agents", "describe", "mock-agent", "--json"])
            help_result = runner.invoke(cli, ["agents", "list", "--help"])
        assert plain.exit_code == flagged.exit_code == 0
        assert plain.output == flagged.output
        assert "output is always JSON" in help_result.output

    def test_list_includes_configured_agents(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            _write_config({"echo": {"command": "echo-agent"}})
            result = runner.invoke(cli, ["agents", "list"])
        assert result.exit_code == 0
        assert [a["id"] for a in json.loads(result.output)] == ["mock-agent", "echo"]

    def test_describe(self) -> None:
        result = CliRunner().invoke(cli, ["agents", "describe", "mock-agent"])
        assert result.exit_code == 0
        described = json.loads(result.output)
        assert described["args"] == ["-m", "agentinterop.agent"]

    def test_describe_unknown(self) -> None:
        result = CliRunner().invoke(cli, ["agents", "describe", "ghost"])
        assert result.exit_code == 1
        assert "Unknown agent: ghost" in result.output

    def test_broken_config(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("agentinterop.yaml").write_text("agents: [oops\n", encoding="utf-8")
            result = runner.invoke(cli, ["agents", "list"])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class TestInvoke:
    def test_invoke_chat(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(
                cli, ["agents", "invoke", "--skill", "chat", "--prompt", "hello"]
            )
        assert result.exit_code == 0, result.output
        assert result.output == "MockAgent response #1: hello\n"

    def test_unknown_skill(self) -> None:
        result = CliRunner().invoke(
            cli, ["agents", "invoke", "--skill", "summarize", "--prompt", "x"]
        )
        assert result.exit_code != 0
        assert "Unknown skill: summarize" in result.output

    def test_missing_prompt(self) -> None:
        result = CliRunner().invoke(cli, ["agents", "invoke", "--skill", "chat"])
        assert result.exit_code != 0
        assert "--prompt" in result.output

    def test_non_streaming_agent_from_config(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            _write_config(
                {
                    "quiet": {
                        "command": sys.executable,
                        "args": ["-m", "agentinterop.agent", "--streaming=off"],
                    }
                }
            )
            result = runner.invoke(
                cli,
                ["agents", "invoke", "--agent", "quiet", "--skill", "chat", "--prompt", "hi"],
            )
        assert result.exit_code == 0, result.output
        assert result.output == "MockAgent response #1: hi\n"

    def test_spawn_failure(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            _write_config({"broken": {"command": "agentinterop-no-such-binary"}})
            result = runner.invoke(
                cli,
                ["agents", "invoke", "--agent", "broken", "--skill", "chat", "--prompt", "x"],
            )
        assert result.exit_code == 1
        assert "Error: Command not found" in result.output

    def test_agent_exits_early(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            _write_config({"dud": {"command": sys.executable, "args": ["-c", "pass"]}})
            result = runner.invoke(
                cli,
                ["agents", "invoke", "--agent", "dud", "--skill", "chat", "--prompt", "x"],
            )
        assert result.exit_code == 2
        assert "exited before it was ready" in result.output


class TestSessionCommands:
    def test_open_send_send_close(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            opened = runner.invoke(cli, ["agents", "session", "open"])
            assert opened.exit_code == 0, opened.output
            session_id = opened.output.strip()
            assert session_id.startswith("session-")
            assert Path(f".cache/agentinterop/sessions/{session_id}.json").is_file()

            first = runner.invoke(
                cli,
                ["agents", "session", "send", "--session", session_id, "--prompt", "one"],
            )
            assert first.exit_code == 0, first.output
            assert first.output == "MockAgent response #1: one\n"

            second = runner.invoke(
                cli,
                ["agents", "session", "send", "--session", session_id, "--prompt", "two"],
            )
            assert second.exit_code == 0, second.output
            assert second.output == "MockAgent response #2: two\n"

            record = json.loads(
                Path(f".cache/agentinterop/sessions/{session_id}.json").read_text()
            )
            assert [m["content"] for m in record["history"]] == [
                "one",
                "MockAgent response #1: one",
                "two",
                "MockAgent response #2: two",
            ]

            closed = runner.invoke(
                cli, ["agents", "session", "close", "--session", session_id]
            )
            assert closed.exit_code == 0
            assert closed.output == "ok\n"
            assert not Path(f".cache/agentinterop/sessions/{session_id}.json").exists()

    def test_send_unknown_session(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(
                cli,
                ["agents", "session", "send", "--session", "session-0-none", "--prompt", "x"],
            )
        assert result.exit_code == 1
        assert "Unknown session" in result.output

    def test_open_with_unknown_skill(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["agents", "session", "open", "--skill", "nope"])
            assert result.exit_code == 1
            assert not Path(".cache/agentinterop/sessions").exists()


class TestTaskCommand:
    def test_task_streams_to_completion(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(
                cli, ["agents", "task", "--prompt", "build it", "--title", "Build"]
            )
        assert result.exit_code == 0, result.output
        assert result.output == "MockTask response #1: build it\n"


class TestChatCommand:
    def test_requires_tty(self) -> None:
        result = CliRunner().invoke(cli, ["chat"], input="hello\n")
        assert result.exit_code == 1
        assert "interactive terminal" in result.output
