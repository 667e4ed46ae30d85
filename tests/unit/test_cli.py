"""
tests/unit/test_cli.py — Argument parsing, bootstrap and CLI turn rendering
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from promptvolley.agent.updates import TurnUpdate
from promptvolley.cli import CLIInterface
from promptvolley.config.settings import Settings
from promptvolley.exceptions import GenerationOverloadedError, RewriteError
from promptvolley.main import bootstrap, parse_args


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.text is None
        assert args.user_id == "cli_user"
        assert args.config is None
        assert args.log_level is None

    def test_single_turn(self):
        args = parse_args(["a fox", "--user-id", "alice", "--log-level", "DEBUG"])
        assert args.text == "a fox"
        assert args.user_id == "alice"
        assert args.log_level == "DEBUG"


class TestBootstrap:
    def test_exits_on_missing_key(self, tmp_path):
        args = parse_args(["--config", str(tmp_path / "absent.yaml")])
        with pytest.raises(SystemExit) as exc_info:
            bootstrap(args)
        assert exc_info.value.code == 1

    def test_exits_on_invalid_yaml_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("history:\n  backend: redis\n")
        with pytest.raises(SystemExit):
            bootstrap(parse_args(["--config", str(cfg)]))

    def test_returns_settings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        cfg = tmp_path / "ok.yaml"
        cfg.write_text(f"logging:\n  log_dir: {tmp_path / 'logs'}\n  console_output: false\n")
        settings, log = bootstrap(parse_args(["--config", str(cfg)]))
        assert settings.openai_api_key == "sk-test"
        assert (tmp_path / "logs").is_dir()


class TestCLIInterface:
    def _cli(self):
        return CLIInterface(Settings(history={"backend": "memory"}), user_id="alice")

    @pytest.mark.asyncio
    async def test_run_turn_passes_notify(self):
        cli = self._cli()
        cli._orchestrator = AsyncMock()
        cli._orchestrator.process_turn.return_value = ["https://img.test/1.png"]

        assert await cli.run_turn("a fox") is True
        args, kwargs = cli._orchestrator.process_turn.call_args
        assert args == ("alice", "a fox")
        assert kwargs["notify"] == cli._on_update

    @pytest.mark.asyncio
    async def test_run_turn_reports_errors(self):
        cli = self._cli()
        cli._orchestrator = AsyncMock()
        cli._orchestrator.process_turn.side_effect = GenerationOverloadedError(attempts=4)
        assert await cli.run_turn("a fox") is False

    @pytest.mark.asyncio
    async def test_renders_every_update_kind(self):
        cli = self._cli()
        for update in (
            TurnUpdate.state("Thinking..."),
            TurnUpdate.summary("Here is the new image request"),
            TurnUpdate.progress(2, 4.0),
            TurnUpdate.images(["https://img.test/1.png"]),
        ):
            await cli._on_update(update)

    @pytest.mark.asyncio
    async def test_bracketed_text_printed_literally(self):
        cli = self._cli()
        cli.console = Console(record=True, width=200)
        await cli._on_update(TurnUpdate.state("working [/x] on it"))
        await cli._on_update(TurnUpdate.summary("a sign reading [bold]OPEN[/bold]"))

        cli._orchestrator = AsyncMock()
        cli._orchestrator.process_turn.side_effect = RewriteError("bad [/] prompt")
        assert await cli.run_turn("a fox") is False

        out = cli.console.export_text()
        assert "working [/x] on it" in out
        assert "[bold]OPEN[/bold]" in out
        assert "bad [/] prompt" in out

    @pytest.mark.asyncio
    async def test_run_turn_before_init_raises(self):
        with pytest.raises(RuntimeError, match="init"):
            await self._cli().run_turn("a fox")
