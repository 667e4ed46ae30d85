"""
cli.py — promptvolley terminal interface

Wires Settings → LLM → detectors / rewriter → generation client → history
store → VolleyOrchestrator, then runs either a single turn or a REPL.
TurnUpdates are rendered with rich as they arrive.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from promptvolley.agent.orchestrator import VolleyOrchestrator
from promptvolley.agent.updates import TurnUpdate, UpdateKind
from promptvolley.brain import BaseLLMClient, create_llm_client, request_config
from promptvolley.config.settings import Settings
from promptvolley.exceptions import (
    ClassificationError,
    GenerationError,
    InputValidationError,
    PersistenceError,
    PromptVolleyError,
    RewriteError,
)
from promptvolley.generation.client import GenerationClient
from promptvolley.intents.gateway import LLMClassificationGateway
from promptvolley.memory.history_store import HistoryStore, create_history_store
from promptvolley.observability.logger import get_logger
from promptvolley.rewriter.service import LLMTextRewriter

log = get_logger(__name__)

_ERROR_TITLES = {
    InputValidationError: "Invalid input",
    ClassificationError: "Could not understand the request",
    RewriteError: "Could not write an image prompt",
    GenerationError: "Image generation failed",
    PersistenceError: "History could not be saved",
}


def _error_title(exc: PromptVolleyError) -> str:
    for cls, title in _ERROR_TITLES.items():
        if isinstance(exc, cls):
            return title
    return "Error"


class CLIInterface:
    """Terminal front end for one user id."""

    def __init__(self, settings: Settings, user_id: str = "cli_user") -> None:
        self.settings = settings
        self.user_id = user_id
        self.console = Console()
        self._orchestrator: Optional[VolleyOrchestrator] = None
        self._store: Optional[HistoryStore] = None
        self._generator: Optional[GenerationClient] = None
        self._llm: Optional[BaseLLMClient] = None

    # ── Startup / shutdown ────────────────────────────────────────────────────

    async def init(self) -> None:
        settings = self.settings
        self._llm = create_llm_client(settings)
        llm_config = request_config(settings)

        self._store = create_history_store(settings)
        await self._store.init()
        self._generator = GenerationClient.from_settings(settings)

        self._orchestrator = VolleyOrchestrator.from_settings(
            settings,
            gateway=LLMClassificationGateway(self._llm, llm_config),
            rewriter=LLMTextRewriter(self._llm, llm_config),
            generator=self._generator,
            store=self._store,
        )
        log.info("cli.initialized", user_id=self.user_id, backend=settings.history.backend)

    async def close(self) -> None:
        if self._llm is not None:
            await self._llm.aclose()
        if self._generator is not None:
            await self._generator.aclose()
        if self._store is not None:
            await self._store.close()

    # ── Rendering ─────────────────────────────────────────────────────────────

    async def _on_update(self, update: TurnUpdate) -> None:
        if update.kind is UpdateKind.STATE:
            self.console.print(Text(update.text, style="dim"))
        elif update.kind is UpdateKind.TEXT:
            self.console.print(Panel(Text(update.text), border_style="cyan", padding=(0, 2)))
        elif update.kind is UpdateKind.PROGRESS:
            self.console.print(Text(update.text, style="yellow"))
        elif update.kind is UpdateKind.IMAGES:
            for url in update.image_urls:
                self.console.print(Text(f"🖼  {url}", style="green"))

    def _print_banner(self) -> None:
        self.console.print(Text("promptvolley", style="bold cyan"), justify="center")
        self.console.print(
            Panel(
                f"User: [bold]{escape(self.user_id)}[/]  ·  "
                f"History: [cyan]{self.settings.history.backend}[/]\n\n"
                "Describe an image, then tell me what to change. "
                "[bold]exit[/] or Ctrl+D to quit.",
                border_style="cyan",
                padding=(0, 2),
            )
        )

    # ── Turns ─────────────────────────────────────────────────────────────────

    async def run_turn(self, text: str) -> bool:
        """Run one turn, render errors. Returns True on success."""
        if self._orchestrator is None:
            raise RuntimeError("call init() first")
        try:
            await self._orchestrator.process_turn(self.user_id, text, notify=self._on_update)
        except PromptVolleyError as e:
            self.console.print(Text(f"❌ {_error_title(e)}: {e}", style="red"))
            return False
        return True

    async def repl(self) -> None:
        self._print_banner()
        loop = asyncio.get_running_loop()
        while True:
            try:
                text = await loop.run_in_executor(None, input, "you> ")
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/]")
                break

            text = text.strip()
            if not text:
                continue
            if text.lower() in ("exit", "quit"):
                self.console.print("[dim]Goodbye.[/]")
                break
            await self.run_turn(text)
            self.console.print()


async def run_cli(settings: Settings, user_id: str, text: Optional[str] = None) -> int:
    cli = CLIInterface(settings, user_id=user_id)
    try:
        await cli.init()
        if text is not None:
            return 0 if await cli.run_turn(text) else 1
        await cli.repl()
        return 0
    finally:
        await cli.close()
