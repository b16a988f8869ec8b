"""Rich-based terminal front end for interactive chat."""

from __future__ import annotations

import asyncio
from typing import Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from ..shared import ChatResponse

__all__ = ["RichChatIO"]


class RichChatIO:
    """Renders assistant turns as markdown panels and prompts with rich."""

    def __init__(self, console: Optional[Console] = None, title: str = "") -> None:
        self.console = console or Console()
        self.title = title

    async def read(self) -> Optional[str]:
        try:
            return await asyncio.to_thread(
                Prompt.ask, "[bold cyan]>[/bold cyan]", console=self.console
            )
        except EOFError:
            return None

    def show(self, response: ChatResponse) -> None:
        body = Markdown(response.content) if response.content.strip() else "[dim](no output)[/dim]"
        subtitle = "[green]done[/green]" if response.done else None
        self.console.print(
            Panel(body, title=self.title or None, subtitle=subtitle, border_style="blue")
        )
