"""
Rich stream printer for displaying streaming tutor replies.
"""
from typing import Dict, Any, AsyncIterator, List, Optional
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from .types import StreamEvent

console = Console()


class RichStreamPrinter:
    """
    Displays a `stream_chat` event sequence live in the terminal.

    Attributes:
        title: Title for the display panel
        code_theme: Theme for code blocks
        inline_code_theme: Theme for inline code
        refresh_rate: Refresh rate for Live display
        show_reasoning: Whether to show the model's reasoning panel
        border_style: Border style while streaming
    """

    def __init__(
        self,
        title: str = "Tutor",
        code_theme: str = "coffee",
        inline_code_theme: str = "monokai",
        refresh_rate: int = 30,
        show_reasoning: bool = True,
        border_style: str = "blue",
        output: Optional[Console] = None,
    ):
        self.title = title
        self.code_theme = code_theme
        self.inline_code_theme = inline_code_theme
        self.refresh_rate = refresh_rate
        self.show_reasoning = show_reasoning
        self.border_style = border_style
        self.console = output or console
        self._text = ""
        self._reasoning = ""
        self._tools: List[str] = []
        self._active_tool: Optional[str] = None

    async def print_stream(self, events: AsyncIterator[StreamEvent]) -> Dict[str, Any]:
        """
        Render events as they arrive.

        Returns:
            Dict with the accumulated "text", "reasoning" and "tools".
        """
        self._text = ""
        self._reasoning = ""
        self._tools = []
        self._active_tool = None

        with Live(self._panel(False), refresh_per_second=self.refresh_rate, console=self.console) as live:
            async for event in events:
                self._process_event(event)
                live.update(self._panel(False))
            live.update(self._panel(True))

        return {"text": self._text, "reasoning": self._reasoning, "tools": list(self._tools)}

    def _process_event(self, event: StreamEvent) -> None:
        if event["type"] == "text":
            self._text += event["text"]
        elif event["type"] == "reasoning":
            self._reasoning += event["text"]
        elif event["type"] == "tool":
            self._tools.append(event["name"])
            self._active_tool = event["label"]
        elif event["type"] == "done_tool":
            self._active_tool = None

    def _panel(self, is_final: bool) -> Panel:
        return Panel(
            self._build_content(),
            title=f"[bold]{self.title}[/bold]",
            border_style="green" if is_final else self.border_style,
            padding=(1, 2),
        )

    def _build_content(self) -> Any:
        """Build the panel content."""
        parts: List[Any] = []
        if self.show_reasoning and self._reasoning.strip():
            parts.append(Panel(
                Text(self._reasoning, style="dim italic"),
                title="[dim]Thinking[/dim]",
                border_style="dim",
            ))
        if self._active_tool:
            parts.append(Text(f"{self._active_tool}...", style="bold yellow"))
        if self._text.strip():
            parts.append(Markdown(
                self._text,
                code_theme=self.code_theme,
                inline_code_theme=self.inline_code_theme,
            ))
        if not parts:
            return Text("(waiting for response...)", style="dim italic")
        return Group(*parts)

    def get_full_text(self) -> str:
        """Get the full assembled text."""
        return self._text
