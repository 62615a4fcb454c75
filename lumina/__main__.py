"""
Interactive terminal chat with the study tutor.

    python -m lumina
"""
import asyncio
import logging
import os
from typing import Dict, List

from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel

from . import RichStreamPrinter, SettingsStore, StudyAIClient, StudyAssistant
from .errors import AIError
from .printer import console
from .utils import encode_image_file


async def solve_image(assistant: StudyAssistant, path: str) -> None:
    """Run the problem solver on a local image and print the answer."""
    try:
        image = encode_image_file(path)
    except FileNotFoundError as e:
        console.print(f"[bold red]{e}[/bold red]")
        return
    try:
        answer = await assistant.solve_problem_from_image(image.data, image.mime_type)
    except AIError as e:
        console.print(f"[bold red]{e.user_message}[/bold red]")
        return
    console.print(Panel(Markdown(answer), title="[bold]Solution[/bold]", border_style="green"))


async def chat_loop() -> None:
    async with StudyAIClient(SettingsStore()) as client:
        await _chat(client)


async def _chat(client: StudyAIClient) -> None:
    assistant = StudyAssistant(client)
    printer = RichStreamPrinter()
    history: List[Dict[str, str]] = []

    settings = client.settings()
    console.print(
        f"[bold cyan]Hi {settings.name}! Ask me anything.[/bold cyan] "
        "[dim](/solve <image> to solve a problem photo, /quit to exit)[/dim]"
    )

    while True:
        try:
            message = console.input("[bold]You:[/bold] ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not message:
            continue
        if message in ("/quit", "/exit"):
            break
        if message.startswith("/solve "):
            await solve_image(assistant, message[len("/solve "):].strip())
            continue

        try:
            result = await printer.print_stream(client.stream_chat(history, message))
        except AIError as e:
            console.print(f"[bold red]{e.user_message}[/bold red]")
            continue

        history.append({"role": "user", "text": message})
        history.append({"role": "model", "text": result["text"]})


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LUMINA_LOG_LEVEL", "WARNING").upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    asyncio.run(chat_loop())


if __name__ == "__main__":
    main()
