from typing import Protocol

from rich.prompt import Prompt

from shared.console import console


class Prompter(Protocol):
    def ask(self, question: str, *, secret: bool = False) -> str:
        """Ask a free-form question; blank answers come back as ""."""
        ...

    def show(self, text: str) -> None: ...


class RichPrompter:
    """Prompter reading from the controlling terminal."""

    def ask(self, question: str, *, secret: bool = False) -> str:
        try:
            answer = Prompt.ask(question, password=secret, default="", show_default=False)
        except EOFError:
            return ""
        return answer.strip()

    def show(self, text: str) -> None:
        console.print(text, markup=False)
