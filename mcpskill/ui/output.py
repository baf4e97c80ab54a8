"""
UI output management with color-coded terminal output.
"""

import sys
from typing import Optional, TextIO


TEXT_COLOR_MAPPING = {
    "blue": "36;1",
    "yellow": "33;1",
    "green": "32;1",
}


def get_colored_text(text: str, color: str) -> str:
    """
    Get colored text.

    Raises:
        ValueError: If the specified color is not supported
    """
    if color not in TEXT_COLOR_MAPPING:
        raise ValueError(
            f"Unsupported color: {color}. Available colors: {', '.join(TEXT_COLOR_MAPPING.keys())}"
        )

    color_str = TEXT_COLOR_MAPPING[color]
    return f"\u001b[{color_str}m{text}\u001b[0m"


class UIManager:
    """
    Colored terminal output for the CLI.

    Colors are only emitted when the target stream is a terminal, so
    piped output (scripts, skills) stays plain.
    """

    def success(self, message: str) -> None:
        self._print_colored(message, "green")

    def warning(self, message: str) -> None:
        self._print_colored(message, "yellow", file=sys.stderr)

    def info(self, message: str) -> None:
        self._print_colored(message, "blue")

    def plain(self, text: str) -> None:
        print(text)

    def _print_colored(self, text: str, color: str, file: Optional[TextIO] = None) -> None:
        stream = file or sys.stdout
        if stream.isatty():
            text = get_colored_text(text, color)
        print(text, file=stream)
        stream.flush()
