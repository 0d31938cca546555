"""Encoding-safe Console wrapper for Rich library.

Wraps Rich's Console to automatically sanitize Unicode icons on terminals
that don't support UTF-8, and keeps the scan spinner to ASCII frames there.
"""
from typing import Any

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .logger import is_utf8_capable, sanitize_for_terminal

ASCII_SPINNER = 'line'


class SafeConsole(Console):
    """Console that replaces Unicode icons with ASCII on non-UTF-8 terminals.

    Report values (translations) are printed as-is; only the known icons of
    ICON_MAP are substituted.
    """

    def __init__(self, *args, **kwargs):
        self._needs_sanitization = not is_utf8_capable()

        # Force legacy_windows mode if needed to prevent Unicode spinner issues
        if self._needs_sanitization:
            kwargs.setdefault('legacy_windows', True)

        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        """Print with automatic icon sanitization (same arguments as Console.print)."""
        if self._needs_sanitization:
            objects = tuple(sanitize_for_terminal(obj) if isinstance(obj, str) else obj for obj in objects)
        super().print(*objects, **kwargs)

    def progress(self, transient: bool = True) -> Progress:
        """Phase spinner with elapsed time, rendered on this console.

        The default braille spinner needs UTF-8; other terminals get the
        ASCII 'line' spinner.

        Args:
            transient: Clear the spinner line when the display stops

        Returns:
            An unstarted rich Progress; use it as a context manager
        """
        spinner = SpinnerColumn(ASCII_SPINNER) if self._needs_sanitization else SpinnerColumn()
        return Progress(
            spinner,
            TextColumn("[bold blue]{task.description}"),
            TimeElapsedColumn(),
            console=self,
            transient=transient,
        )
