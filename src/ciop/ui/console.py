"""Console output formatting utilities for ciop."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # steps report from worker threads
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(self, job: str, namespace: str, step_count: int, dry: bool) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Job: {job}",
            f"Namespace: {namespace}",
            f"Steps: {step_count}",
            f"Dry run: {'yes' if dry else 'no'}",
            "",
        )

    def print_step_start(self, name: str) -> None:
        """Print step start message."""
        self._out(f"STEP STARTED: {name}")

    def print_step_success(self, name: str) -> None:
        """Print step success message."""
        self._out(f"STEP SUCCEEDED: {name}")

    def print_step_failure(self, name: str, reason: str) -> None:
        """
        Print failure message attributed to the step that failed.

        Args:
            name: Step name
            reason: Failure reason/error message
        """
        lines = [f"STEP FAILED: {name}"]
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            # first line only in non-debug mode
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"Error: {error_line}")
        self._out(*lines)

    def print_step_skipped(self, name: str, reason: str) -> None:
        """Print step skipped message."""
        self._out(f"STEP SKIPPED: {name} ({reason})")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40, "RESULTS", "=" * 40)
        for step, status in results.items():
            self._out(f"  {step}: {status.upper()}")

    def print_fatal(self, prefix: str, exc: BaseException) -> None:
        """Print the one-line diagnostic for an error that ends the process."""
        lines = str(exc).splitlines() or [type(exc).__name__]
        self._out(f"{prefix}: {lines[0]}", err=True)
        if self.debug:
            self._out(*(f"  {line}" for line in lines[1:]), err=True)
            self.print_exception(exc)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)

    def print_warning(self, message: str) -> None:
        """Print a non-fatal warning."""
        self._out(f"WARNING: {message}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
