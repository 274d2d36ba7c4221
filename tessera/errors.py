"""Error hierarchy for Tessera.

All tessera-specific errors inherit from TesseraError so callers can catch
them in one place. Errors that carry file context keep the offending path,
following the same shape as a build error with a ``source_path``.
"""

from __future__ import annotations

from pathlib import Path


class TesseraError(Exception):
    """Base error for all tessera operations."""


class ConfigError(TesseraError):
    """Invalid or unreadable project configuration."""


class ParseError(TesseraError):
    """A structured or hybrid document could not be parsed.

    Attributes:
        path: Path to the file that failed to parse.
        message: Human-readable reason.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class UnsupportedFormatError(TesseraError):
    """An operation was attempted on a file extension outside the supported set."""

    def __init__(self, path: Path):
        self.path = path
        ext = path.suffix.lstrip(".") or "(none)"
        super().__init__(f"{path}: file type {ext} not supported")


class TaskFailure(TesseraError):
    """A leaf task of the build graph failed.

    Attributes:
        task_name: Name of the failing task.
        cause: The exception raised by the task body.
    """

    def __init__(self, task_name: str, cause: BaseException):
        self.task_name = task_name
        self.cause = cause
        super().__init__(f"task '{task_name}' failed: {cause}")


class UserInputError(TesseraError):
    """Invalid input to a scaffolding command."""


class RenderError(TesseraError):
    """A page, layout or helper could not be rendered.

    Attributes:
        source_path: File that caused the error.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


class CommandError(TesseraError):
    """An external transform (sass, postcss, webpack, ...) exited non-zero.

    Attributes:
        command: Argument list that was run.
        returncode: Exit status.
        stderr: Captured error output.
    """

    def __init__(self, command: list[str], returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        name = Path(command[0]).name if command else "command"
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"{name} failed: {detail}")
