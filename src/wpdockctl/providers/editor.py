"""Resolve and launch an interactive text editor."""
from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path


class EditorError(RuntimeError):
    """Raised when no editor is available or the editor fails to launch."""


@dataclass(slots=True)
class EditorProvider:
    """Pick an editor and run it attached to the terminal."""

    candidates: Sequence[str] = ("nano", "vim")

    def resolve(self, explicit: str | None = None) -> str:
        """Return the editor executable to use.

        An explicit choice must exist on ``PATH`` (or be an executable path).
        Otherwise the first installed candidate wins.
        """
        if explicit:
            resolved = _which(explicit)
            if resolved is None:
                raise EditorError(f"Editor '{explicit}' not found.")
            return resolved
        for candidate in self.candidates:
            resolved = _which(candidate)
            if resolved is not None:
                return resolved
        tried = ", ".join(self.candidates) or "none configured"
        raise EditorError(
            f"No editor found (tried: {tried}). Pass one explicitly, e.g. "
            "`wpdockctl edit-config <site> vi`."
        )

    def edit(self, editor: str, path: Path) -> int:
        """Open *path* in *editor* and block until it exits; return its exit code."""
        try:
            result = subprocess.run([editor, str(path)], check=False)  # noqa: S603
        except OSError as exc:
            raise EditorError(f"Failed to launch {editor}: {exc}") from exc
        return result.returncode


def _which(command: str) -> str | None:
    path = Path(command)
    if path.is_absolute() or (path.parent and str(path.parent) not in {"", "."}):
        if path.exists() and os.access(path, os.X_OK):
            return str(path)
        return None
    return shutil.which(command)


__all__ = ["EditorError", "EditorProvider"]
