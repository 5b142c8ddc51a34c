from __future__ import annotations

from pathlib import Path
from typing import Optional


class OutputWriter:
    """Writes generated files into one directory, asking before overwriting."""

    def __init__(self, output_dir: Path, *, force: bool = False) -> None:
        self.output_dir = output_dir
        self.force = force
        self._overwrite_all = False

    def _ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _log(self, message: str) -> None:
        print(message)

    def _should_write(self, path: Path) -> bool:
        """Check whether *path* should be written, prompting if needed."""
        if not path.exists():
            return True
        if self.force or self._overwrite_all:
            return True
        while True:
            answer = input(
                f"Overwrite existing {path.name}? [Yes/No/All] "
            ).strip().lower()
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False
            if answer in ("a", "all"):
                self._overwrite_all = True
                return True

    def write(self, file_name: str, data: bytes) -> Optional[Path]:
        self._ensure_output_dir()
        path = self.output_dir / file_name
        if not self._should_write(path):
            self._log(f"Skipped {path}")
            return None
        with open(path, "wb") as f:
            f.write(data)
        self._log(f"Wrote {path} ({len(data)} bytes)")
        return path
