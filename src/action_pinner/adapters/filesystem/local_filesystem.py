from __future__ import annotations

import shutil
from pathlib import Path

from action_pinner.domain.ports import FileSystemPort


class LocalFileSystemAdapter(FileSystemPort):
    def ensure_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def path_exists(self, path: Path) -> bool:
        return path.exists()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def list_directory(self, path: Path) -> list[Path]:
        return sorted(path.iterdir(), key=lambda item: item.name)

    def read_text(self, path: Path) -> str:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()

    def write_text(self, path: Path, content: str) -> None:
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    def remove_tree(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)
