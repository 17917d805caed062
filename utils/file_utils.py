from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Final

__all__: list[str] = [
    "FileMissingError",
    "FileUtils",
    "FileUtilsError",
    "InvalidFileTypeError",
]

APP_DIR_NAME: Final[str] = "chat_llm_translation"
WINDOWS: Final[bool] = os.name == "nt"


class FileUtils:
    """Path resolution and safe file writing."""

    @staticmethod
    def resolve_path(path: str | Path, *, strict: bool = False) -> Path:
        """Convert a user-input path to an absolute path.

        Expands environment variables (e.g. $HOME, %APPDATA%) and ~, and resolves relative
        paths against the current working directory.

        Args:
            path (str | Path): The input path (e.g. "~/chat/$SERVER/rag.json").
            strict (bool): Raise if the path does not exist. Defaults to False.

        Returns:
            Path: Absolute path.
        """
        expanded: str = os.path.expandvars(str(path))
        user_expanded: Path = Path(expanded).expanduser()

        if user_expanded.is_absolute():
            return user_expanded.resolve(strict=strict)
        return (Path.cwd() / user_expanded).resolve(strict=strict)

    @staticmethod
    def config_dir() -> Path:
        """Platform directory that holds the configuration JSON.

        %APPDATA% on Windows, $XDG_CONFIG_HOME (default ~/.config) elsewhere.
        """
        base: str | None = os.environ.get("APPDATA") if WINDOWS else os.environ.get("XDG_CONFIG_HOME")
        root: Path = Path(base) if base else Path.home() / ".config"
        return FileUtils.resolve_path(root / APP_DIR_NAME)

    @staticmethod
    def data_dir() -> Path:
        """Platform directory for per-server stores, models, and binaries.

        %LOCALAPPDATA% on Windows, $XDG_DATA_HOME (default ~/.local/share) elsewhere.
        """
        base: str | None = os.environ.get("LOCALAPPDATA") if WINDOWS else os.environ.get("XDG_DATA_HOME")
        root: Path = Path(base) if base else Path.home() / ".local" / "share"
        return FileUtils.resolve_path(root / APP_DIR_NAME)

    @staticmethod
    def atomic_write_text(file_path: Path, text: str) -> None:
        """Replace ``file_path`` with ``text`` so readers never observe a partial file.

        The data goes to a temporary sibling which is then renamed over the target.

        Raises:
            OSError: If the directory cannot be created or the write/rename fails.
        """
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fhdl:
                fhdl.write(text)
                fhdl.flush()
                os.fsync(fhdl.fileno())
            tmp_path.replace(file_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    @staticmethod
    def check_file_status(file_path: Path) -> None:
        """Check that ``file_path`` exists and is a regular file.

        Raises:
            FileMissingError: If the file does not exist.
            InvalidFileTypeError: If the path is a directory.
        """
        if not file_path.exists():
            msg = f"File does not exist: {file_path}"
            raise FileMissingError(msg)
        if file_path.is_dir():
            msg = f"Invalid file type (directory): {file_path}"
            raise InvalidFileTypeError(msg)


class FileUtilsError(Exception):
    """Custom exception for FileUtils-related errors."""


class FileMissingError(FileUtilsError):
    """Custom exception for file missing errors."""


class InvalidFileTypeError(FileUtilsError):
    """Custom exception for invalid file type errors."""
