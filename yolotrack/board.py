"""Check that the program runs on a supported board."""

from __future__ import annotations

from pathlib import Path

DEFAULT_BOARD_NAME_PATH = "/sys/ztl/board_name"
SUPPORTED_MODELS = ("A588", "588", "576", "566", "568", "562")


class AuthorizationError(RuntimeError):
    """Raised when the board is not one the models may run on."""


def read_board_name(path: str | Path = DEFAULT_BOARD_NAME_PATH) -> str | None:
    """Return the first line of the board-name file, trailing blanks removed.

    Returns ``None`` when the file cannot be read.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as fh:
            line = fh.readline()
    except OSError:
        return None
    return line.rstrip(" \t\n\r")


def check_board_model_support(path: str | Path = DEFAULT_BOARD_NAME_PATH) -> bool:
    """Return True when the board named in ``path`` is supported."""
    return read_board_name(path) in SUPPORTED_MODELS


def enforce_authorization(path: str | Path = DEFAULT_BOARD_NAME_PATH) -> None:
    """Raise AuthorizationError unless the board is supported."""
    if not check_board_model_support(path):
        raise AuthorizationError("BERROR: model initialization error")