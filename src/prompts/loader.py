from __future__ import annotations

from functools import lru_cache
from pathlib import Path

SYSTEM_PROMPT_FILE = "system_prompt.txt"


@lru_cache(maxsize=8)
def load_prompt(filename: str = SYSTEM_PROMPT_FILE) -> str:
    """Load a prompt text file shipped next to this module."""

    path = Path(__file__).resolve().parent / filename
    if not path.is_file():
        raise RuntimeError(f"Prompt file not found: {filename}")
    return path.read_text(encoding="utf-8").strip()
