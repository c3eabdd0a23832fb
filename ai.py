from __future__ import annotations

import functools
import os
from pathlib import Path
from typing import Iterable

from openai import AsyncOpenAI

KEY_FILENAME = "openai_api_key.txt"


def _find_key_file(filename: str, *, extra_paths: Iterable[Path] | None = None) -> str | None:
    candidates: list[Path] = []
    if extra_paths:
        candidates.extend(extra_paths)
    for base in (Path.cwd(), Path(__file__).resolve().parent):
        for parent in [base, *base.parents]:
            candidates.append(parent / filename)
    for path in candidates:
        try:
            if path.exists():
                key = path.read_text(encoding="utf-8").strip()
                if key:
                    return key
        except OSError:
            continue
    return None


@functools.lru_cache(maxsize=1)
def load_openai_api_key() -> str:
    v = os.environ.get("OPENAI_API_KEY")
    if v and v.strip():
        return v.strip()

    extra_paths = [Path.home() / ".openai_api_key.txt"]
    key = _find_key_file(KEY_FILENAME, extra_paths=extra_paths)
    if key:
        return key

    raise RuntimeError(
        f"OpenAI API key not found. Set OPENAI_API_KEY or place {KEY_FILENAME} in/above the working directory."
    )


def openai_client(api_key: str | None = None) -> AsyncOpenAI:
    # Not cached: the httpx pool of an async client belongs to the loop that opened it.
    key = (api_key or "").strip() or load_openai_api_key()
    return AsyncOpenAI(api_key=key)
