from __future__ import annotations

import json
import os
import re
from io import BytesIO
from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError


DISPLAY_WIDTH = 1024
DISPLAY_HEIGHT = 768
COMPUTER_USE_MODEL = os.environ.get("OPERATOR_MODEL", "").strip() or "computer-use-preview"
SETTLE_DELAY_MS = 750
DEFAULT_WAIT_MS = 1000
NAVIGATION_TIMEOUT_MS = 30000
CHROMIUM_ARGS = [
    "--disable-extensions",
    "--disable-file-system",
]
LOG_PREFIX = "[operator]"


class StepLimitExceededError(RuntimeError):
    """Raised when a run requests more actions than the caller allowed."""


def log(msg: str) -> None:
    print(f"{LOG_PREFIX} {msg}", flush=True)


def _redact_image_data_url(value: str) -> str | None:
    if not value.startswith("data:image/"):
        return None
    if ";base64," not in value:
        return "<redacted image data url>"
    header, payload = value.split(",", 1)
    mime_match = re.match(r"^data:(image/[^;]+);base64$", header, flags=re.IGNORECASE)
    mime = mime_match.group(1) if mime_match else "image/unknown"
    return f"<redacted image data url mime={mime} base64_chars={len(payload)}>"


def _sanitize_for_log(value: Any, *, _seen: set[int] | None = None) -> Any:
    if _seen is None:
        _seen = set()
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        redacted = _redact_image_data_url(value)
        return redacted if redacted is not None else value
    if isinstance(value, bytes):
        return f"<bytes len={len(value)}>"
    if isinstance(value, Path):
        return str(value)

    marker = id(value)
    if marker in _seen:
        return "<cycle>"
    _seen.add(marker)
    try:
        if isinstance(value, dict):
            return {str(key): _sanitize_for_log(val, _seen=_seen) for key, val in value.items()}
        if isinstance(value, (list, tuple)):
            return [_sanitize_for_log(item, _seen=_seen) for item in value]
        if hasattr(value, "model_dump"):
            return _sanitize_for_log(value.model_dump(), _seen=_seen)
        if hasattr(value, "__dict__"):
            return _sanitize_for_log(vars(value), _seen=_seen)
        return str(value)
    finally:
        _seen.discard(marker)


def _dump_json(value: Any) -> str:
    return json.dumps(_sanitize_for_log(value), ensure_ascii=False, indent=2)


def _screenshot_is_single_color(png_bytes: bytes) -> bool:
    if not png_bytes:
        return True
    try:
        img = Image.open(BytesIO(png_bytes)).convert("RGB")
    except (UnidentifiedImageError, OSError):
        # Solid-color PNGs compress extremely well; fall back to size.
        return len(png_bytes) < 15000

    width, height = img.size
    if width <= 0 or height <= 0:
        return True
    base = img.getpixel((0, 0))

    # Sample a grid so a small spinner still counts as content.
    sample_x = 50
    sample_y = 50
    denom_x = max(1, sample_x - 1)
    denom_y = max(1, sample_y - 1)
    for iy in range(sample_y):
        y = (iy * (height - 1)) // denom_y
        for ix in range(sample_x):
            x = (ix * (width - 1)) // denom_x
            if img.getpixel((x, y)) != base:
                return False
    return True


_KEY_ALIASES = {
    "enter": "Enter",
    "return": "Enter",
    "esc": "Escape",
    "escape": "Escape",
    "tab": "Tab",
    "space": "Space",
    "spacebar": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "del": "Delete",
    "insert": "Insert",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "arrowup": "ArrowUp",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
    "shift": "Shift",
    "ctrl": "Control",
    "control": "Control",
    "alt": "Alt",
    "option": "Alt",
    "meta": "Meta",
    "cmd": "Meta",
    "command": "Meta",
    "super": "Meta",
}


def _normalize_key(raw_key: Any) -> str:
    key = str(raw_key).strip()
    if not key:
        return key

    def normalize_piece(piece: str) -> str:
        p = piece.strip()
        if not p:
            return p
        return _KEY_ALIASES.get(p.lower(), p if len(p) == 1 else p[:1].upper() + p[1:].lower())

    if "+" in key and len(key) > 1:
        return "+".join(normalize_piece(piece) for piece in key.split("+"))
    return normalize_piece(key)
