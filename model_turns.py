"""Turn-by-turn transport to the computer-use model.

A turn goes out as a list of Responses API input items and comes back as a
``ModelTurn``: the response id to continue from, at most one requested
action, the safety checks that must be acknowledged on the next turn, and the
text fragments the model produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from openai import AsyncOpenAI

from actions import Action, parse_action
from ai import openai_client
from browser_session import screenshot_data_url
from execution_common import COMPUTER_USE_MODEL, DISPLAY_HEIGHT, DISPLAY_WIDTH, _dump_json, log


@dataclass(frozen=True)
class ModelTurn:
    response_id: str | None
    action: Action | None = None
    call_id: str | None = None
    # Opaque; echoed back unmodified on the next turn.
    pending_safety_checks: tuple[Any, ...] = ()
    fragments: tuple[str, ...] = ()


class ModelTurnClient(Protocol):
    async def send(
        self,
        turn_input: list[dict[str, Any]],
        previous_response_id: str | None = None,
    ) -> ModelTurn: ...


def task_input(task: str) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [{"type": "input_text", "text": task}],
        }
    ]


def call_output_input(
    call_id: str | None,
    screenshot_b64: str,
    acknowledged_safety_checks: Sequence[Any] = (),
) -> list[dict[str, Any]]:
    return [
        {
            "type": "computer_call_output",
            "call_id": call_id,
            "acknowledged_safety_checks": list(acknowledged_safety_checks),
            "output": {
                "type": "input_image",
                "image_url": screenshot_data_url(screenshot_b64),
            },
        }
    ]


def computer_tool() -> dict[str, Any]:
    return {
        "type": "computer_use_preview",
        "display_width": DISPLAY_WIDTH,
        "display_height": DISPLAY_HEIGHT,
        "environment": "browser",
    }


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def _as_plain(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value


def _item_fragments(item: Any) -> list[str]:
    item_type = _field(item, "type")
    texts: list[Any] = []
    if item_type == "text":
        texts.append(_field(item, "text"))
    elif item_type == "reasoning":
        texts.extend(_field(part, "text") for part in _field(item, "summary") or [])
    elif item_type == "message":
        for content in _field(item, "content") or []:
            if _field(content, "type") in ("output_text", "text"):
                texts.append(_field(content, "text"))
    return [text for text in texts if isinstance(text, str) and text.strip()]


def turn_from_response(response: Any) -> ModelTurn:
    computer_call = None
    fragments: list[str] = []
    for item in _field(response, "output") or []:
        if _field(item, "type") == "computer_call":
            if computer_call is None:
                computer_call = item
            else:
                log(f"ignoring extra computer_call {_field(item, 'call_id')!r} in one turn")
            continue
        fragments.extend(_item_fragments(item))

    if computer_call is None:
        return ModelTurn(response_id=_field(response, "id"), fragments=tuple(fragments))

    return ModelTurn(
        response_id=_field(response, "id"),
        action=parse_action(_field(computer_call, "action")),
        call_id=_field(computer_call, "call_id"),
        pending_safety_checks=tuple(
            _as_plain(check) for check in _field(computer_call, "pending_safety_checks") or []
        ),
        fragments=tuple(fragments),
    )


class OpenAITurnClient:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        model: str = COMPUTER_USE_MODEL,
        verbose: bool = False,
    ) -> None:
        self._owns_client = client is None
        self.client = client or openai_client()
        self.model = model
        self.verbose = verbose

    async def aclose(self) -> None:
        """Close the HTTP pool if this instance created the client."""
        if self._owns_client:
            await self.client.close()

    def _request(self, turn_input: list[dict[str, Any]], previous_response_id: str | None) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.model,
            "tools": [computer_tool()],
            "input": turn_input,
            "truncation": "auto",
        }
        if previous_response_id is None:
            request["reasoning"] = {"summary": "concise"}
        else:
            request["previous_response_id"] = previous_response_id
        return request

    async def send(
        self,
        turn_input: list[dict[str, Any]],
        previous_response_id: str | None = None,
    ) -> ModelTurn:
        request = self._request(turn_input, previous_response_id)
        if self.verbose:
            log(f"request:\n{_dump_json(request)}")
        response = await self.client.responses.create(**request)
        if self.verbose:
            log(f"response:\n{_dump_json(response)}")
        return turn_from_response(response)
