"""Computer-use agent loop.

The model decides how many steps a run takes. Each step executes the action
the latest turn requested, lets the page settle, captures a screenshot and
sends it back as the next turn. ``next_state`` is the only place where the
loop decides to stop: a turn without an action ends the run and its text
fragments become the result.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Union

from actions import Action, UnknownAction, action_kind
from browser_session import BrowserSession
from dispatch import SessionPrimitives, dispatch_action
from execution_common import SETTLE_DELAY_MS, StepLimitExceededError, log
from model_turns import ModelTurn, ModelTurnClient, OpenAITurnClient, call_output_input, task_input


@dataclass(frozen=True)
class Execute:
    action: Action
    call_id: str | None
    acknowledged_safety_checks: tuple[Any, ...] = ()


@dataclass(frozen=True)
class Terminate:
    text: str


LoopState = Union[Execute, Terminate]


def next_state(turn: ModelTurn) -> LoopState:
    # An action wins over any text in the same turn: the model is not done yet.
    if turn.action is not None:
        return Execute(turn.action, turn.call_id, turn.pending_safety_checks)
    return Terminate("\n".join(turn.fragments))


@dataclass(frozen=True)
class StepRecord:
    step: int
    call_id: str | None
    kind: str
    params: dict[str, Any]


def _step_record(step: int, state: Execute) -> StepRecord:
    action = state.action
    if isinstance(action, UnknownAction):
        params: dict[str, Any] = {"reason": action.reason, "raw": dict(action.raw)}
    else:
        params = asdict(action)
    return StepRecord(step=step, call_id=state.call_id, kind=action_kind(action), params=params)


@dataclass
class AgentSession:
    browser: SessionPrimitives
    step: int = 0
    turn: ModelTurn | None = None
    history: list[StepRecord] = field(default_factory=list)

    @property
    def previous_response_id(self) -> str | None:
        return self.turn.response_id if self.turn is not None else None


@dataclass(frozen=True)
class RunResult:
    text: str
    steps: tuple[StepRecord, ...] = ()

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "steps": [asdict(step) for step in self.steps]}


async def _execute_step(
    session: AgentSession,
    client: ModelTurnClient,
    state: Execute,
    *,
    settle_delay_ms: int,
) -> ModelTurn:
    session.step += 1
    log(f"step {session.step}: {action_kind(state.action)} call_id={state.call_id}")
    session.history.append(_step_record(session.step, state))

    await dispatch_action(session.browser, state.action)
    await asyncio.sleep(settle_delay_ms / 1000)

    screenshot_b64 = await session.browser.capture_screenshot()
    if state.acknowledged_safety_checks:
        log(f"acknowledging {len(state.acknowledged_safety_checks)} safety check(s)")
    return await client.send(
        call_output_input(state.call_id, screenshot_b64, state.acknowledged_safety_checks),
        previous_response_id=session.previous_response_id,
    )


async def run_agent(
    task: str,
    *,
    client: ModelTurnClient | None = None,
    browser_factory: Callable[[], SessionPrimitives] | None = None,
    settle_delay_ms: int = SETTLE_DELAY_MS,
    max_steps: int | None = None,
) -> RunResult:
    """Drive one automation run for ``task`` and return its final text and steps.

    The browser is closed on every exit path, including cancellation. Launch
    and model transport failures propagate; action failures are only logged.
    ``max_steps`` is unbounded by default.
    """
    browser = (browser_factory or BrowserSession)()
    own_client = OpenAITurnClient() if client is None else None
    client = client or own_client
    log(f"run started: {task!r}")
    try:
        await browser.open()
        session = AgentSession(browser=browser)
        session.turn = await client.send(task_input(task))

        while True:
            state = next_state(session.turn)
            if isinstance(state, Terminate):
                log(f"no more actions, finished after {session.step} step(s)")
                return RunResult(text=state.text, steps=tuple(session.history))
            if max_steps is not None and session.step >= max_steps:
                raise StepLimitExceededError(f"model requested more than {max_steps} action(s)")
            session.turn = await _execute_step(session, client, state, settle_delay_ms=settle_delay_ms)
    finally:
        try:
            await browser.close()
        finally:
            if own_client is not None:
                await own_client.aclose()


async def run_automation(task: str, *, timeout_seconds: float | None = None, **kwargs: Any) -> str:
    run = run_agent(task, **kwargs)
    if timeout_seconds is not None:
        result = await asyncio.wait_for(run, timeout=timeout_seconds)
    else:
        result = await run
    return result.text
