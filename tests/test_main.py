import asyncio
import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import main  # noqa: E402
from agent_loop import RunResult, StepRecord  # noqa: E402


class _StubClient:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def test_cli_prints_result_and_writes_record(tmp_path: Path, monkeypatch, capsys) -> None:
    seen: dict = {}

    async def _fake_run_agent(task, **kwargs):
        seen["task"] = task
        seen.update(kwargs)
        return RunResult(
            text="Example Domain",
            steps=(StepRecord(step=1, call_id="call_1", kind="navigate", params={"url": "https://example.com"}),),
        )

    monkeypatch.setattr(main, "run_agent", _fake_run_agent)
    monkeypatch.setattr(main, "OpenAITurnClient", _StubClient)
    record_path = tmp_path / "runs" / "run.json"

    code = asyncio.run(main.async_main(["Open example.com", "--max-steps", "5", "--record", str(record_path)]))

    assert code == 0
    assert seen["task"] == "Open example.com"
    assert seen["max_steps"] == 5
    assert seen["client"].closed
    assert "Example Domain" in capsys.readouterr().out
    record = json.loads(record_path.read_text(encoding="utf-8"))
    assert record["task"] == "Open example.com"
    assert record["text"] == "Example Domain"
    assert record["steps"][0]["kind"] == "navigate"


def test_cli_reports_fatal_errors(monkeypatch, capsys) -> None:
    async def _failing_run_agent(task, **kwargs):
        raise RuntimeError("no chromium")

    monkeypatch.setattr(main, "run_agent", _failing_run_agent)
    monkeypatch.setattr(main, "OpenAITurnClient", _StubClient)

    assert asyncio.run(main.async_main(["task"])) == 1
    assert "run failed: RuntimeError: no chromium" in capsys.readouterr().out


def test_cli_rejects_empty_task(monkeypatch) -> None:
    monkeypatch.setattr("builtins.input", lambda prompt="": "   ")
    assert asyncio.run(main.async_main([])) == 1
