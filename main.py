#!/usr/bin/env python3
"""Browser Operator: a CLI that lets the computer-use model carry out a task in a sandboxed browser."""

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import sys
from datetime import datetime
from pathlib import Path

from agent_loop import run_agent
from browser_session import BrowserSession
from execution_common import COMPUTER_USE_MODEL, log
from model_turns import OpenAITurnClient


def _read_task(cli_task: str | None) -> str:
    if cli_task and cli_task.strip():
        return cli_task.strip()
    return input("Enter your task: ").strip()


def _write_record(path: Path, record: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record, indent=2), encoding="utf-8")


async def async_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Browser Operator: automate a web UI from a natural-language task."
    )
    parser.add_argument("task", nargs="?", help="Task to carry out (prompted for when omitted)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--max-steps", type=int, default=None, help="Abort after this many actions")
    parser.add_argument("--timeout", type=float, default=None, help="Abort the run after this many seconds")
    parser.add_argument("--model", default=COMPUTER_USE_MODEL, help="Computer-use model name")
    parser.add_argument("--record", type=Path, default=None, help="Write the run record as JSON to this path")
    parser.add_argument("--verbose", action="store_true", help="Dump model requests and responses")
    args = parser.parse_args(argv)

    task = _read_task(args.task)
    if not task:
        print("Task cannot be empty", file=sys.stderr)
        return 1

    print(f"Task:  {task}")
    print(f"Model: {args.model}")

    started_at = datetime.now().isoformat()
    turn_client = None
    try:
        turn_client = OpenAITurnClient(model=args.model, verbose=args.verbose)
        run = run_agent(
            task,
            client=turn_client,
            browser_factory=functools.partial(BrowserSession, headless=not args.headed),
            max_steps=args.max_steps,
        )
        if args.timeout is not None:
            result = await asyncio.wait_for(run, timeout=args.timeout)
        else:
            result = await run
    except asyncio.TimeoutError:
        log(f"run timed out after {args.timeout}s")
        return 1
    except Exception as exc:  # noqa: BLE001
        log(f"run failed: {type(exc).__name__}: {exc}")
        return 1
    finally:
        if turn_client is not None:
            await turn_client.aclose()

    if args.record is not None:
        record = {
            "task": task,
            "model": args.model,
            "started_at": started_at,
            "finished_at": datetime.now().isoformat(),
            **result.to_dict(),
        }
        _write_record(args.record, record)
        log(f"run record written to {args.record}")

    print(f"\n{'=' * 60}")
    print("RESULT:")
    print(result.text)
    print(f"{'=' * 60}")
    return 0


def main() -> None:
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
