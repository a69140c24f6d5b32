#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from workflow_agent.services.orchestrator import run_assistant


async def _run(objective: str, credential: str, show_log: bool) -> None:
    try:
        result = await run_assistant(objective, credential)
    except Exception as exc:
        print(f"Run failed: {exc}")
        raise SystemExit(1)

    print(f"Model: {result.model}")
    if result.context_warning:
        print(f"Context warning: {result.context_warning}")
    if show_log:
        print("Execution log:")
        print(json.dumps([entry.to_dict() for entry in result.results], indent=2, default=str))
    print("Answer:")
    print(result.answer)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ask the workflow assistant to act on an objective")
    parser.add_argument("objective", help="What you want done, in plain language")
    parser.add_argument(
        "--credential",
        default=os.environ.get("WORKFLOW_CREDENTIAL"),
        help="Basic credential for the workflow service (default: $WORKFLOW_CREDENTIAL)",
    )
    parser.add_argument("--show-log", action="store_true", help="Print the execution log as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if not args.credential:
        print("A credential is required (--credential or WORKFLOW_CREDENTIAL).")
        raise SystemExit(2)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    asyncio.run(_run(args.objective, args.credential, args.show_log))


if __name__ == "__main__":
    main()
