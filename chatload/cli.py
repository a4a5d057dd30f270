from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from chatload.config import Settings
from chatload.exceptions import ChatloadConfigError, ChatloadSetupError
from chatload.runner import LoadRunner
from chatload.suites import SUITES

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_THRESHOLDS = 99


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chatload",
        description="Virtual-user load generator for the chat REST API.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="Run a load-test suite.")
    run.add_argument("--suite", help=f"Suite name ({', '.join(sorted(SUITES))}).")
    run.add_argument("--profile", help="Load profile inside the suite.")
    run.add_argument("--base-url", help="Root URL of the system under test.")
    run.add_argument("--seed", type=int, help="Random seed for a reproducible run.")
    run.add_argument("--max-vus", type=int, help="Cap on concurrent virtual users.")
    run.add_argument(
        "--think-scale",
        type=float,
        help="Multiplier on every think-time pause (0 disables them).",
    )
    run.add_argument("--no-cleanup", action="store_true", help="Skip the cleanup call at teardown.")
    run.add_argument("--no-ai", action="store_true", help="Treat the AI backend as unavailable.")
    run.add_argument("--events", help="Append structured events to this JSONL file.")
    run.add_argument("--summary", help="Write the JSON run summary to this file.")
    run.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...).")
    run.add_argument("--list", action="store_true", help="List suites and exit.")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    # None values fall through to the environment.
    return {
        "suite": args.suite,
        "profile": args.profile,
        "base_url": args.base_url,
        "seed": args.seed,
        "max_vus": args.max_vus,
        "think_scale": args.think_scale,
        "cleanup": False if args.no_cleanup else None,
        "ai_available": False if args.no_ai else None,
        "events_path": args.events,
        "log_level": args.log_level,
    }


def describe_suites() -> str:
    lines: List[str] = []
    for suite in SUITES.values():
        lines.append(f"{suite.name}: {suite.description}")
        for profile, stages in suite.profiles.items():
            total = sum(s.duration_seconds for s in stages)
            peak = max(s.target for s in stages)
            marker = " (default)" if profile == suite.default_profile else ""
            lines.append(f"  profile {profile}{marker}: {len(stages)} stages, {total:.0f}s, peak {peak} VUs")
        for profile in suite.profiles:
            weights = suite.profile_weights.get(profile)
            if weights is not None:
                shown = ", ".join(f"{n} {w}" for n, w in weights.items())
                lines.append(f"  scenarios [{profile}]: {shown}")
        if not suite.profile_weights:
            shown = ", ".join(f"{n} {w}" for n, w in suite.weights.items())
            lines.append(f"  scenarios: {shown}")
        if suite.requires_ai:
            lines.append("  requires AI backend")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    if args.list:
        print(describe_suites())
        return EXIT_OK

    try:
        settings = Settings.from_env(**_overrides(args))
    except ChatloadConfigError as exc:
        print(f"configuration error: {exc.message}", file=sys.stderr)
        return EXIT_CONFIG

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        runner = LoadRunner(settings)
        result = asyncio.run(runner.run())
    except ChatloadConfigError as exc:
        logger.error("Configuration error: %s", exc.message)
        return EXIT_CONFIG
    except ChatloadSetupError as exc:
        logger.error("Setup failed, run aborted: %s", exc.message)
        return EXIT_CONFIG
    except Exception:  # noqa: BLE001
        logger.exception("Run failed")
        return EXIT_ERROR

    print(result.format())
    if args.summary:
        Path(args.summary).write_text(result.to_json() + "\n", encoding="utf-8")
    if not result.passed:
        return EXIT_THRESHOLDS
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
