"""
One-shot campaign run: fetch, filter, dedupe and send in a single pass.

Unlike scripts/run.py nothing is stored between runs; the script prints the
final counters. Suited to cron jobs.

Usage:
    python scripts/run_campaign.py request.json
    python scripts/run_campaign.py request.json --debug

request.json:
    {
      "apollo_filters": {"person_titles": ["CEO"]},
      "instantly_campaign_id": "<uuid>",
      "daily_limit": 50,
      "test_mode": true,
      "test_email": "me@example.com"
    }
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
import traceback
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leadflow.errors import LeadflowError, PreconditionError, UpstreamError
from leadflow.services.campaign_run import run_campaign, validate_run_request
from leadflow.utils.logger import setup_logger

SEP = "─" * 64


def _section(title: str) -> None:
    print(f"\n{SEP}")
    print(f"  {title}")
    print(SEP)


def _ok(label: str, value: str) -> None:
    print(f"  ✓ {label:<20} {value}")


def _fail(label: str, value: str) -> None:
    print(f"  ✗ {label:<20} {value}")


async def main(request_path: Path, debug: bool) -> int:
    _section("STEP 1 - Load Request")
    if not request_path.exists():
        _fail("File", f"Not found: {request_path}")
        return 1

    try:
        with open(request_path, encoding="utf-8") as f:
            body = json.load(f)
        request = validate_run_request(body)
    except json.JSONDecodeError as e:
        _fail("JSON", f"Invalid JSON in request file: {e}")
        return 1
    except PreconditionError as e:
        _fail("Request", str(e))
        return 1

    _ok("Campaign", request.instantly_campaign_id)
    _ok("Daily limit", str(request.daily_limit))
    _ok("Test mode", f"ON → {request.test_email}" if request.test_mode else "off")

    _section("STEP 2 - Run")
    t0 = time.perf_counter()
    try:
        response = await run_campaign(request)
    except UpstreamError as e:
        _fail("Run", f"{e} - {e.details or ''}")
        return 1
    except LeadflowError as e:
        _fail("Run", str(e))
        if debug:
            traceback.print_exc()
        return 1
    elapsed = time.perf_counter() - t0

    _ok("Status", f"Complete in {elapsed:.1f}s")
    for label, value in response.model_dump().items():
        _ok(label.replace("_", " ").capitalize(), str(value))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="One-shot Apollo → Instantly campaign run.")
    parser.add_argument("request", type=Path, help="Path to the run request JSON file")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and tracebacks")
    args = parser.parse_args()

    setup_logger(level="DEBUG" if args.debug else None)
    sys.exit(asyncio.run(main(args.request, args.debug)))
