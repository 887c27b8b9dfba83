"""
Staged campaign pipeline: fetch → filter → dedupe → send.

State is kept in data/state/ between invocations (for up to an hour), so each
stage can be run, inspected and re-run on its own. Re-running a stage resets
every stage after it.

Usage:
    python scripts/run.py --title CEO --daily-limit 50 --stage fetch
    python scripts/run.py --stage filter
    python scripts/run.py --stage dedupe --campaign-id <uuid>
    python scripts/run.py --stage send --campaign-id <uuid> --test-email me@example.com
    python scripts/run.py --title CEO --campaign-id <uuid> --stage all
    python scripts/run.py --status
    python scripts/run.py --reset

Requires APOLLO_API_KEY and INSTANTLY_API_KEY in the environment or .env.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leadflow.models.contact import CampaignSettings, SearchFilters
from leadflow.models.filter_options import EMPLOYEE_RANGES, PERSON_SENIORITIES
from leadflow.models.pipeline import PipelineState, StageState, StageStatus
from leadflow.pipeline import CampaignPipeline
from leadflow.services.state_store import SessionStateStore
from leadflow.utils.logger import setup_logger

SEP = "─" * 64

_GLYPHS = {
    StageStatus.IDLE: "·",
    StageStatus.RUNNING: "…",
    StageStatus.COMPLETED: "✓",
    StageStatus.ERROR: "✗",
}


# ── Output helpers ─────────────────────────────────────────────────────────────

def _section(title: str) -> None:
    print(f"\n{SEP}")
    print(f"  {title}")
    print(SEP)


def _ok(label: str, value: str) -> None:
    print(f"  ✓ {label:<20} {value}")


def _warn(label: str, value: str) -> None:
    print(f"  ⚠ {label:<20} {value}")


def _fail(label: str, value: str) -> None:
    print(f"  ✗ {label:<20} {value}")


def _stage_line(label: str, state: StageState, detail: str = "") -> None:
    glyph = _GLYPHS[state.status]
    text = state.error if state.status is StageStatus.ERROR else state.status.value
    print(f"  {glyph} {label:<20} {text}{'  - ' + detail if detail else ''}")


def _print_state(state: PipelineState) -> None:
    _section("Pipeline State")

    fetch = f"{len(state.fetch_result.contacts)} contact(s)" if state.fetch_result else ""
    _stage_line("Fetch", state.fetch_state, fetch)

    filt = ""
    if state.filter_result:
        out = state.filter_result.filtered_out
        filt = (
            f"{state.filter_result.total_verified} verified "
            f"(no email {out.no_email}, unverified {out.unverified}, generic {out.generic})"
        )
    _stage_line("Filter", state.filter_state, filt)

    dedupe = ""
    if state.dedupe_result:
        dedupe = (
            f"{len(state.dedupe_result.contacts)} new, "
            f"{state.dedupe_result.skipped_duplicates} duplicate(s) skipped"
        )
    _stage_line("Dedupe", state.dedupe_state, dedupe)

    send = ""
    if state.send_result:
        r = state.send_result
        send = f"sent {r.sent}, test sent {r.test_sent}, errors {r.errors}"
    _stage_line("Send", state.send_state, send)


# ── Main ───────────────────────────────────────────────────────────────────────

async def main(args: argparse.Namespace) -> int:
    filters = SearchFilters(
        person_titles=args.title,
        person_seniorities=args.seniority,
        locations=args.location,
        employee_ranges=args.employees,
        industries=args.industry,
        keywords=args.keywords,
        daily_limit=args.daily_limit,
    )
    settings = CampaignSettings(
        instantly_campaign_id=args.campaign_id,
        test_mode=bool(args.test_email),
        test_email=args.test_email,
    )
    pipeline = CampaignPipeline(filters, settings, store=SessionStateStore(args.session))

    print(f"\n{'═' * 64}")
    print(f"  Leadflow - Campaign Pipeline")
    print(f"{'═' * 64}")
    print(f"  Session   : {args.session}")
    if settings.test_mode:
        print(f"  Test mode : ON → {settings.test_email}")

    if args.reset:
        pipeline.reset_all()
        _ok("Reset", "All stages idle, stored state cleared")
        return 0

    if args.status:
        _print_state(pipeline.state)
        return 0

    stages = {
        "fetch": pipeline.run_fetch,
        "filter": pipeline.run_filter,
        "dedupe": pipeline.run_dedupe,
        "send": pipeline.run_send,
        "all": pipeline.run_all_stages,
    }

    _section(f"Running: {args.stage}")
    t0 = time.perf_counter()
    success = await stages[args.stage]()
    elapsed = time.perf_counter() - t0

    if success:
        _ok("Status", f"Complete in {elapsed:.1f}s")
    else:
        _fail("Status", f"Stopped after {elapsed:.1f}s")

    _print_state(pipeline.state)

    if not success:
        _warn("Note", "Fix the error above and re-run that stage; completed stages are kept.")
    return 0 if success else 1


# ── Entry point ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run the Apollo → Instantly campaign pipeline one stage at a time.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--stage", choices=["fetch", "filter", "dedupe", "send", "all"], default="all")
    parser.add_argument("--status", action="store_true", help="Print the stored pipeline state and exit")
    parser.add_argument("--reset", action="store_true", help="Reset every stage and clear stored state")
    parser.add_argument("--session", default="default", help="Name of the stored run (default: default)")

    # Search filters
    parser.add_argument("--title", action="append", default=[], help="Person title (repeatable)")
    parser.add_argument("--seniority", action="append", default=[], choices=PERSON_SENIORITIES)
    parser.add_argument("--location", action="append", default=[], help="Organization location (repeatable)")
    parser.add_argument("--employees", action="append", default=[], choices=EMPLOYEE_RANGES,
                        help="Employee range, e.g. 11,20 (repeatable)")
    parser.add_argument("--industry", action="append", default=[], help="Apollo industry tag id (repeatable)")
    parser.add_argument("--keywords", default="", help="Free-text keyword search")
    parser.add_argument("--daily-limit", type=int, default=50, help="Max contacts to fetch, 1–1000 (default: 50)")

    # Campaign settings
    parser.add_argument("--campaign-id", default="", help="Instantly campaign id")
    parser.add_argument("--test-email", default="",
                        help="Enables test mode: every lead is sent to this address instead")

    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    setup_logger(level="DEBUG" if args.debug else None)
    sys.exit(asyncio.run(main(args)))
