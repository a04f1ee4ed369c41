#!/usr/bin/env python3
"""Print the timestamped conversation trace of a call from the database.

Usage:
    python scripts/call_transcript.py                    # last call, human-readable
    python scripts/call_transcript.py --raw              # last call, raw JSON
    python scripts/call_transcript.py --call-sid CA...   # specific call
    python scripts/call_transcript.py --gap-threshold 3  # custom gap threshold
"""

import argparse
import asyncio
import json
import os
import sys

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from deliveryline.database import DEFAULT_DATABASE_URL, Database
from deliveryline.repository import CallRepository
from deliveryline.transcript import to_timestamped_dump


def build_dump(call_log) -> dict:
    """Timestamped dump of one CallLog row."""
    entries = list(call_log.conversation_log or [])
    dump = to_timestamped_dump(
        entries,
        start_time=0,
        call_sid=call_log.call_sid,
        phone=call_log.phone_number or "unknown",
        final_step=call_log.call_status,
    )
    if call_log.duration is not None:
        dump["duration_s"] = call_log.duration
    elif dump["entries"]:
        dump["duration_s"] = dump["entries"][-1]["t"]
    return dump


def format_transcript(transcript: dict, gap_threshold: float = 2.0) -> str:
    """Format a transcript dict into human-readable output with gap annotations."""
    lines = []

    sid = transcript.get("call_sid", "unknown")
    phone = transcript.get("phone", "unknown")
    duration = transcript.get("duration_s", 0)
    final_step = transcript.get("final_step", "unknown")
    lines.append(f"Call {sid} | {phone} | {duration}s | {final_step}")
    lines.append("═" * 55)
    lines.append("")

    entries = transcript.get("entries", [])
    prev_t = None

    for entry in entries:
        t = entry.get("t", 0.0)
        role = entry.get("role", "")
        step = entry.get("step", "")

        if prev_t is not None:
            gap = t - prev_t
            if gap >= gap_threshold:
                if gap >= 5.0:
                    lines.append(f"      ┆ +{gap:.1f}s ⚠ SLOW")
                else:
                    lines.append(f"      ┆ +{gap:.1f}s")

        step_tag = f"[{step}]" if step else ""
        t_str = f"{t:5.1f}s"

        if role == "agent":
            content = entry.get("content", "")
            lines.append(f"{t_str} {step_tag:<20} Agent: {content}")
        elif role == "user":
            content = entry.get("content", "")
            lines.append(f"{t_str} {step_tag:<20} Caller: {content}")
        elif role == "tool":
            name = entry.get("name", "unknown")
            result = entry.get("result", {})
            result_str = json.dumps(result)
            result_short = result_str if len(result_str) < 80 else result_str[:77] + "..."
            lines.append(f"{t_str} {step_tag:<20} ⚙ {name} → {result_short}")

        prev_t = t

    if entries:
        lines.append(f"{float(duration):5.1f}s {'':20} ☎ Call ended")

    return "\n".join(lines)


async def load_call_log(database_url: str, call_sid: str | None = None):
    db = Database(database_url)
    try:
        repository = CallRepository(db)
        if call_sid:
            return await repository.get_call_log(call_sid)
        return await repository.latest_call_log()
    finally:
        await db.close()


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="Print the conversation trace of a call")
    parser.add_argument("--raw", action="store_true", help="Output raw JSON")
    parser.add_argument("--call-sid", type=str, default=None, help="Specific call SID (default: latest call)")
    parser.add_argument("--gap-threshold", type=float, default=2.0, help="Gap threshold in seconds (default: 2.0)")
    parser.add_argument(
        "--database-url",
        type=str,
        default=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        help="SQLAlchemy async database URL",
    )
    args = parser.parse_args()

    try:
        call_log = asyncio.run(load_call_log(args.database_url, args.call_sid))
    except SQLAlchemyError as e:
        print(f"Error: could not read call logs: {e}", file=sys.stderr)
        sys.exit(1)

    if call_log is None:
        which = f"call {args.call_sid}" if args.call_sid else "any call"
        print(f"No trace found for {which}.", file=sys.stderr)
        sys.exit(1)

    transcript = build_dump(call_log)

    if args.raw:
        print(json.dumps(transcript, indent=2))
    else:
        print(format_transcript(transcript, gap_threshold=args.gap_threshold))


if __name__ == "__main__":
    main()
