import time


def user_entry(content: str, step: str, timestamp: float | None = None) -> dict:
    return {
        "role": "user",
        "content": content,
        "timestamp": time.time() if timestamp is None else timestamp,
        "step": step,
    }


def agent_entry(content: str, step: str, timestamp: float | None = None) -> dict:
    return {
        "role": "agent",
        "content": content,
        "timestamp": time.time() if timestamp is None else timestamp,
        "step": step,
    }


def tool_entry(name: str, result: dict, step: str, timestamp: float | None = None) -> dict:
    return {
        "role": "tool",
        "name": name,
        "result": result,
        "timestamp": time.time() if timestamp is None else timestamp,
        "step": step,
    }


def to_timestamped_dump(
    log: list[dict],
    start_time: float,
    call_sid: str,
    phone: str,
    final_step: str,
    duration_s: int | float = 0,
) -> dict:
    """Build a timestamped transcript dump of one call.

    Timestamps are converted to relative seconds from call start.
    If start_time is 0, uses the first entry's timestamp as base.
    Entries missing a timestamp key are skipped.
    """
    base_time = start_time
    if base_time <= 0 and log:
        for entry in log:
            if "timestamp" in entry:
                base_time = entry["timestamp"]
                break

    entries = []
    for entry in log:
        if "timestamp" not in entry:
            continue
        e = {
            "t": round(entry["timestamp"] - base_time, 1),
            "role": entry["role"],
            "step": entry.get("step", ""),
        }
        if "content" in entry:
            e["content"] = entry["content"]
        if "name" in entry:
            e["name"] = entry["name"]
        if "result" in entry:
            e["result"] = entry["result"]
        entries.append(e)

    return {
        "call_sid": call_sid,
        "phone": phone,
        "final_step": final_step,
        "duration_s": duration_s,
        "entries": entries,
    }
