import json
import time
import uuid


def ms_now() -> int:
    return time.monotonic_ns() // 1_000_000


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def new_tool_call_id() -> str:
    """Locally unique id for tool calls whose backend does not supply one."""
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_args(raw: str | dict | None) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def stringify_output(output) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, default=str)
