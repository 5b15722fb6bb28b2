# src/services/ids.py
import secrets
import time

TEMP_ID_PREFIX = "temp"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def is_temp_id(value: str | None) -> bool:
    """True for placeholder ids that were never persisted."""
    return bool(value) and value.startswith(f"{TEMP_ID_PREFIX}_")


class TempIdAllocator:
    """Placeholder ids for generated recipes: millisecond time seed + random suffix."""

    def __init__(self, suffix_bytes: int = 4) -> None:
        self.suffix_bytes = suffix_bytes

    def allocate(self) -> str:
        seed = _to_base36(time.time_ns() // 1_000_000)
        return f"{TEMP_ID_PREFIX}_{seed}_{secrets.token_hex(self.suffix_bytes)}"
