import time


def now_ms() -> int:
    """Current time as epoch milliseconds (the unit stored in Redis records)."""
    return int(time.time() * 1000)
