DEFAULT_BACKOFF_BASE = 2.0


def backoff_delay(attempt: int, base: float = DEFAULT_BACKOFF_BASE) -> float:
    """Seconds to wait after failed attempt ``attempt`` (0-based): 1, 2, 4, 8, ..."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return float(base ** attempt)
