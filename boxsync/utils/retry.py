def backoff_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """
    Exponential backoff for the given 1-based attempt, capped at max_seconds.

    attempt 1 -> base, attempt 2 -> 2 * base, attempt 3 -> 4 * base, ...
    """
    if attempt < 1 or base_seconds <= 0:
        return 0.0
    return min(max_seconds, base_seconds * (2 ** (attempt - 1)))
