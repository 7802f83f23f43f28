from datetime import timedelta


def should_flush(
    size: int,
    age: timedelta,
    size_threshold: int,
    age_threshold: timedelta,
) -> bool:
    """Flush once the batch is big enough or has been open long enough."""
    if size <= 0:
        return False
    return size >= size_threshold or age >= age_threshold
