def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def daily_limit_reached(plan: str) -> str:
    if plan == "free":
        return "Daily conversion limit reached. Upgrade to premium for more conversions."
    return "Daily conversion limit reached. Please try again tomorrow."


def insufficient_conversions(remaining: int, file_count: int) -> str:
    return (
        f"Not enough conversions remaining. You have {_plural(remaining, 'conversion')} "
        f"left today, but trying to convert {_plural(file_count, 'file')}."
    )
