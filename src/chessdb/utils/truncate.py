MAX_ERROR_MESSAGE_LENGTH = 1000


def truncate_message(value: object, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """Render a value (usually an exception) as text capped at ``limit`` characters."""
    text = str(value)
    if isinstance(value, BaseException) and not text:
        text = type(value).__name__
    return text[:limit]
