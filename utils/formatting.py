"""String helpers for push payloads and logs."""


def stringify_value(value: str | int | float | bool | None) -> str:
    """Render a primitive as a push data string (FCM data values are strings only)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def stringify_data(data: dict[str, str | int | float | bool | None]) -> dict[str, str]:
    """Stringify every value of a semantic data map."""
    return {str(key): stringify_value(value) for key, value in data.items()}


def mask_token(token: str) -> str:
    """Short preview of a device token, safe for logs."""
    if len(token) <= 12:
        return token[:4] + "..."
    return f"{token[:8]}...{token[-4:]}"


def truncate(text: str, max_length: int = 1024) -> str:
    """Truncate text to max_length, adding ellipsis if needed."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
