import re

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)

MAX_TOPIC_KEY_LENGTH = 64


def topic_key(label: str | None, max_length: int = MAX_TOPIC_KEY_LENGTH) -> str:
    """
    Normalize a topic label into a dedup key.

    "Widget editing  friction!" -> "widget-editing-friction"
    """
    if not label or not label.strip():
        return "unknown"

    key = _NON_ALNUM.sub("-", label.strip().lower()).strip("-")
    key = key[:max_length].rstrip("-")
    return key or "unknown"
