import re

QUOTE_CHARS = "\"'“”‘’`"
TRAILING_PUNCTUATION = ".!?,;:"
WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(value: str) -> str:
    if not value:
        return ""
    return WHITESPACE.sub(" ", value).strip()


def strip_wrapping(value: str) -> str:
    if not value:
        return ""
    current = collapse_whitespace(value)
    previous = None
    while current != previous:
        previous = current
        current = current.strip().strip(QUOTE_CHARS).rstrip(TRAILING_PUNCTUATION).strip()
    return current


def truncate(value: str, length: int) -> str:
    if not value:
        return ""
    return value if len(value) <= length else value[:length].rstrip()
