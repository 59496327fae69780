from __future__ import annotations

import unicodedata


def _escape_unprintable(char: str) -> str:
    if char.isprintable():
        return char
    return char.encode("unicode_escape").decode("ascii")


def display_text(value: str) -> str:
    """Return a one-line, terminal-safe rendering of a path or message.

    Undecodable bytes (lone surrogates) become replacement characters, the
    text is NFC-normalized, and control characters such as a newline in a
    file name are shown escaped so each path stays on its own line.
    Only for output: never feed the result back into filesystem calls.
    """
    text = value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    text = unicodedata.normalize("NFC", text)
    if text.isprintable():
        return text
    return "".join(_escape_unprintable(char) for char in text)
