from __future__ import annotations

import re
import unicodedata

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n|\t")


def single_line(text: str | None) -> str:
    """Unicode-normalize text and turn line breaks into spaces.

    Used for ticket titles and article subjects, which are displayed on a
    single line. Runs of spaces are preserved.
    """

    normalized = unicodedata.normalize("NFC", text or "")
    normalized = _LINE_BREAK_RE.sub(" ", normalized)
    return normalized.strip()
