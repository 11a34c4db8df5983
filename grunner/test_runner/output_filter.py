"""Reduce raw emulator output to the sentinel transcript compared with goldens."""

import re

SENTINEL = "***"
MISSING_CODE_MARKER = "*** Missing code at"

# CSI/OSC escape sequences as emitted by terminals and the guest console
_ANSI_RE = re.compile(
    "[\u001b\u009b][\\[\\]()#;?]*"
    "(?:(?:(?:[a-zA-Z\\d]*(?:;[a-zA-Z\\d]*)*)?\u0007)"
    "|(?:(?:\\d{1,4}(?:;\\d{0,4})*)?[\\dA-PRZcf-ntqry=><~]))"
)


def strip_ansi(text: str) -> str:
    """Remove terminal control sequences from ``text``."""
    return _ANSI_RE.sub("", text)


def filter_transcript(text: str) -> str:
    """Keep only lines starting with the sentinel, each newline-terminated.

    Escape sequences are stripped line by line before the prefix check, so a
    colored ``*** ...`` line is retained.
    """
    kept = []
    for line in text.split("\n"):
        line = strip_ansi(line).rstrip("\r")
        if line.startswith(SENTINEL):
            kept.append(line + "\n")
    return "".join(kept)


def is_unimplemented(transcript: str) -> bool:
    return MISSING_CODE_MARKER in transcript
