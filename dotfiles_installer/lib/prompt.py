from __future__ import annotations

import sys
from typing import Callable, Optional, TextIO


def confirm(
    prompt: str,
    *,
    default: bool = False,
    input_fn: Callable[[str], str] = input,
    stdin: Optional[TextIO] = None,
) -> bool:
    """Ask a yes/no question.

    Non-interactive stdin or unreadable input returns ``default``, which is
    "no" unless the caller says otherwise.
    """

    stream = stdin if stdin is not None else sys.stdin
    if stream is None or not stream.isatty():
        return default

    suffix = " [Y/n] " if default else " [y/N] "
    try:
        reply = input_fn(prompt + suffix)
    except (EOFError, OSError):
        print()
        return default

    reply = reply.strip().lower()
    if not reply:
        return default
    return reply.startswith("y")
