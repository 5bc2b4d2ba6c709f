from __future__ import annotations

import itertools
import secrets

_counter = itertools.count(1)
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def uid() -> str:
    """Return a short id that is unique within this process."""
    return "x" + secrets.token_hex(4) + _base36(next(_counter))


def _base36(n: int) -> str:
    out = []
    while True:
        n, r = divmod(n, 36)
        out.append(_DIGITS[r])
        if n == 0:
            break
    return "".join(reversed(out))
