"""Identifier and clock helpers shared by the ledger and the operation layers."""
from __future__ import annotations

import random
import string
import time
from typing import Callable, Collection

_ALPHABET = string.ascii_lowercase + string.digits
MAX_ID_ATTEMPTS = 100


def now_millis() -> int:
    return int(time.time() * 1000)


def random_token(length: int) -> str:
    return "".join(random.choices(_ALPHABET, k=length))


def generate_unique_id(
    prefix: str,
    existing: Collection[str],
    clock: Callable[[], int] = now_millis,
) -> str:
    """Return ``{prefix}{millis}_{token}`` not present in ``existing``.

    After ``MAX_ID_ATTEMPTS`` collisions the attempt counter replaces the
    random token, which ends the loop but is not checked against ``existing``.
    """
    attempts = 0
    while True:
        timestamp = clock()
        candidate = f"{prefix}{timestamp}_{random_token(4)}"
        attempts += 1
        if attempts > MAX_ID_ATTEMPTS:
            return f"{prefix}{timestamp}_{attempts}"
        if candidate not in existing:
            return candidate
