"""
Random number generation for role shuffling and room codes.

Role assignment is the only hidden information in the game, so every draw
comes from the operating system CSPRNG (``secrets.randbelow``). Functions take
the ``randbelow`` source as a parameter so tests can drive them with a
deterministic sequence; production code never passes one.
"""

import secrets
from collections.abc import Callable, Sequence
from typing import Any

RandBelow = Callable[[int], int]


def secure_randbelow(bound: int) -> int:
    """Return a uniformly random integer in [0, bound) from the OS CSPRNG."""
    if bound <= 0:
        raise ValueError("bound must be positive")
    return secrets.randbelow(bound)


def fisher_yates_shuffle(items: Sequence[Any], randbelow: RandBelow = secure_randbelow) -> list[Any]:
    """
    Return a uniformly shuffled copy of items.

    For i from n-1 down to 1: swap result[i] with result[randbelow(i + 1)].
    With an unbiased randbelow every one of the n! orderings is equally likely.
    """
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = randbelow(i + 1)
        if not (0 <= j <= i):
            raise ValueError(f"randbelow({i + 1}) returned out-of-range value {j}")
        result[i], result[j] = result[j], result[i]
    return result


def random_string(alphabet: str, length: int, randbelow: RandBelow = secure_randbelow) -> str:
    """Draw length characters independently and uniformly from alphabet."""
    size = len(alphabet)
    return "".join(alphabet[randbelow(size)] for _ in range(length))
