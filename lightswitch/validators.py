"""Validators for command line values."""

from __future__ import annotations

import math
import re
import sys
from datetime import timedelta

SAMPLE_FREQ_RANGE = range(1, 1009 + 1)

_UNSIGNED = re.compile(r"\+?[0-9]+")
_U64_LIMIT = 2**64


def _parse_u64(s: str) -> int:
    if not _UNSIGNED.fullmatch(s):
        raise ValueError(f"invalid unsigned integer: {s!r}")
    value = int(s)
    if value >= _U64_LIMIT:
        raise ValueError(f"number too large: {s!r}")
    return value


def is_prime(n: int) -> bool:
    """Whether n is a prime number."""
    if n < 2:
        return False
    if n < 4:
        return True
    if n % 2 == 0:
        return False
    for divisor in range(3, math.isqrt(n) + 1, 2):
        if n % divisor == 0:
            return False
    return True


def parse_duration(arg: str) -> timedelta:
    """Parse a whole number of seconds."""
    return timedelta(seconds=_parse_u64(arg))


def sample_freq_in_range(s: str) -> int:
    """Parse a sampling frequency that must be a prime within the allowed range."""
    try:
        sample_freq = _parse_u64(s)
    except ValueError:
        raise ValueError(f"`{s}' isn't a valid frequency") from None
    if sample_freq not in SAMPLE_FREQ_RANGE:
        raise ValueError(
            "sample frequency not in allowed range "
            f"{SAMPLE_FREQ_RANGE.start}-{SAMPLE_FREQ_RANGE.stop - 1}"
        )
    if not is_prime(sample_freq):
        try:
            prime_before, prime_after = primes_before_after(sample_freq)
        except ValueError:
            print("primes_before_after should not have failed", file=sys.stderr)
        else:
            raise ValueError(
                f"Sample frequency {sample_freq} is not prime - use {prime_before} "
                f"(before) or {prime_after} (after) instead"
            )
    return sample_freq


def value_is_power_of_two(s: str) -> int:
    """Parse an unsigned integer that must be a power of two."""
    try:
        value = _parse_u64(s)
    except ValueError:
        raise ValueError(f"`{s}' isn't a valid usize") from None
    if value > 0 and value & (value - 1) == 0:
        return value
    raise ValueError(f"{value} is not a power of 2")


def primes_before_after(non_prime: int) -> tuple[int, int]:
    """Return the primes just below and just above a non-prime number."""
    if is_prime(non_prime):
        raise ValueError(f"{non_prime} is prime")
    if non_prime < 3:
        raise ValueError(f"there is no prime before {non_prime}")
    before = non_prime - 1
    while not is_prime(before):
        before -= 1
    after = non_prime + 1
    while not is_prime(after):
        after += 1
    return before, after