"""Kernel symbol parsing from kallsyms."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Union

KALLSYM_PATH = "/proc/kallsyms"

_HEX = re.compile(r"\+?[0-9a-fA-F]+")
_TEXT_SYMBOL_TYPES = frozenset({"T", "W"})


@dataclass(frozen=True)
class Ksym:
    """A kernel text symbol and its start address."""

    start_addr: int
    symbol_name: str


def _parse_address(text: str) -> int | None:
    if not _HEX.fullmatch(text):
        return None
    value = int(text, 16)
    return value if value < 2**64 else None


def iter_ksyms(reader: Iterable[Union[str, bytes]]) -> Iterator[Ksym]:
    """Yield the text symbols found in kallsyms-formatted lines."""
    for raw_line in reader:
        if isinstance(raw_line, bytes):
            try:
                line = raw_line.decode("utf-8")
            except UnicodeDecodeError:
                return
        else:
            line = raw_line
        parts = line.split(" ")
        if len(parts) < 3:
            continue
        addr_str, symbol_type, symbol_name = parts[0], parts[1], parts[2]
        if symbol_type not in _TEXT_SYMBOL_TYPES:
            continue
        start_addr = _parse_address(addr_str)
        if start_addr is None:
            continue
        yield Ksym(start_addr=start_addr, symbol_name=symbol_name.strip())


def from_kallsyms(path: str = KALLSYM_PATH) -> list[Ksym]:
    """Read all text symbols from a kallsyms file; raises OSError if it cannot be opened."""
    with open(path, "rb") as handle:
        return list(iter_ksyms(handle))