"""Stack frames and their symbolization results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union


class SymbolizationError(Exception):
    """A frame could not be symbolized."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"Symbolization error {self.message}"

    def __repr__(self) -> str:
        return f"SymbolizationError({self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymbolizationError):
            return NotImplemented
        return self.message == other.message

    def __hash__(self) -> int:
        return hash((SymbolizationError, self.message))

    def debug(self) -> str:
        """Debug rendering used when printing frames."""
        escaped = (
            self.message.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )
        return f'Generic("{escaped}")'


SymbolizationResult = Union[Tuple[str, bool], SymbolizationError]


@dataclass(frozen=True)
class Frame:
    """A stack frame, optionally symbolized as (function name, inlined) or an error."""

    virtual_address: int = 0
    file_offset: Optional[int] = None
    symbolization_result: Optional[SymbolizationResult] = None

    @classmethod
    def with_error(cls, virtual_address: int, msg: str) -> Frame:
        return cls(
            virtual_address=virtual_address,
            file_offset=None,
            symbolization_result=SymbolizationError(msg),
        )

    def __str__(self) -> str:
        result = self.symbolization_result
        if result is None:
            return "frame not symbolized"
        if isinstance(result, SymbolizationError):
            return f"error: {result.debug()}"
        name, inlined = result
        return f"[inlined] {name}" if inlined else name