"""Metadata labels attached to profile samples."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class NumberValue:
    """A numeric label value together with its unit."""

    value: int
    unit: str


@dataclass(frozen=True)
class MetadataLabel:
    """A key and either a string or a numeric value."""

    key: str
    value: Union[str, NumberValue]

    @classmethod
    def from_string_value(cls, key: str, value: str) -> MetadataLabel:
        return cls(key, value)

    @classmethod
    def from_number_value(cls, key: str, value: int, unit: str) -> MetadataLabel:
        return cls(key, NumberValue(value, unit))