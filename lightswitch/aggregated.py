"""Aggregated samples, raw as read from the unwinders and processed into frames."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional, Sequence

from .frame import Frame
from .objectfile import ExecutableId
from .process import ObjectFileInfo, Pid, ProcessInfo

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Raised when a raw sample cannot be turned into a processed one."""


def _debug_str(text: str) -> str:
    """Quote and escape a string the way debug struct output does."""
    escaped = []
    for char in text:
        if char == "\\":
            escaped.append("\\\\")
        elif char == '"':
            escaped.append('\\"')
        elif char == "\n":
            escaped.append("\\n")
        elif char == "\r":
            escaped.append("\\r")
        elif char == "\t":
            escaped.append("\\t")
        elif not char.isprintable():
            escaped.append(f"\\u{{{ord(char):x}}}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


@dataclass(frozen=True)
class NativeStack:
    """Fixed-size array of addresses of which only the first `len` are valid."""

    addresses: Sequence[int] = field(default_factory=tuple)
    len: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "addresses", tuple(self.addresses))

    def __iter__(self) -> Iterator[int]:
        return iter(self.addresses[: self.len])


def _format_native_stack(stack: Optional[NativeStack]) -> str:
    if stack is None:
        entries = ["NONE"]
    else:
        entries = [f"{i:3}: {address:#018x}" for i, address in enumerate(stack)]
    return f"[{','.join(entries)}]"


def _format_frames(frames: Sequence[Frame]) -> str:
    if not frames:
        entries = ["NONE"]
    else:
        entries = [f"{i:3}: {frame}" for i, frame in enumerate(frames)]
    return f"[{','.join(entries)}]"


@dataclass(frozen=True)
class AggregatedSample:
    """A sample whose stacks are frames, symbolized or not."""

    pid: Pid = 0
    tid: Pid = 0
    ustack: Sequence[Frame] = field(default_factory=tuple)
    kstack: Sequence[Frame] = field(default_factory=tuple)
    count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "ustack", tuple(self.ustack))
        object.__setattr__(self, "kstack", tuple(self.kstack))

    def __str__(self) -> str:
        return (
            f"SymbolizedAggregatedSample {{ pid: {self.pid}, tid: {self.tid}, "
            f"ustack: {_debug_str(_format_frames(self.ustack))}, "
            f"kstack: {_debug_str(_format_frames(self.kstack))}, "
            f"count: {self.count} }}"
        )


@dataclass(frozen=True)
class RawAggregatedSample:
    """A sample with the raw stack addresses collected by the unwinders."""

    pid: Pid
    tid: Pid
    ustack: Optional[NativeStack]
    kstack: Optional[NativeStack]
    count: int

    def process(
        self,
        procs: Mapping[Pid, ProcessInfo],
        objs: Mapping[ExecutableId, ObjectFileInfo],
    ) -> AggregatedSample:
        """Turn the raw addresses into unsymbolized frames with their file offsets.

        Raises ProcessingError if the process is unknown or no stack is left.
        """
        info = procs.get(self.pid)
        if info is None:
            raise ProcessingError("process not found")

        ustack: list[Frame] = []
        if self.ustack is not None:
            for virtual_address in self.ustack:
                mapping = info.mappings.for_address(virtual_address)
                if mapping is None:
                    continue
                obj = objs.get(mapping.executable_id)
                if obj is None:
                    logger.error("executable with id %s not found", mapping.executable_id)
                    file_offset = None
                else:
                    file_offset = obj.normalized_address(virtual_address, mapping)
                ustack.append(Frame(virtual_address=virtual_address, file_offset=file_offset))

        # Kernel addresses are not normalized.
        kstack = (
            [Frame(virtual_address=address) for address in self.kstack]
            if self.kstack is not None
            else []
        )

        if not ustack and not kstack:
            raise ProcessingError("no user or kernel stack present")

        return AggregatedSample(
            pid=self.pid, tid=self.tid, ustack=ustack, kstack=kstack, count=self.count
        )

    def __str__(self) -> str:
        return (
            f"RawAggregatedSample {{ pid: {self.pid}, tid: {self.tid}, "
            f"ustack: {_debug_str(_format_native_stack(self.ustack))}, "
            f"kstack: {_debug_str(_format_native_stack(self.kstack))}, "
            f"count: {self.count} }}"
        )


@dataclass(frozen=True)
class FrameAddress:
    """A frame's process address and its offset within the object file."""

    virtual_address: int
    file_offset: int


RawAggregatedProfile = list
"""A list of RawAggregatedSample."""
AggregatedProfile = list
"""A list of AggregatedSample, symbolized or not."""