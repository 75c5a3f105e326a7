"""Processes, their executable mappings and the object files behind them."""

from __future__ import annotations

import dataclasses
import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .buildid import BuildId
from .objectfile import ElfLoad, ExecutableId

logger = logging.getLogger(__name__)

Pid = int


class ExecutableMappingType(enum.Enum):
    """What kind of memory a mapping is backed by."""

    FILE_BACKED = "file_backed"
    """An object file loaded from disk."""
    ANONYMOUS = "anonymous"
    """Not file backed, typically produced by a JIT runtime."""
    VDSO = "vdso"
    """Special mapping that speeds up certain system calls."""


class ProcessStatus(enum.Enum):
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class ObjectFileInfo:
    """An open object file, kept open so it stays reachable after deletion."""

    file: BinaryIO
    path: Path
    elf_load_segments: list[ElfLoad] = field(default_factory=list)
    is_dyn: bool = False
    references: int = 0
    native_unwind_info_size: Optional[int] = None

    __eq__ = object.__eq__
    __hash__ = object.__hash__

    def open_file_path(self) -> Path:
        """The procfs path of the open descriptor, valid even if the file was deleted."""
        return Path(f"/proc/{os.getpid()}/fd/{self.file.fileno()}")

    def clone(self) -> ObjectFileInfo:
        """A copy holding a fresh descriptor, reopened through procfs."""
        return ObjectFileInfo(
            file=open(self.open_file_path(), "rb"),
            path=self.path,
            elf_load_segments=list(self.elf_load_segments),
            is_dyn=self.is_dyn,
            references=self.references,
            native_unwind_info_size=self.native_unwind_info_size,
        )

    def normalized_address(self, virtual_address: int, mapping: ExecutableMapping) -> Optional[int]:
        """The address relative to the object file, or None if no PT_LOAD segment holds it."""
        offset = virtual_address - mapping.start_addr + mapping.offset
        for segment in self.elf_load_segments:
            if segment.p_vaddr <= offset < segment.p_vaddr + segment.p_filesz:
                return offset - segment.p_offset + segment.p_vaddr
        return None

    def close(self) -> None:
        self.file.close()

    def __enter__(self) -> ObjectFileInfo:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass
class ExecutableMapping:
    """An executable memory mapping with what symbolization needs to know about it."""

    executable_id: ExecutableId
    build_id: Optional[BuildId]
    kind: ExecutableMappingType
    start_addr: int
    end_addr: int
    offset: int
    load_address: int
    main_exec: bool = False
    soft_delete: bool = False

    def mark_as_deleted(self, object_files: dict[ExecutableId, ObjectFileInfo]) -> bool:
        """Soft delete the mapping; True when its object file has no references left."""
        if self.soft_delete:
            return False
        self.soft_delete = True

        object_file = object_files.get(self.executable_id)
        if object_file is None or object_file.references == 0:
            return False

        object_file.references -= 1
        if object_file.references == 0:
            logger.debug("object file with path %s can be deleted", object_file.path)
            return True
        return False


@dataclass
class ExecutableMappings:
    """The executable mappings of one process."""

    mappings: list[ExecutableMapping] = field(default_factory=list)

    def for_address(self, virtual_address: int) -> Optional[ExecutableMapping]:
        """A copy of the mapping that holds the address, or None."""
        for mapping in self.mappings:
            if mapping.start_addr <= virtual_address < mapping.end_addr:
                return dataclasses.replace(mapping)
        return None

    def __iter__(self) -> Iterator[ExecutableMapping]:
        return iter(self.mappings)

    def __len__(self) -> int:
        return len(self.mappings)


@dataclass
class ProcessInfo:
    status: ProcessStatus
    mappings: ExecutableMappings