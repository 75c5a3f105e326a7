"""Identifiers and layout information read from ELF object files."""

from __future__ import annotations

import hashlib
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, NamedTuple, Optional, Union

from .buildid import BuildId

ExecutableId = int
"""Compact executable identifier: the first 8 bytes of the .text SHA-256."""

_ELF_MAGIC = b"\x7fELF"
_ELFCLASS32 = 1
_ELFCLASS64 = 2
_ELFDATA2LSB = 1
_ELFDATA2MSB = 2
_ET_DYN = 3
_PT_LOAD = 1
_PN_XNUM = 0xFFFF
_SHT_NOTE = 7
_SHT_NOBITS = 8
_SHN_XINDEX = 0xFFFF
_NT_GNU_BUILD_ID = 3

_GO_SECTIONS = frozenset({b".gosymtab", b".gopclntab", b".note.go.buildid"})
_DEBUG_INFO_SECTIONS = frozenset({b".debug_info", b".zdebug_info"})


class ObjectFileError(Exception):
    """Raised when an object file cannot be parsed or lacks required data."""


@dataclass(frozen=True)
class ElfLoad:
    """A PT_LOAD segment, used to normalize addresses."""

    p_offset: int
    p_vaddr: int
    p_filesz: int


class _Section(NamedTuple):
    name: bytes
    type: int
    offset: int
    size: int
    align: int


def _c_string(table: bytes, offset: int) -> bytes:
    if offset >= len(table):
        return b""
    end = table.find(b"\0", offset)
    return table[offset:end] if end >= 0 else table[offset:]


def _align_up(value: int, align: int) -> int:
    return (value + align - 1) // align * align


class _ElfImage:
    """A parsed view over the bytes of an ELF file."""

    def __init__(self, data: bytes) -> None:
        if len(data) < 16 or data[:4] != _ELF_MAGIC:
            raise ObjectFileError("not an ELF file")
        elf_class, encoding = data[4], data[5]
        if elf_class not in (_ELFCLASS32, _ELFCLASS64):
            raise ObjectFileError(f"unsupported ELF class {elf_class}")
        if encoding == _ELFDATA2LSB:
            self._endian = "<"
        elif encoding == _ELFDATA2MSB:
            self._endian = ">"
        else:
            raise ObjectFileError(f"unsupported ELF data encoding {encoding}")
        self.data = data
        self.is_64 = elf_class == _ELFCLASS64
        try:
            self._parse()
        except struct.error as exc:
            raise ObjectFileError(f"malformed ELF file: {exc}") from exc

    def _unpack(self, fmt: str, offset: int) -> tuple:
        return struct.unpack_from(self._endian + fmt, self.data, offset)

    def _parse(self) -> None:
        fmt = "HHIQQQIHHHHHH" if self.is_64 else "HHIIIIIHHHHHH"
        (
            self.e_type,
            _machine,
            _version,
            _entry,
            phoff,
            shoff,
            _flags,
            _ehsize,
            phentsize,
            phnum,
            shentsize,
            shnum,
            shstrndx,
        ) = self._unpack(fmt, 16)

        raw = self._section_headers(shoff, shentsize, shnum)
        if raw:
            if phnum == _PN_XNUM:
                phnum = raw[0][7]
            if shstrndx == _SHN_XINDEX:
                shstrndx = raw[0][6]

        unnamed = [_Section(b"", h[1], h[4], h[5], h[8]) for h in raw]
        strtab = self.section_data(unnamed[shstrndx]) if 0 < shstrndx < len(unnamed) else b""
        self.sections = [
            section._replace(name=_c_string(strtab, header[0]))
            for section, header in zip(unnamed, raw)
        ]
        self.load_segments = self._load_segments(phoff, phentsize, phnum)

    def _section_headers(self, shoff: int, shentsize: int, shnum: int) -> list[tuple]:
        if shoff == 0:
            return []
        fmt = "IIQQQQIIQQ" if self.is_64 else "IIIIIIIIII"
        if shentsize < struct.calcsize(fmt):
            raise ObjectFileError(f"invalid section header size {shentsize}")
        first = self._unpack(fmt, shoff)
        count = shnum if shnum else first[5]
        end = shoff + count * shentsize
        if end > len(self.data):
            raise ObjectFileError("section headers out of bounds")
        return [self._unpack(fmt, offset) for offset in range(shoff, end, shentsize)]

    def _load_segments(self, phoff: int, phentsize: int, phnum: int) -> list[ElfLoad]:
        if phoff == 0 or phnum == 0:
            return []
        fmt = "IIQQQQQQ" if self.is_64 else "IIIIIIII"
        if phentsize < struct.calcsize(fmt):
            raise ObjectFileError(f"invalid program header size {phentsize}")
        end = phoff + phnum * phentsize
        if end > len(self.data):
            raise ObjectFileError("program headers out of bounds")
        loads = []
        for offset in range(phoff, end, phentsize):
            fields = self._unpack(fmt, offset)
            if self.is_64:
                p_type, _flags, p_offset, p_vaddr, _paddr, p_filesz, _memsz, _align = fields
            else:
                p_type, p_offset, p_vaddr, _paddr, p_filesz, _memsz, _flags, _align = fields
            if p_type == _PT_LOAD:
                loads.append(ElfLoad(p_offset=p_offset, p_vaddr=p_vaddr, p_filesz=p_filesz))
        return loads

    def section_data(self, section: _Section) -> bytes:
        if section.type == _SHT_NOBITS:
            return b""
        end = section.offset + section.size
        if end > len(self.data):
            raise ObjectFileError("section data out of bounds")
        return self.data[section.offset : end]

    def notes(self, section: _Section) -> Iterator[tuple[bytes, int, bytes]]:
        """Yield (name, type, descriptor) for each note in a note section."""
        data = self.section_data(section)
        align = 8 if section.align == 8 else 4
        position = 0
        while position + 12 <= len(data):
            namesz, descsz, note_type = struct.unpack_from(self._endian + "III", data, position)
            name_start = position + 12
            desc_start = _align_up(name_start + namesz, align)
            desc_end = desc_start + descsz
            if desc_end > len(data):
                raise ObjectFileError("truncated ELF note")
            name = data[name_start : name_start + namesz].rstrip(b"\0")
            yield name, note_type, data[desc_start:desc_end]
            position = _align_up(desc_end, align)


def _text_digest(elf: _ElfImage) -> Optional[bytes]:
    for section in elf.sections:
        if section.name != b".text":
            continue
        try:
            data = elf.section_data(section)
        except ObjectFileError:
            continue
        return hashlib.sha256(data).digest()
    return None


def code_hash(data: bytes) -> Optional[bytes]:
    """SHA-256 digest of the .text section of an ELF image, or None if it has none."""
    return _text_digest(_ElfImage(bytes(data)))


class ObjectFile:
    """An ELF file on disk, parsed for identification and address normalization."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._elf = _ElfImage(self.path.read_bytes())
        digest = _text_digest(self._elf)
        if digest is None:
            raise ObjectFileError("code hash is None")
        self._code_hash = digest

    def id(self) -> ExecutableId:
        """The first 8 bytes of the code hash, read in native byte order."""
        return int.from_bytes(self._code_hash[:8], sys.byteorder)

    def build_id(self) -> BuildId:
        """The GNU build id, else the Go build id, else the hash of the .text section."""
        for section in self._elf.sections:
            if section.type != _SHT_NOTE:
                continue
            for name, note_type, desc in self._elf.notes(section):
                if name == b"GNU" and note_type == _NT_GNU_BUILD_ID:
                    return BuildId.gnu_from_bytes(desc)

        for section in self._elf.sections:
            if section.name == b".note.go.buildid":
                try:
                    data = self._elf.section_data(section)
                except ObjectFileError:
                    continue
                return BuildId.go_from_bytes(data)

        return BuildId.sha256_from_digest(self._code_hash)

    def has_debug_info(self) -> bool:
        return any(section.name in _DEBUG_INFO_SECTIONS for section in self._elf.sections)

    def is_dynamic(self) -> bool:
        return self._elf.e_type == _ET_DYN

    def is_go(self) -> bool:
        return any(section.name in _GO_SECTIONS for section in self._elf.sections)

    def elf_load_segments(self) -> list[ElfLoad]:
        return list(self._elf.load_segments)