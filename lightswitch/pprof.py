"""Builder for profiles in the pprof protocol buffer format."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Union

_MASK64 = (1 << 64) - 1
_NANOS_PER_SECOND = 1_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_WIRE_VARINT = 0
_WIRE_LEN = 2


class PprofValidationError(Exception):
    """Raised when a profile is not semantically correct."""


@dataclass(frozen=True)
class LabelNumber:
    """A numeric label value together with its unit."""

    value: int
    unit: str


class _Writer:
    """Accumulates protocol buffer fields, omitting proto3 default values."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @staticmethod
    def _varint(value: int) -> bytes:
        value &= _MASK64
        out = bytearray()
        while True:
            low = value & 0x7F
            value >>= 7
            if value:
                out.append(low | 0x80)
            else:
                out.append(low)
                return bytes(out)

    def _key(self, number: int, wire_type: int) -> None:
        self._buffer += self._varint((number << 3) | wire_type)

    def varint(self, number: int, value: int) -> None:
        if value:
            self._key(number, _WIRE_VARINT)
            self._buffer += self._varint(value)

    def boolean(self, number: int, value: bool) -> None:
        self.varint(number, 1 if value else 0)

    def length_delimited(self, number: int, data: bytes) -> None:
        self._key(number, _WIRE_LEN)
        self._buffer += self._varint(len(data))
        self._buffer += data

    def string(self, number: int, value: str) -> None:
        self.length_delimited(number, value.encode("utf-8"))

    def packed(self, number: int, values: Sequence[int]) -> None:
        if values:
            self.length_delimited(number, b"".join(self._varint(v) for v in values))

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


@dataclass
class ValueType:
    type: int = 0
    unit: int = 0

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.type)
        writer.varint(2, self.unit)
        return writer.getvalue()


@dataclass
class Label:
    key: int = 0
    string: int = 0
    num: int = 0
    num_unit: int = 0

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.key)
        writer.varint(2, self.string)
        writer.varint(3, self.num)
        writer.varint(4, self.num_unit)
        return writer.getvalue()


@dataclass
class Mapping:
    id: int = 0
    memory_start: int = 0
    memory_limit: int = 0
    file_offset: int = 0
    filename: int = 0
    build_id: int = 0
    has_functions: bool = False
    has_filenames: bool = False
    has_line_numbers: bool = False
    has_inline_frames: bool = False

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.id)
        writer.varint(2, self.memory_start)
        writer.varint(3, self.memory_limit)
        writer.varint(4, self.file_offset)
        writer.varint(5, self.filename)
        writer.varint(6, self.build_id)
        writer.boolean(7, self.has_functions)
        writer.boolean(8, self.has_filenames)
        writer.boolean(9, self.has_line_numbers)
        writer.boolean(10, self.has_inline_frames)
        return writer.getvalue()


@dataclass
class Line:
    function_id: int = 0
    line: int = 0

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.function_id)
        writer.varint(2, self.line)
        return writer.getvalue()


@dataclass
class Function:
    id: int = 0
    name: int = 0
    system_name: int = 0
    filename: int = 0
    start_line: int = 0

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.id)
        writer.varint(2, self.name)
        writer.varint(3, self.system_name)
        writer.varint(4, self.filename)
        writer.varint(5, self.start_line)
        return writer.getvalue()


@dataclass
class Location:
    id: int = 0
    mapping_id: int = 0
    address: int = 0
    lines: list[Line] = field(default_factory=list)
    is_folded: bool = False

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.varint(1, self.id)
        writer.varint(2, self.mapping_id)
        writer.varint(3, self.address)
        for line in self.lines:
            writer.length_delimited(4, line._encode())
        writer.boolean(5, self.is_folded)
        return writer.getvalue()


@dataclass
class Sample:
    location_ids: list[int] = field(default_factory=list)
    values: list[int] = field(default_factory=list)
    labels: list[Label] = field(default_factory=list)

    def _encode(self) -> bytes:
        writer = _Writer()
        writer.packed(1, self.location_ids)
        writer.packed(2, self.values)
        for label in self.labels:
            writer.length_delimited(3, label._encode())
        return writer.getvalue()


@dataclass
class Profile:
    sample_types: list[ValueType] = field(default_factory=list)
    samples: list[Sample] = field(default_factory=list)
    mappings: list[Mapping] = field(default_factory=list)
    locations: list[Location] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    string_table: list[str] = field(default_factory=list)
    drop_frames: int = 0
    keep_frames: int = 0
    time_nanos: int = 0
    duration_nanos: int = 0
    period_type: Optional[ValueType] = None
    period: int = 0
    comments: list[int] = field(default_factory=list)
    default_sample_type: int = 0

    def encode(self) -> bytes:
        """Serialize to the protocol buffer wire format."""
        writer = _Writer()
        for sample_type in self.sample_types:
            writer.length_delimited(1, sample_type._encode())
        for sample in self.samples:
            writer.length_delimited(2, sample._encode())
        for mapping in self.mappings:
            writer.length_delimited(3, mapping._encode())
        for location in self.locations:
            writer.length_delimited(4, location._encode())
        for function in self.functions:
            writer.length_delimited(5, function._encode())
        for string in self.string_table:
            writer.string(6, string)
        writer.varint(7, self.drop_frames)
        writer.varint(8, self.keep_frames)
        writer.varint(9, self.time_nanos)
        writer.varint(10, self.duration_nanos)
        if self.period_type is not None:
            writer.length_delimited(11, self.period_type._encode())
        writer.varint(12, self.period)
        writer.packed(13, self.comments)
        writer.varint(14, self.default_sample_type)
        return writer.getvalue()

    def __bytes__(self) -> bytes:
        return self.encode()


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _to_nanos(delta: timedelta) -> int:
    return delta // timedelta(microseconds=1) * 1000


def _timestamp_nanos(moment: Union[datetime, int, float]) -> int:
    if isinstance(moment, datetime):
        if moment.tzinfo is None:
            moment = moment.astimezone()
        return _to_nanos(moment - _EPOCH)
    return int(moment * _NANOS_PER_SECOND)


def _duration_nanos(duration: Union[timedelta, int, float]) -> int:
    if isinstance(duration, timedelta):
        return _to_nanos(duration)
    return int(duration * _NANOS_PER_SECOND)


LabelValue = Union[str, LabelNumber]


class PprofBuilder:
    """Incrementally assembles a pprof profile, deduplicating shared entries."""

    def __init__(
        self,
        profile_start: Union[datetime, int, float],
        duration: Union[timedelta, int, float],
        freq_in_hz: int,
    ) -> None:
        self.time_nanos = _timestamp_nanos(profile_start)
        self.duration_nanos = _duration_nanos(duration)
        self.freq_in_hz = int(freq_in_hz)

        self._known_mappings: dict[int, int] = {}
        self.mappings: list[Mapping] = []

        self._known_strings: dict[str, int] = {}
        self.string_table: list[str] = []

        self._known_locations: dict[tuple[int, int], int] = {}
        self.locations: list[Location] = []

        self._known_functions: dict[int, int] = {}
        self.functions: list[Function] = []

        self.samples: list[Sample] = []

    def validate(self) -> None:
        """Check that every referenced id exists; raises PprofValidationError."""
        for sample in self.samples:
            for location_id in sample.location_ids:
                if location_id == 0:
                    raise PprofValidationError("Found a null location (id=0)")
                if not 0 < location_id <= len(self.locations):
                    raise PprofValidationError(f"Location with id {location_id} not found")
                self._validate_location(self.locations[location_id - 1])

    def _validate_location(self, location: Location) -> None:
        mapping_id = location.mapping_id
        if mapping_id == 0:
            raise PprofValidationError("Found a null mapping (id=0)")
        if not 0 < mapping_id <= len(self.mappings):
            raise PprofValidationError(f"Mapping with id {mapping_id} not found")
        if self.mappings[mapping_id - 1].id == 0:
            raise PprofValidationError("Found a null mapping (id=0)")
        for line in location.lines:
            self._validate_line(line)

    def _validate_line(self, line: Line) -> None:
        function_id = line.function_id
        if function_id == 0:
            raise PprofValidationError("Found a null function_id (id=0)")
        if not 0 < function_id <= len(self.functions):
            raise PprofValidationError(f"Function with id {function_id} not found")
        function = self.functions[function_id - 1]
        if function.id == 0:
            raise PprofValidationError("Found a null function (id=0)")
        if not 0 <= function.name < len(self.string_table):
            raise PprofValidationError(
                f"Could not find function name with id {function.name}"
            )

    def string_id(self, string: str) -> Optional[int]:
        """The id of a string in the string table, or None if absent."""
        return self._known_strings.get(string)

    def get_or_insert_string(self, string: str) -> int:
        """Insert a string into the string table if needed and return its id."""
        # The first entry of the string table must be the empty string.
        if not self.string_table:
            self._known_strings[""] = 0
            self.string_table.append("")

        existing = self._known_strings.get(string)
        if existing is not None:
            return existing
        string_id = len(self.string_table)
        self._known_strings[string] = string_id
        self.string_table.append(string)
        return string_id

    def add_function(self, func_name: str) -> int:
        name_idx = self.get_or_insert_string(func_name)
        filename_idx = self.get_or_insert_string("no-filename")

        existing = self._known_functions.get(name_idx)
        if existing is not None:
            return existing
        function_id = len(self.functions) + 1
        self._known_functions[name_idx] = function_id
        self.functions.append(
            Function(
                id=function_id,
                name=name_idx,
                system_name=name_idx,
                filename=filename_idx,
            )
        )
        return function_id

    def add_line(self, func_name: str) -> tuple[Line, int]:
        function_id = self.add_function(func_name)
        return Line(function_id=function_id), function_id

    def add_location(self, address: int, mapping_id: int, lines: Sequence[Line]) -> int:
        unique_id = (address, mapping_id)
        existing = self._known_locations.get(unique_id)
        if existing is not None:
            return existing
        location_id = len(self.locations) + 1
        self._known_locations[unique_id] = location_id
        self.locations.append(
            Location(
                id=location_id,
                mapping_id=mapping_id,
                address=address,
                lines=list(lines),
                is_folded=False,
            )
        )
        return location_id

    def add_mapping(
        self, id: int, start: int, end: int, offset: int, filename: str, build_id: str
    ) -> int:
        """Add a memory mapping keyed by its unique id; returns its index-based id."""
        mapping = Mapping(
            id=id,
            memory_start=start,
            memory_limit=end,
            file_offset=offset,
            filename=self.get_or_insert_string(filename),
            build_id=self.get_or_insert_string(build_id),
        )
        existing = self._known_mappings.get(id)
        if existing is not None:
            return existing
        mapping_index = len(self.mappings) + 1
        self._known_mappings[id] = mapping_index
        self.mappings.append(mapping)
        return mapping_index

    def add_sample(self, location_ids: Sequence[int], count: int, labels: Sequence[Label]) -> None:
        # The leaf is at location_ids[0].
        self.samples.append(
            Sample(
                location_ids=list(location_ids),
                values=[count, _trunc_div(count * _NANOS_PER_SECOND, self.freq_in_hz)],
                labels=list(labels),
            )
        )

    def new_label(self, key: str, value: LabelValue) -> Label:
        """Create a label whose value is a string or a number with a unit."""
        label = Label(key=self.get_or_insert_string(key))
        if isinstance(value, str):
            label.string = self.get_or_insert_string(value)
        else:
            label.num = value.value
            label.num_unit = self.get_or_insert_string(value.unit)
        return label

    def build(self) -> Profile:
        sample_type = ValueType(
            type=self.get_or_insert_string("samples"),
            unit=self.get_or_insert_string("count"),
        )
        period_type = ValueType(
            type=self.get_or_insert_string("cpu"),
            unit=self.get_or_insert_string("nanoseconds"),
        )
        # Marks profiles produced here, since mapping ids are used in a non-standard way.
        comments = [self.get_or_insert_string("lightswitch")]

        return Profile(
            sample_types=[sample_type, period_type],
            samples=list(self.samples),
            mappings=list(self.mappings),
            locations=list(self.locations),
            functions=list(self.functions),
            string_table=list(self.string_table),
            drop_frames=0,
            keep_frames=0,
            time_nanos=self.time_nanos,
            duration_nanos=self.duration_nanos,
            period_type=ValueType(type=period_type.type, unit=period_type.unit),
            period=_trunc_div(_NANOS_PER_SECOND, self.freq_in_hz),
            comments=comments,
            default_sample_type=0,
        )