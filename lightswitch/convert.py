"""Conversions between profile representations: pprof, folded stacks, processed samples."""

from __future__ import annotations

import bisect
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional, Sequence, Union

from .aggregated import AggregatedSample, ProcessingError, RawAggregatedSample
from .frame import Frame, SymbolizationError, SymbolizationResult
from .ksym import Ksym
from .metadata_label import NumberValue
from .metadata_provider import GlobalMetadataProvider, TaskKey
from .objectfile import ExecutableId
from .pprof import Label, LabelNumber, LabelValue, Line, PprofBuilder, Profile
from .process import ObjectFileInfo, ProcessInfo
from .taskname import TaskName

logger = logging.getLogger(__name__)

_KERNEL_MAPPING_ID = 0x1000000
_KERNEL_MAPPING_START = 0xFFFFFFFF
_KERNEL_MAPPING_END = 0xFFFFFFFF
_KERNEL_MAPPING_NAME = "[kernel]"
_KERNEL_BUILD_ID = "fake_kernel_build_id"


def _label_value(value: Union[str, NumberValue]) -> LabelValue:
    if isinstance(value, NumberValue):
        return LabelNumber(value.value, value.unit)
    return value


def _lines_for(builder: PprofBuilder, result: Optional[SymbolizationResult]) -> list[Line]:
    if result is None:
        return []
    name = str(result) if isinstance(result, SymbolizationError) else result[0]
    line, _ = builder.add_line(name)
    return [line]


def _executable_name(obj: ObjectFileInfo) -> str:
    return str(obj.path).split("/")[-1]


def to_pprof(
    profile: Iterable[AggregatedSample],
    procs: Mapping[int, ProcessInfo],
    objs: Mapping[ExecutableId, ObjectFileInfo],
    metadata_provider: GlobalMetadataProvider,
    profile_duration: Union[timedelta, int, float],
    profile_frequency_hz: int,
) -> Profile:
    """Convert a (possibly symbolized) profile to pprof."""
    # Not exactly when the profiling session started, but close enough.
    profile_start = datetime.now(timezone.utc)
    builder = PprofBuilder(profile_start, profile_duration, profile_frequency_hz)
    task_to_labels: dict[int, list[Label]] = {}

    for sample in profile:
        location_ids: list[int] = []

        for kframe in sample.kstack:
            mapping_id = builder.add_mapping(
                _KERNEL_MAPPING_ID,
                _KERNEL_MAPPING_START,
                _KERNEL_MAPPING_END,
                0x0,
                _KERNEL_MAPPING_NAME,
                _KERNEL_BUILD_ID,
            )
            lines = _lines_for(builder, kframe.symbolization_result)
            location_ids.append(builder.add_location(kframe.virtual_address, mapping_id, lines))

        for uframe in sample.ustack:
            virtual_address = uframe.virtual_address
            info = procs.get(sample.pid)
            if info is None:
                continue
            mapping = info.mappings.for_address(virtual_address)
            if mapping is None:
                continue
            obj = objs.get(mapping.executable_id)
            if obj is None:
                logger.debug("build id not found")
                continue

            normalized_addr = uframe.file_offset
            if normalized_addr is None:
                normalized_addr = obj.normalized_address(virtual_address, mapping)
            if normalized_addr is None:
                logger.debug("normalized address is none")
                continue

            build_id = str(mapping.build_id) if mapping.build_id is not None else "no-build-id"
            mapping_id = builder.add_mapping(
                mapping.executable_id,
                mapping.start_addr,
                mapping.end_addr,
                mapping.offset,
                _executable_name(obj),
                build_id,
            )
            lines = _lines_for(builder, uframe.symbolization_result)
            location_ids.append(builder.add_location(normalized_addr, mapping_id, lines))

        labels = task_to_labels.get(sample.tid)
        if labels is None:
            metadata = metadata_provider.get_metadata(TaskKey(pid=sample.pid, tid=sample.tid))
            labels = [builder.new_label(label.key, _label_value(label.value)) for label in metadata]
            task_to_labels[sample.tid] = labels
        builder.add_sample(location_ids, sample.count, labels)

    return builder.build()


def fold_profile(profile: Iterable[AggregatedSample]) -> str:
    """Render a profile as folded stacks, one "frame;frame;frame count" line per sample.

    The process and thread names are prepended as synthetic base frames.
    """
    lines = []
    for sample in profile:
        ustack = ";".join(str(frame) for frame in reversed(sample.ustack))
        kstack = ";".join(f"kernel: {frame}" for frame in reversed(sample.kstack))
        try:
            names = TaskName.for_task(sample.tid)
        except (OSError, ValueError):
            names = TaskName.errored()
        user_part = f";{ustack}" if ustack.strip() else ""
        kernel_part = f";{kstack}" if kstack.strip() else ""
        lines.append(
            f"{names.main_thread};{names.current_thread}{user_part}{kernel_part} {sample.count}\n"
        )
    return "".join(lines)


def raw_to_processed(
    raw_profile: Iterable[RawAggregatedSample],
    procs: Mapping[int, ProcessInfo],
    objs: Mapping[ExecutableId, ObjectFileInfo],
) -> list[AggregatedSample]:
    """Turn raw samples into unsymbolized ones, dropping those that cannot be processed."""
    processed = []
    for raw_sample in raw_profile:
        try:
            processed.append(raw_sample.process(procs, objs))
        except ProcessingError:
            continue
    return processed


def symbolize_kernel_stack(kernel_stack: Sequence[Frame], ksyms: Sequence[Ksym]) -> list[Frame]:
    """Symbolize kernel frames against symbols sorted by start address."""
    starts = [ksym.start_addr for ksym in ksyms]
    symbolized = []
    for frame in kernel_stack:
        index = bisect.bisect_right(starts, frame.virtual_address)
        if index > 0:
            name = ksyms[index - 1].symbol_name
        else:
            name = f"<not found {frame.virtual_address}>"
        symbolized.append(
            Frame(
                virtual_address=frame.virtual_address,
                file_offset=None,
                symbolization_result=(name, False),
            )
        )
    return symbolized