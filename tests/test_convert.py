import io
from datetime import timedelta
from pathlib import Path

from lightswitch.aggregated import AggregatedSample, NativeStack, RawAggregatedSample
from lightswitch.buildid import BuildId
from lightswitch.convert import fold_profile, raw_to_processed, symbolize_kernel_stack, to_pprof
from lightswitch.frame import Frame
from lightswitch.ksym import Ksym
from lightswitch.metadata_provider import GlobalMetadataProvider
from lightswitch.objectfile import ElfLoad
from lightswitch.process import (
    ExecutableMapping,
    ExecutableMappings,
    ExecutableMappingType,
    ObjectFileInfo,
    ProcessInfo,
    ProcessStatus,
)

PID = -1
EXEC_ID = 7


def _setup(build_id=None):
    mapping = ExecutableMapping(
        executable_id=EXEC_ID,
        build_id=build_id,
        kind=ExecutableMappingType.FILE_BACKED,
        start_addr=0x100,
        end_addr=0x100 + 100,
        offset=0x0,
        load_address=0x0,
    )
    procs = {PID: ProcessInfo(ProcessStatus.RUNNING, ExecutableMappings([mapping]))}
    obj = ObjectFileInfo(
        file=io.BytesIO(),
        path=Path("/usr/lib/libfake.so"),
        elf_load_segments=[ElfLoad(p_offset=0x1, p_vaddr=0x0, p_filesz=0x20)],
    )
    return procs, {EXEC_ID: obj}


def _named(names):
    return [Frame(virtual_address=0x0, symbolization_result=(name, False)) for name in names]


def test_raw_to_processed_normalizes_and_drops_unknown():
    procs, objs = _setup()
    raw = [
        RawAggregatedSample(PID, PID, NativeStack([0x110], 1), None, 3),
        RawAggregatedSample(12345678, 1, NativeStack([0x110], 1), None, 3),
        RawAggregatedSample(PID, PID, None, None, 1),
    ]
    processed = raw_to_processed(raw, procs, objs)
    assert len(processed) == 1
    assert processed[0].ustack[0].virtual_address == 0x110
    assert processed[0].ustack[0].file_offset == 0xF
    assert processed[0].count == 3


def test_symbolize_kernel_stack():
    ksyms = [
        Ksym(0xFFFFFFFFA2000000, "startup_64"),
        Ksym(0xFFFFFFFFA2000070, "secondary_startup_64"),
        Ksym(0xFFFFFFFFA2000075, "secondary_startup_64_no_verify"),
    ]
    frames = [Frame(virtual_address=0xFFFFFFFFA2000072), Frame(virtual_address=0x10)]
    result = symbolize_kernel_stack(frames, ksyms)
    assert result[0].symbolization_result == ("secondary_startup_64", False)
    assert result[0].virtual_address == 0xFFFFFFFFA2000072
    assert result[1].symbolization_result == (f"<not found {0x10}>", False)
    assert all(frame.file_offset is None for frame in result)


def test_symbolize_kernel_stack_exact_match():
    ksyms = [Ksym(0xFFFFFFFFA2000000, "startup_64"), Ksym(0xFFFFFFFFA2000070, "secondary_startup_64")]
    result = symbolize_kernel_stack([Frame(virtual_address=0xFFFFFFFFA2000070)], ksyms)
    assert result[0].symbolization_result[0] == "secondary_startup_64"


def test_fold_profile_with_errored_task_names():
    sample = AggregatedSample(
        pid=PID, tid=PID, ustack=_named(["ufunc3", "ufunc2", "ufunc1"]),
        kstack=_named(["kfunc2", "kfunc1"]), count=128,
    )
    folded = fold_profile([sample])
    assert folded == (
        "<could not fetch process name>;<could not fetch thread name>;"
        "ufunc1;ufunc2;ufunc3;kernel: kfunc1;kernel: kfunc2 128\n"
    )


def test_fold_profile_without_stacks():
    folded = fold_profile([AggregatedSample(pid=PID, tid=PID, count=1001)])
    assert folded == "<could not fetch process name>;<could not fetch thread name> 1001\n"


def test_fold_profile_one_line_per_sample():
    samples = [AggregatedSample(pid=PID, tid=PID, ustack=_named(["a"]), count=n) for n in (1, 2)]
    assert fold_profile(samples).count("\n") == 2


def test_to_pprof_builds_mappings_locations_and_labels():
    procs, objs = _setup(BuildId.gnu_from_bytes(bytes([0xBE, 0xEF, 0xCA, 0xFE])))
    sample = AggregatedSample(
        pid=PID,
        tid=PID,
        ustack=[Frame(virtual_address=0x110, symbolization_result=("ufunc", False))],
        kstack=[Frame(virtual_address=0xFFFF, symbolization_result=("kfunc", False))],
        count=100,
    )
    profile = to_pprof([sample, sample], procs, objs, GlobalMetadataProvider(), timedelta(seconds=5), 27)

    strings = profile.string_table
    for expected in ("[kernel]", "fake_kernel_build_id", "libfake.so", "gnu-beefcafe", "ufunc", "kfunc"):
        assert expected in strings

    kernel_mapping = profile.mappings[0]
    assert kernel_mapping.id == 0x1000000
    assert strings[kernel_mapping.filename] == "[kernel]"

    assert len(profile.samples) == 2
    first = profile.samples[0]
    assert first.values[0] == sample.count
    kernel_loc, user_loc = (profile.locations[i - 1] for i in first.location_ids)
    assert kernel_loc.address == 0xFFFF
    assert user_loc.address == 0xF
    assert strings[profile.functions[user_loc.lines[0].function_id - 1].name] == "ufunc"
    assert profile.samples[0].labels == profile.samples[1].labels
    assert "pid" in [strings[label.key] for label in first.labels]


def test_to_pprof_error_frames_and_missing_mappings():
    procs, objs = _setup()
    sample = AggregatedSample(
        pid=PID,
        tid=PID,
        ustack=[Frame.with_error(0x110, "boom"), Frame(virtual_address=0x9999)],
        count=1,
    )
    profile = to_pprof([sample], procs, objs, GlobalMetadataProvider(), 5, 27)
    assert "Symbolization error boom" in profile.string_table
    assert "no-build-id" in profile.string_table
    assert len(profile.samples[0].location_ids) == 1