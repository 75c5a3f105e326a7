# lightswitch

Building blocks for a sampling CPU profiler on Linux. The package takes raw
stack samples and turns them into processed profiles. It symbolizes kernel
frames and writes profiles out as folded stacks for flame graphs or as pprof
protobuf profiles. It uses only the standard library.

## Installation

```
pip install .
```

To run the tests, install with the `test` extra and run `pytest`:

```
pip install ".[test]"
pytest
```

## What is inside

- `lightswitch.buildid`: `BuildId` and `BuildIdKind` cover GNU build IDs,
  Go build IDs and SHA-256 code hashes. `str()` gives forms such as
  `gnu-beefcafe`, `go-...` or `sha256-...`.
- `lightswitch.objectfile`: `ObjectFile` reads 32- and 64-bit ELF files of
  either byte order. It provides:
  - `id()`: the first 8 bytes of the `.text` SHA-256.
  - `build_id()`: the GNU note first, then `.note.go.buildid`, then the code
    hash.
  - `elf_load_segments()`: the `PT_LOAD` segments as `ElfLoad`.
  - `is_dynamic()`, `is_go()` and `has_debug_info()`.

  `code_hash(data)` hashes the `.text` section of an ELF image held in
  memory. Parse failures raise `ObjectFileError`.
- `lightswitch.process`:
  - `ProcessInfo`, `ExecutableMappings` and `ExecutableMapping` describe a
    process's memory. `ExecutableMappings.for_address()` finds the mapping
    that holds an address, and `mark_as_deleted()` soft-deletes a mapping
    with reference counting.
  - `ObjectFileInfo` keeps an object file open. Its `normalized_address()`
    turns a process address into a file-relative one, and its `clone()`
    reopens the file through `/proc/<pid>/fd/<n>`, so this works even after
    the file was deleted.
- `lightswitch.ksym`: `iter_ksyms(lines)` yields `Ksym` entries for text
  symbols (types `T` and `W`). `from_kallsyms(path="/proc/kallsyms")` reads
  them all into a list.
- `lightswitch.taskname`: `TaskName.for_task(tid)` reads process and thread
  names from `/proc/<tid>/stat`. `TaskName.errored()` gives placeholder
  names.
- `lightswitch.system_metadata`: `SystemMetadata.get_metadata()` returns
  `kernel.release`, `kernel.architecture` and `hostname` labels.
- `lightswitch.metadata_label`: `MetadataLabel` and `NumberValue`.
- `lightswitch.metadata_provider`: `GlobalMetadataProvider.get_metadata(TaskKey(pid, tid))`
  returns task id, thread name, process name and tgid labels. It adds the
  system labels and the labels of any `MetadataProvider` subclasses
  registered with `register_custom_providers()`. These per-process labels
  are kept in an LRU cache, 1000 entries by default.
- `lightswitch.pprof`: `PprofBuilder` interns strings, functions, locations
  and mappings. It checks references with `validate()`, which raises
  `PprofValidationError`, and produces a `Profile` with `build()`.
  `Profile.encode()` serializes to the protobuf wire format.
- `lightswitch.frame`: `Frame` and `SymbolizationError`.
- `lightswitch.aggregated`:
  - `RawAggregatedSample` holds raw addresses in `NativeStack`s.
  - Its `process()` turns them into an `AggregatedSample` of unsymbolized
    frames with file offsets, and raises `ProcessingError` when nothing is
    left.
  - `FrameAddress` pairs an address with its file offset.
- `lightswitch.convert`:
  - `raw_to_processed()` processes a raw profile and drops samples that fail.
  - `symbolize_kernel_stack()` resolves kernel frames against sorted `Ksym`s.
  - `fold_profile()` writes folded stacks.
  - `to_pprof()` builds a pprof `Profile` with per-task labels.
- `lightswitch.collector`:
  - `NullCollector` discards profiles.
  - `AggregatorCollector` merges identical samples in memory and sums their
    counts.
  - `StreamingCollector` POSTs each pprof-encoded profile to
    `<url>/pprof/new`.
- `lightswitch.debug_info`: `DebugInfoManager` has three backends.
  - `DebugInfoBackendNull` discards the data.
  - `DebugInfoBackendFilesystem` copies the file into a directory, named
    after the build ID.
  - `DebugInfoBackendRemote` checks `<url>/debuginfo/<build id>` and uploads
    to `<url>/debuginfo/new/<name>/<build id>/<executable id>` if the server
    lacks it.
- `lightswitch.validators`:
  - `sample_freq_in_range()` accepts frequencies from 1 to 1009. It rejects a
    non-prime above 2 and names the nearest primes on either side.
  - `value_is_power_of_two()`, `parse_duration()` (whole seconds),
    `is_prime()` and `primes_before_after()` are also provided.

  Invalid values raise `ValueError`.

## Example

```python
import time
from lightswitch.pprof import PprofBuilder

builder = PprofBuilder(time.time(), 5.0, 27)
mapping_id = builder.add_mapping(1, 0x100, 0x200, 0x0, "file.so", "sha256-abc")
line, _ = builder.add_line("main")
location_id = builder.add_location(0x123, mapping_id, [line])
builder.add_sample([location_id], 100, [])
builder.validate()
data = builder.build().encode()
```

## What it does not do

The package works on samples that are already captured.
- It does not collect stack samples or set up kernel tracing and perf
  events.
- It does not unwind native stacks.
- It has no command-line program.
- User-space frames are not symbolized. Only kernel frames get names, through
  `symbolize_kernel_stack()`. `StreamingCollector` sends user-space frames
  unsymbolized, as normalized addresses.