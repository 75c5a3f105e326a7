import http.server
import io
import threading
from pathlib import Path

from lightswitch.aggregated import NativeStack, RawAggregatedSample
from lightswitch.collector import AggregatorCollector, NullCollector, StreamingCollector
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


def _procs():
    mapping = ExecutableMapping(
        executable_id=EXEC_ID,
        build_id=None,
        kind=ExecutableMappingType.FILE_BACKED,
        start_addr=0x100,
        end_addr=0x100 + 100,
        offset=0x0,
        load_address=0x0,
    )
    return {PID: ProcessInfo(ProcessStatus.RUNNING, ExecutableMappings([mapping]))}


def _obj(file, path):
    return ObjectFileInfo(
        file=file,
        path=Path(path),
        elf_load_segments=[ElfLoad(p_offset=0x1, p_vaddr=0x0, p_filesz=0x20)],
        references=1,
    )


def _raw(address, count):
    return RawAggregatedSample(PID, PID, NativeStack([address], 1), None, count)


def test_null_collector_discards():
    collector = NullCollector()
    collector.collect([_raw(0x110, 3)], _procs(), {})
    profile, procs, objs = collector.finish()
    assert profile == []
    assert procs == {}
    assert objs == {}


def test_aggregator_sums_identical_samples(tmp_path):
    path = tmp_path / "libfake.so"
    path.write_bytes(b"contents")
    collector = AggregatorCollector()
    with open(path, "rb") as handle:
        objs = {EXEC_ID: _obj(handle, path)}
        first, second = _raw(0x110, 3), _raw(0x111, 4)
        collector.collect([first, second], _procs(), objs)
        collector.collect([first], _procs(), objs)
        profile, procs, kept_objs = collector.finish()

    by_address = {sample.ustack[0].virtual_address: sample for sample in profile}
    assert len(profile) == 2
    assert by_address[0x110].count == 2 * first.count
    assert by_address[0x111].count == second.count
    assert by_address[0x110].ustack[0].file_offset == 0xF
    assert set(procs) == {PID}
    assert kept_objs[EXEC_ID].path == path
    assert kept_objs[EXEC_ID].file.read() == b"contents"
    kept_objs[EXEC_ID].close()


def test_aggregator_drops_unprocessable_samples():
    collector = AggregatorCollector()
    collector.collect([_raw(0x9999, 1), RawAggregatedSample(PID, PID, None, None, 1)], _procs(), {})
    profile, _, _ = collector.finish()
    assert profile == []


class _Handler(http.server.BaseHTTPRequestHandler):
    received = []

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        _Handler.received.append((self.path, self.rfile.read(length)))
        self.send_response(200)
        self.end_headers()

    def log_message(self, *args):
        pass


def test_streaming_collector_posts_pprof():
    _Handler.received.clear()
    server = http.server.HTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.handle_request)
    thread.start()
    try:
        url = f"http://127.0.0.1:{server.server_address[1]}"
        collector = StreamingCollector(url, 5, 27, GlobalMetadataProvider())
        assert collector.pprof_ingest_url == f"{url}/pprof/new"
        objs = {EXEC_ID: _obj(io.BytesIO(), "/usr/lib/libfake.so")}
        collector.collect([_raw(0x110, 3)], _procs(), objs)
        thread.join(timeout=10)
    finally:
        server.server_close()

    assert len(_Handler.received) == 1
    path, body = _Handler.received[0]
    assert path == "/pprof/new"
    assert body[:1] == b"\x0a"
    assert b"libfake.so" in body


def test_streaming_collector_survives_unreachable_server():
    collector = StreamingCollector("http://127.0.0.1:1", 5, 27, GlobalMetadataProvider())
    collector.collect([_raw(0x110, 3)], _procs(), {})
    profile, procs, objs = collector.finish()
    assert profile == []
    assert procs == {}
    assert objs == {}