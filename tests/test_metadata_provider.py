import os
import threading

import pytest

from lightswitch.metadata_label import MetadataLabel, NumberValue
from lightswitch.metadata_provider import (
    GlobalMetadataProvider,
    MetadataProvider,
    MetadataProviderError,
    TaskKey,
)
from lightswitch.system_metadata import SystemMetadata
from lightswitch.taskname import TaskName

MISSING_TID = -1


class CountingProvider(MetadataProvider):
    def __init__(self, labels):
        self.labels = labels
        self.calls = []

    def get_metadata(self, task_id):
        self.calls.append(task_id)
        return list(self.labels)


class FailingProvider(MetadataProvider):
    def get_metadata(self, task_id):
        raise MetadataProviderError(task_id, "boom")


def test_get_metadata_returns_minimal_labels():
    tid = threading.get_native_id()
    pid = os.getpgrp()
    provider = GlobalMetadataProvider()
    expected = TaskName.for_task(tid)

    labels = provider.get_metadata(TaskKey(pid=pid, tid=tid))

    assert labels[0].key == "pid"
    assert labels[0].value == NumberValue(tid, "task-id")
    assert labels[1].key == "thread.name"
    assert labels[1].value == expected.current_thread
    assert labels[2].key == "process.name"
    assert labels[2].value == expected.main_thread
    assert labels[3].key == "pid"
    assert labels[3].value == NumberValue(pid, "task-tgid")


def test_system_labels_follow_task_labels():
    provider = GlobalMetadataProvider()
    labels = provider.get_metadata(TaskKey(pid=1, tid=MISSING_TID))
    assert labels[4:] == SystemMetadata().get_metadata()


def test_unreadable_task_uses_errored_names():
    provider = GlobalMetadataProvider()
    labels = provider.get_metadata(TaskKey(pid=1, tid=MISSING_TID))
    assert labels[1].value == "<could not fetch thread name>"
    assert labels[2].value == "<could not fetch process name>"


def test_custom_labels_appended():
    custom = CountingProvider([MetadataLabel.from_string_value("team", "storage")])
    provider = GlobalMetadataProvider()
    provider.register_custom_providers([custom])
    labels = provider.get_metadata(TaskKey(pid=42, tid=MISSING_TID))
    assert labels[-1] == MetadataLabel.from_string_value("team", "storage")
    assert custom.calls == [42]


def test_labels_cached_per_pid():
    custom = CountingProvider([MetadataLabel.from_number_value("weight", 3, "units")])
    provider = GlobalMetadataProvider()
    provider.register_custom_providers([custom])
    first = provider.get_metadata(TaskKey(pid=42, tid=MISSING_TID))
    second = provider.get_metadata(TaskKey(pid=42, tid=MISSING_TID))
    assert first == second
    assert custom.calls == [42]


def test_cache_evicts_least_recently_used():
    custom = CountingProvider([])
    provider = GlobalMetadataProvider(1)
    provider.register_custom_providers([custom])
    for pid in (1, 2, 1):
        provider.get_metadata(TaskKey(pid=pid, tid=MISSING_TID))
    assert custom.calls == [1, 2, 1]


def test_cache_keeps_recently_used():
    custom = CountingProvider([])
    provider = GlobalMetadataProvider(2)
    provider.register_custom_providers([custom])
    for pid in (1, 2, 1, 3, 1):
        provider.get_metadata(TaskKey(pid=pid, tid=MISSING_TID))
    assert custom.calls == [1, 2, 3]


def test_failing_provider_is_skipped():
    good = CountingProvider([MetadataLabel.from_string_value("ok", "yes")])
    provider = GlobalMetadataProvider()
    provider.register_custom_providers([FailingProvider(), good])
    labels = provider.get_metadata(TaskKey(pid=7, tid=MISSING_TID))
    assert labels[-1] == MetadataLabel.from_string_value("ok", "yes")
    assert good.calls == [7]


def test_zero_cache_size_rejected():
    with pytest.raises(ValueError):
        GlobalMetadataProvider(0)


def test_provider_error_message():
    err = MetadataProviderError(12, "boom")
    assert str(err) == "Failed to retrieve metadata for task_id=12, error=boom"
    assert err.task_id == 12


def test_metadata_provider_is_abstract():
    with pytest.raises(TypeError):
        MetadataProvider()