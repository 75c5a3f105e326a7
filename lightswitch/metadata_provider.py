"""Per-task metadata labels, combining system, task and custom sources."""

from __future__ import annotations

import abc
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from .metadata_label import MetadataLabel
from .system_metadata import SystemMetadata, SystemMetadataError
from .taskname import TaskName

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000


class MetadataProviderError(Exception):
    """Raised by a provider that cannot retrieve metadata for a task."""

    def __init__(self, task_id: int, detail: str) -> None:
        super().__init__(f"Failed to retrieve metadata for task_id={task_id}, error={detail}")
        self.task_id = task_id
        self.detail = detail


class MetadataProvider(abc.ABC):
    """A source of labels for tasks."""

    @abc.abstractmethod
    def get_metadata(self, task_id: int) -> list[MetadataLabel]:
        """Labels for the task, applying to every task of the same process.

        Raises MetadataProviderError on failure.
        """


@dataclass(frozen=True)
class TaskKey:
    pid: int
    tid: int


class GlobalMetadataProvider:
    """Builds the labels for a task, caching per-process labels in an LRU cache."""

    def __init__(self, metadata_cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        if metadata_cache_size < 1:
            raise ValueError("metadata_cache_size must be at least 1")
        self._cache_size = metadata_cache_size
        self._pid_label_cache: OrderedDict[int, list[MetadataLabel]] = OrderedDict()
        self._system_metadata = SystemMetadata()
        self._custom_metadata_providers: list[MetadataProvider] = []
        self._lock = threading.RLock()

    def register_custom_providers(self, providers: Iterable[MetadataProvider]) -> None:
        with self._lock:
            self._custom_metadata_providers.extend(providers)

    def _get_labels(self, pid: int) -> list[MetadataLabel]:
        try:
            labels = list(self._system_metadata.get_metadata())
        except SystemMetadataError as err:
            logger.warning("%s", err)
            labels = []

        for provider in self._custom_metadata_providers:
            try:
                labels.extend(provider.get_metadata(pid))
            except MetadataProviderError as err:
                logger.warning("Failed to retrieve custom metadata, error = %s", err)
        return labels

    def get_metadata(self, task_key: TaskKey) -> list[MetadataLabel]:
        try:
            task_name = TaskName.for_task(task_key.tid)
        except (OSError, ValueError):
            task_name = TaskName.errored()

        pid = task_key.pid
        task_metadata = [
            MetadataLabel.from_number_value("pid", task_key.tid, "task-id"),
            MetadataLabel.from_string_value("thread.name", task_name.current_thread),
            MetadataLabel.from_string_value("process.name", task_name.main_thread),
            MetadataLabel.from_number_value("pid", pid, "task-tgid"),
        ]

        with self._lock:
            cached = self._pid_label_cache.get(pid)
            if cached is not None:
                self._pid_label_cache.move_to_end(pid)
                task_metadata.extend(cached)
            else:
                labels = self._get_labels(pid)
                self._pid_label_cache[pid] = list(labels)
                if len(self._pid_label_cache) > self._cache_size:
                    self._pid_label_cache.popitem(last=False)
                task_metadata.extend(labels)
        return task_metadata