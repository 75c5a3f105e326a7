"""Collectors that receive raw profiles and either discard, send or aggregate them."""

from __future__ import annotations

import abc
import copy
import logging
import urllib.error
import urllib.request
from dataclasses import replace
from datetime import timedelta
from typing import Iterable, Mapping, Union

from .aggregated import AggregatedSample, RawAggregatedSample
from .convert import raw_to_processed, to_pprof
from .metadata_provider import GlobalMetadataProvider
from .objectfile import ExecutableId
from .process import ObjectFileInfo, ProcessInfo

logger = logging.getLogger(__name__)

FinishResult = tuple[
    list[AggregatedSample], dict[int, ProcessInfo], dict[ExecutableId, ObjectFileInfo]
]


class Collector(abc.ABC):
    """Receives raw profiles as they are produced."""

    @abc.abstractmethod
    def collect(
        self,
        profile: Iterable[RawAggregatedSample],
        procs: Mapping[int, ProcessInfo],
        objs: Mapping[ExecutableId, ObjectFileInfo],
    ) -> None:
        """Take in one raw profile with the processes and objects it refers to."""

    @abc.abstractmethod
    def finish(self) -> FinishResult:
        """Return the final profile with its processes and object files."""


class NullCollector(Collector):
    """Discards every profile; useful for testing."""

    def __init__(self) -> None:
        self._procs: dict[int, ProcessInfo] = {}
        self._objs: dict[ExecutableId, ObjectFileInfo] = {}

    def collect(self, profile, procs, objs) -> None:
        return None

    def finish(self) -> FinishResult:
        return [], self._procs, self._objs


class StreamingCollector(Collector):
    """POSTs each profile, pprof encoded, to an ingest server."""

    def __init__(
        self,
        pprof_ingest_url: str,
        profile_duration: Union[timedelta, int, float],
        profile_frequency_hz: int,
        metadata_provider: GlobalMetadataProvider,
    ) -> None:
        self.pprof_ingest_url = f"{pprof_ingest_url}/pprof/new"
        self.http_client_timeout = timedelta(seconds=30)
        self.profile_duration = profile_duration
        self.profile_frequency_hz = profile_frequency_hz
        self.metadata_provider = metadata_provider
        self._procs: dict[int, ProcessInfo] = {}
        self._objs: dict[ExecutableId, ObjectFileInfo] = {}

    def collect(self, profile, procs, objs) -> None:
        processed = raw_to_processed(profile, procs, objs)
        pprof_profile = to_pprof(
            processed,
            procs,
            objs,
            self.metadata_provider,
            self.profile_duration,
            self.profile_frequency_hz,
        )
        request = urllib.request.Request(
            self.pprof_ingest_url, data=pprof_profile.encode(), method="POST"
        )
        try:
            with urllib.request.urlopen(
                request, timeout=self.http_client_timeout.total_seconds()
            ) as response:
                logger.debug("http response: %s", response.status)
        except urllib.error.HTTPError as err:
            logger.debug("http response: %s", err.code)
            err.close()
        except (urllib.error.URLError, OSError) as err:
            logger.debug("http response: %s", err)

    def finish(self) -> FinishResult:
        return [], self._procs, self._objs


class AggregatorCollector(Collector):
    """Aggregates samples in memory; fine when profiling for short periods."""

    def __init__(self) -> None:
        self._profiles: list[list[AggregatedSample]] = []
        self._procs: dict[int, ProcessInfo] = {}
        self._objs: dict[ExecutableId, ObjectFileInfo] = {}

    def collect(self, profile, procs, objs) -> None:
        self._profiles.append(raw_to_processed(profile, procs, objs))
        for pid, info in procs.items():
            self._procs[pid] = copy.deepcopy(info)
        for executable_id, object_file_info in objs.items():
            previous = self._objs.get(executable_id)
            self._objs[executable_id] = object_file_info.clone()
            if previous is not None:
                previous.close()

    def finish(self) -> FinishResult:
        samples_count: dict[AggregatedSample, int] = {}
        for profile in self._profiles:
            for sample in profile:
                key = replace(sample, count=0)
                samples_count[key] = samples_count.get(key, 0) + sample.count

        logger.debug("found %d unique samples", len(samples_count))
        aggregated = [replace(sample, count=count) for sample, count in samples_count.items()]
        return aggregated, self._procs, self._objs