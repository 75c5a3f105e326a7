"""Management of debug information, locally or on a remote server."""

from __future__ import annotations

import abc
import logging
import shutil
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .buildid import BuildId
from .objectfile import ExecutableId

logger = logging.getLogger(__name__)


class DebugInfoManager(abc.ABC):
    """Keeps track of debug information for executables."""

    @abc.abstractmethod
    def add_if_not_present(
        self, name: str, build_id: BuildId, executable_id: ExecutableId, file: BinaryIO
    ) -> None:
        """Store the debug information read from `file` unless it is already known."""

    @abc.abstractmethod
    def debug_info_path(self) -> Optional[Path]:
        """Where debug information is stored locally, if anywhere."""


class DebugInfoBackendNull(DebugInfoManager):
    """Discards debug information."""

    def add_if_not_present(
        self, name: str, build_id: BuildId, executable_id: ExecutableId, file: BinaryIO
    ) -> None:
        return None

    def debug_info_path(self) -> Optional[Path]:
        return None


@dataclass
class DebugInfoBackendFilesystem(DebugInfoManager):
    """Copies debug information into a directory, one file per build id."""

    path: Path

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def add_if_not_present(
        self, name: str, build_id: BuildId, executable_id: ExecutableId, file: BinaryIO
    ) -> None:
        target = self.path / str(build_id)
        if target.exists():
            return
        with open(target, "wb") as writer:
            shutil.copyfileobj(file, writer)

    def debug_info_path(self) -> Optional[Path]:
        return self.path


def _timeout_seconds(timeout: Union[timedelta, int, float]) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


@dataclass
class DebugInfoBackendRemote(DebugInfoManager):
    """Uploads debug information to a server that does not have it yet."""

    server_url: str
    http_client_timeout: Union[timedelta, int, float] = field(
        default_factory=lambda: timedelta(seconds=30)
    )

    def add_if_not_present(
        self, name: str, build_id: BuildId, executable_id: ExecutableId, file: BinaryIO
    ) -> None:
        """Upload unless the server knows the build id; network errors propagate."""
        if self._find_in_backend(build_id):
            return
        self._upload_to_backend(name, build_id, executable_id, file)

    def debug_info_path(self) -> Optional[Path]:
        return None

    def _find_in_backend(self, build_id: BuildId) -> bool:
        url = f"{self.server_url}/debuginfo/{build_id}"
        try:
            with urllib.request.urlopen(
                url, timeout=_timeout_seconds(self.http_client_timeout)
            ) as response:
                return response.status == 200
        except urllib.error.HTTPError as err:
            err.close()
            return False

    def _upload_to_backend(
        self, name: str, build_id: BuildId, executable_id: ExecutableId, file: BinaryIO
    ) -> None:
        debug_info = file.read()
        url = f"{self.server_url}/debuginfo/new/{name}/{build_id}/{executable_id}"
        request = urllib.request.Request(url, data=debug_info, method="POST")
        try:
            with urllib.request.urlopen(
                request, timeout=_timeout_seconds(self.http_client_timeout)
            ) as response:
                status = response.status
        except urllib.error.HTTPError as err:
            status = err.code
            err.close()
        logger.info("wrote debug info to server, status %s", status)