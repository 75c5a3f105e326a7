"""Labels describing the host system."""

from __future__ import annotations

import os

from .metadata_label import MetadataLabel


class SystemMetadataError(Exception):
    """Raised when system information cannot be read."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to read system information, error = {detail}")
        self.detail = detail


class SystemMetadata:
    """Provides kernel release, architecture and hostname labels."""

    def get_metadata(self) -> list[MetadataLabel]:
        try:
            uname = os.uname()
        except (OSError, AttributeError) as exc:
            raise SystemMetadataError(str(exc)) from exc
        return [
            MetadataLabel.from_string_value("kernel.release", uname.release),
            MetadataLabel.from_string_value("kernel.architecture", uname.machine),
            MetadataLabel.from_string_value("hostname", uname.nodename),
        ]