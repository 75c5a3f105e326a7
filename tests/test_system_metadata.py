import os

from lightswitch.system_metadata import SystemMetadata, SystemMetadataError


def test_get_system_metadata():
    expected = os.uname()
    labels = SystemMetadata().get_metadata()

    assert len(labels) == 3
    kernel_release, machine, hostname = labels

    assert kernel_release.key == "kernel.release"
    assert kernel_release.value == expected.release
    assert machine.key == "kernel.architecture"
    assert machine.value == expected.machine
    assert hostname.key == "hostname"
    assert hostname.value == expected.nodename


def test_error_message():
    err = SystemMetadataError("boom")
    assert str(err) == "Failed to read system information, error = boom"
    assert err.detail == "boom"