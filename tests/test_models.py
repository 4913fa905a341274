"""Tests for device types, image files, verification and transfer results."""

import logging
import tempfile
from pathlib import Path

import pytest

from at28c_programmer_mcp.models.device import (
    AT28C256,
    DEVICE_TYPES,
    get_device_type,
)
from at28c_programmer_mcp.models.image import (
    blank_check_image,
    compare_images,
    load_image,
    save_image,
)
from at28c_programmer_mcp.models.transfer import (
    CancelToken,
    LoggingProgress,
    TransferResult,
    TransferStatus,
)


def test_device_capacities():
    assert {name: d.capacity for name, d in DEVICE_TYPES.items()} == {
        "AT28C64": 8192,
        "AT28C256": 32768,
        "2764": 8192,
        "27128": 16384,
        "27256": 32768,
    }


def test_device_codes_follow_catalog_order():
    assert [d.code for d in DEVICE_TYPES.values()] == [0, 1, 2, 3, 4]


def test_get_device_type_case_insensitive():
    assert get_device_type("at28c256") is AT28C256


def test_get_device_type_unknown():
    with pytest.raises(ValueError):
        get_device_type("AT29C010")


def test_device_contains():
    assert AT28C256.contains(0)
    assert AT28C256.contains(32767)
    assert not AT28C256.contains(32768)
    assert not AT28C256.contains(-1)


def test_only_at28c256_is_page_writable():
    assert AT28C256.page_size == 64
    assert AT28C256.to_dict()["page_size"] == 64
    assert [d.name for d in DEVICE_TYPES.values() if d.page_size] == ["AT28C256"]


def test_image_file_roundtrip():
    data = bytes(range(256)) * 4
    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as f:
        path = save_image(data, f.name)
    assert Path(path).read_bytes() == data
    assert load_image(path) == data
    Path(path).unlink()


def test_load_empty_image_rejected():
    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as f:
        path = f.name
    with pytest.raises(ValueError):
        load_image(path)
    Path(path).unlink()


def test_compare_identical():
    report = compare_images(b"\x01\x02\x03", b"\x01\x02\x03")
    assert report.ok
    assert report.to_dict()["mismatches"] == []


def test_compare_keeps_first_mismatches_but_counts_all():
    expected = bytes(10)
    actual = b"\x01" * 10
    report = compare_images(expected, actual, max_mismatches=3)
    assert report.mismatch_count == 10
    assert [m.address for m in report.mismatches] == [0, 1, 2]
    assert report.mismatches[0].to_dict() == {
        "address": "0x0000",
        "expected": "0x00",
        "actual": "0x01",
    }


def test_compare_short_read_is_incomplete():
    report = compare_images(b"\x00\x00\x00\x00", b"\x00\x00")
    assert report.checked == 2
    assert not report.complete
    assert not report.ok


def test_verify_report_carries_read_status():
    report = compare_images(b"\x00\x00\x00\x00", b"\x00\x00")
    report.status = TransferStatus.ABORTED
    report.error = "device unplugged"
    assert report.to_dict() == {
        "ok": False,
        "status": "aborted",
        "checked": 2,
        "total": 4,
        "mismatch_count": 0,
        "mismatches": [],
        "error": "device unplugged",
    }


def test_verify_report_not_complete_unless_read_completed():
    report = compare_images(b"\x00", b"\x00")
    assert report.ok
    report.status = TransferStatus.CANCELLED
    assert not report.complete
    assert not report.ok


def test_blank_check_image():
    assert blank_check_image(b"\xFF" * 8).ok
    report = blank_check_image(b"\xFF\x00\xFF")
    assert report.mismatch_count == 1
    assert report.mismatches[0].address == 1


def test_blank_check_short_read():
    report = blank_check_image(b"\xFF" * 4, total=8)
    assert not report.complete


def test_transfer_result():
    result = TransferResult(TransferStatus.ABORTED, b"\x01\x02", total=8, error="boom")
    assert result.transferred == 2
    assert not result.complete
    assert result.to_dict() == {
        "status": "aborted",
        "transferred": 2,
        "total": 8,
        "error": "boom",
    }


def test_cancel_token():
    token = CancelToken()
    assert not token.cancelled
    token.cancel()
    assert token.cancelled


def test_logging_progress_logs_each_step(caplog):
    sink = LoggingProgress("Read", step=25)
    with caplog.at_level(logging.INFO, logger="at28c_programmer_mcp.models.transfer"):
        for done in range(0, 101):
            sink(done, 100)
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 5
    assert messages[0].startswith("Read: 0%")
    assert messages[-1].startswith("Read: 100%")
