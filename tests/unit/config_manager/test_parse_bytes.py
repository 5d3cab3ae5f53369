"""Tests for byte quantity parsing."""

import pytest

from bucketstream.config_manager.helpers import parse_bytes


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (42, 42),
        ("1024", 1024),
        ("10b", 10),
        ("5mb", 5 * 1024**2),
        ("8 MiB", 8 * 1024**2),
        ("256K", 256 * 1024),
        ("2gib", 2 * 1024**3),
    ],
)
def test_parse_bytes(value, expected: int) -> None:
    assert parse_bytes(value) == expected


@pytest.mark.parametrize("value", ["", "mb", "5tb", "1.5mb"])
def test_parse_bytes_rejects_invalid_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_bytes(value)
