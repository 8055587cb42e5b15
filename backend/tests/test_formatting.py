import pytest

from transcribefree.utils.formatting import format_clock, format_duration, format_eta, format_file_size, truncate_words


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 Bytes"), (512, "512 Bytes"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5 MB"), (3 * 1024 ** 3, "3 GB")],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_format_duration():
    assert format_duration(1) == "1 min"
    assert format_duration(45) == "45 mins"
    assert format_duration(125) == "2h 5m"


def test_format_clock():
    assert format_clock(0) == "00:00"
    assert format_clock(65.9) == "01:05"
    assert format_clock(3725) == "62:05"
    assert format_clock(-3) == "00:00"


def test_format_eta():
    assert format_eta(30) == "30 seconds"
    assert format_eta(120) == "2 minutes"
    assert format_eta(135) == "2m 15s"
    assert format_eta(3900) == "1h 5m"


def test_truncate_words():
    assert truncate_words("  a b c ", 5) == "a b c"
    assert truncate_words("a b c d", 2) == "a b..."
