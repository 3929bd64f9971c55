import pytest

from utilities.naming import (
    clean_title,
    extract_year,
    is_disc_folder,
    make_windows_safe,
    natural_key,
    parse_folder_name,
)


@pytest.mark.parametrize("name,expected", [
    ("AC/DC", "ACDC"),
    ("Volume 1: The Start", "Volume 1 - The Start"),
    ('What? "Now" *', "What Now"),
    ("Trailing...", "Trailing"),
    ("", ""),
])
def test_make_windows_safe(name, expected):
    assert make_windows_safe(name) == expected


def test_make_windows_safe_truncates():
    assert make_windows_safe("a" * 300, max_length=10) == "a" * 10
    assert make_windows_safe("Title: Sub", colon_replacement="_") == "Title_ Sub"


@pytest.mark.parametrize("folder,expected", [
    ("2001 - Discovery", ("2001", "Discovery")),
    ("[1997] OK Computer", ("1997", "OK Computer")),
    ("Discovery (2001)", ("2001", "Discovery")),
    ("Kid A - 2000", ("2000", "Kid A")),
    ("Just_An_Album", (None, "Just An Album")),
])
def test_parse_folder_name(folder, expected):
    assert parse_folder_name(folder) == expected


@pytest.mark.parametrize("name,expected", [
    ("CD1", True),
    ("Disc 2", True),
    ("disk-3", True),
    ("Discovery", False),
    ("2001 - Album", False),
])
def test_is_disc_folder(name, expected):
    assert is_disc_folder(name) is expected


def test_natural_key_orders_numbers():
    names = ["track 10.mp3", "track 2.mp3", "Track 1.mp3"]
    assert sorted(names, key=natural_key) == ["Track 1.mp3", "track 2.mp3", "track 10.mp3"]


def test_extract_year():
    assert extract_year("1999-03-02") == "1999"
    assert extract_year("unknown") is None
    assert extract_year(None) is None


def test_clean_title():
    assert clean_title("Greatest_Hits Disc 2") == "Greatest Hits"
    assert clean_title("Abbey Road [2019 Remaster]") == "Abbey Road"
