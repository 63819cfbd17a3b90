import pytest
import responses

from pcsrequester.client import HTTPClient
from pcsrequester.downloader.utils import (
    fix_cache_size,
    get_file_name,
    parse_content_range,
    random_number,
)

URL = "http://example.com/download/file.bin"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def test_random_number():
    for _ in range(10):
        assert 0 <= random_number(0, 5) < 5


def test_random_number_swapped_bounds():
    for _ in range(10):
        assert 0 <= random_number(5, 0) < 5


def test_random_number_empty_interval():
    with pytest.raises(ValueError):
        random_number(3, 3)


def test_parse_content_range():
    assert parse_content_range("bytes 0-99/1234") == 1234


@pytest.mark.parametrize("value", ["", "bytes */1234", "bytes 0-1/", "garbage"])
def test_parse_content_range_invalid(value):
    assert parse_content_range(value) == -1


def test_fix_cache_size():
    assert fix_cache_size(10) == 1024
    assert fix_cache_size(4096) == 4096


def test_get_file_name_from_disposition(mocked):
    mocked.add(
        responses.HEAD, URL, headers={"Content-Disposition": 'attachment; filename="a%20b.txt"'}
    )
    assert get_file_name(URL, HTTPClient()) == "a b.txt"


def test_get_file_name_falls_back_to_path(mocked):
    mocked.add(responses.HEAD, URL)
    assert get_file_name(URL) == "file.bin"


def test_get_file_name_bad_escape(mocked):
    mocked.add(
        responses.HEAD, URL, headers={"Content-Disposition": 'attachment; filename="bad%zz"'}
    )
    with pytest.raises(ValueError):
        get_file_name(URL)