from pcsrequester.cookies import Cookie, parse_cookie_str


def test_parse_basic():
    assert parse_cookie_str("a=1; b = 2 ") == [Cookie("a", "1"), Cookie("b", "2")]


def test_value_keeps_later_equals():
    assert parse_cookie_str("c=x=y") == [Cookie("c", "x=y")]


def test_skips_pieces_without_equals():
    assert parse_cookie_str("bad;d=4") == [Cookie("d", "4")]


def test_empty_string():
    assert parse_cookie_str("") == []