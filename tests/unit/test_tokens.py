"""Unit tests for fchain/cli/tokens.py"""
import pytest

from fchain.cli.tokens import (
    FilterKind,
    FilterRequest,
    LinkDirective,
    Token,
    classify,
    parse_link_offset,
    positional,
)


@pytest.mark.unit
class TestToken:
    def test_split_on_first_equal(self):
        t = Token.parse("-log-file=/tmp/a=b.log")
        assert t.name == "-log-file"
        assert t.value == "/tmp/a=b.log"

    def test_no_delimiter(self):
        t = Token.parse("-stats")
        assert t.name == "-stats"
        assert t.value is None

    def test_delimiter_at_position_zero_is_not_a_split(self):
        t = Token.parse("=abc")
        assert t.split_at is None
        assert t.name == "=abc"

    def test_raw_text_is_preserved(self):
        raw = "fin:src=movie.mp4:block_size=10"
        t = Token.parse(raw)
        assert t.name == "fin:src"
        assert str(t) == raw
        assert f"{t.name}={t.value}" == raw

    def test_empty_value(self):
        t = Token.parse("-logs=")
        assert t.name == "-logs"
        assert t.value == ""

    def test_flag_and_link_detection(self):
        assert Token.parse("-list").is_flag
        assert Token.parse("@2").is_link
        assert not Token.parse("fin").is_flag


@pytest.mark.unit
class TestLinkOffset:
    @pytest.mark.parametrize(
        "text, expected",
        [("", 0), ("0", 0), ("3", 3), ("12", 12), ("2abc", 2), ("abc", 0), ("-3", 0), (" 4", 4), ("+1", 1)],
    )
    def test_lenient_parse(self, text, expected):
        assert parse_link_offset(text) == expected

    def test_directive_from_token(self):
        assert classify("@") == LinkDirective(0)
        assert classify("@5") == LinkDirective(5)


@pytest.mark.unit
class TestClassify:
    def test_flag_returns_token(self):
        item = classify("-threads=4")
        assert isinstance(item, Token)
        assert item.value == "4"

    def test_source_prefix(self):
        item = classify("src=http://host/movie.mp4")
        assert isinstance(item, FilterRequest)
        assert item.kind is FilterKind.SOURCE
        assert item.spec == "http://host/movie.mp4"

    def test_destination_prefix(self):
        item = classify("dst=out.mp4")
        assert item.kind is FilterKind.DESTINATION
        assert item.spec == "out.mp4"

    def test_named_filter_keeps_whole_token(self):
        item = classify("fin:src=a.mp4")
        assert item.kind is FilterKind.NAMED
        assert item.spec == "fin:src=a.mp4"

    def test_src_inside_spec_is_named(self):
        item = classify("demux:src=a.mp4")
        assert item.kind is FilterKind.NAMED

    def test_prefix_is_case_sensitive(self):
        assert classify("SRC=a.mp4").kind is FilterKind.NAMED

    def test_positional_skips_flags(self):
        assert positional(["-info", "fin", "-stats", "*", "@1"]) == ["fin", "*", "@1"]
