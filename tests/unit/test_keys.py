"""Unit tests for fchain/session/keys.py and the CLI key source factory"""
import io
import sys

import pytest

from fchain.cli.main import _key_source
from fchain.session.keys import NullKeySource, TerminalKeySource


@pytest.mark.unit
class TestKeySourceFactory:
    def test_stdin_without_descriptor(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", io.StringIO("q"))
        assert isinstance(_key_source(), NullKeySource)

    def test_stdin_missing(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", None)
        assert isinstance(_key_source(), NullKeySource)

    def test_real_descriptor(self, monkeypatch, tmp_path):
        with open(tmp_path / "keys", "w+") as fh:
            monkeypatch.setattr(sys, "stdin", fh)
            assert isinstance(_key_source(), TerminalKeySource)


@pytest.mark.unit
class TestTerminalKeySource:
    def test_piped_input_read_until_eof(self, tmp_path):
        path = tmp_path / "keys"
        path.write_text("sq")
        with open(path) as fh, TerminalKeySource(fh) as keys:
            assert keys.has_input()
            assert keys.get_char() == "s"
            assert keys.get_char() == "q"
            assert keys.get_char() == ""
            assert not keys.has_input()

    def test_stream_without_descriptor_is_closed(self):
        with TerminalKeySource(io.StringIO("q")) as keys:
            assert not keys.has_input()
            assert keys.get_char() == ""


@pytest.mark.unit
def test_null_key_source():
    with NullKeySource() as keys:
        assert not keys.has_input()
        assert keys.get_char() == ""
