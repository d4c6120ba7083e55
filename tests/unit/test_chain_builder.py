"""Unit tests for fchain/chain/builder.py"""
import pytest

from fchain.chain.builder import ChainBuilder
from fchain.errors import BadLinkIndexError, FilterLoadError, NoFiltersError


def _build(session, argv):
    builder = ChainBuilder(session)
    return builder, builder.build(argv)


@pytest.mark.unit
class TestChainBuilder:
    def test_unlinked_filters_in_order(self, fake_session):
        _, loaded = _build(fake_session, ["fin:src=a.mp4", "fout:dst=b.mp4"])
        assert [f.spec for f in loaded] == ["fin:src=a.mp4", "fout:dst=b.mp4"]
        assert all(f.source is None for f in loaded)

    def test_link_to_previous_filter(self, fake_session):
        _, loaded = _build(fake_session, ["fin", "fout", "@", "flog"])
        assert loaded[2].source is loaded[1]

    def test_link_with_offset(self, fake_session):
        _, loaded = _build(fake_session, ["fin", "fout", "@1", "flog"])
        assert loaded[2].source is loaded[0]

    def test_link_only_applies_to_next_filter(self, fake_session):
        _, loaded = _build(fake_session, ["fin", "@0", "fout", "flog"])
        assert loaded[1].source is loaded[0]
        assert loaded[2].source is None

    def test_last_link_directive_wins(self, fake_session):
        _, loaded = _build(fake_session, ["fin", "fout", "@1", "@0", "flog"])
        assert loaded[2].source is loaded[1]

    def test_trailing_link_discarded(self, fake_session):
        builder, loaded = _build(fake_session, ["fin", "@0"])
        assert len(loaded) == 1
        assert builder.pending_link is None

    def test_link_out_of_range(self, fake_session):
        with pytest.raises(BadLinkIndexError, match="Wrong filter index @5"):
            _build(fake_session, ["fin", "@5", "fout"])

    def test_link_before_first_filter(self, fake_session):
        with pytest.raises(BadLinkIndexError):
            _build(fake_session, ["@0", "fin"])

    def test_malformed_link_means_zero(self, fake_session):
        _, loaded = _build(fake_session, ["fin", "@x", "fout"])
        assert loaded[1].source is loaded[0]

    def test_source_and_destination_dispatch(self, fake_session):
        _build(fake_session, ["src=in.mp4", "dst=out.mp4", "flog:mode=summary"])
        assert fake_session.calls == [
            "source:in.mp4",
            "destination:out.mp4",
            "filter:flog:mode=summary",
        ]

    def test_flags_are_skipped(self, fake_session):
        _, loaded = _build(fake_session, ["-stats", "fin", "-threads=2", "fout"])
        assert len(loaded) == 2

    def test_no_filters(self, fake_session):
        with pytest.raises(NoFiltersError, match="No filter specified"):
            _build(fake_session, ["-stats", "@0"])

    def test_load_failure_stops_processing(self, make_fake_session):
        session = make_fake_session(failing=("bad",))
        builder = ChainBuilder(session)
        with pytest.raises(FilterLoadError, match="Failed to load filter bad"):
            builder.build(["fin", "bad", "fout"])
        assert session.calls == ["filter:fin", "filter:bad"]
        assert len(builder.loaded) == 1

    def test_load_failure_reports_raw_token(self, make_fake_session):
        session = make_fake_session(failing=("missing.mp4",))
        with pytest.raises(FilterLoadError) as exc_info:
            ChainBuilder(session).build(["src=missing.mp4"])
        assert exc_info.value.token == "src=missing.mp4"

    def test_feed_returns_handle(self, fake_session):
        builder = ChainBuilder(fake_session)
        assert builder.feed("-stats") is None
        first = builder.feed("fin")
        assert first is not None
        assert builder.feed("@0") is None
        assert builder.pending_link == 0
        second = builder.feed("fout")
        assert second.source is first
        assert builder.pending_link is None

    def test_feed_link_on_empty_chain(self, fake_session):
        builder = ChainBuilder(fake_session)
        builder.feed("@0")
        with pytest.raises(BadLinkIndexError, match="Wrong filter index @0"):
            builder.feed("fin")
