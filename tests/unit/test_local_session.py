"""Unit tests for fchain/engine/local.py"""
import io
import zlib

import httpx
import pytest

from fchain.config import ListMode, RunConfig
from fchain.engine.base import SchedulerMode
from fchain.engine.local import FilterState, LocalSession
from fchain.errors import EngineError
from fchain.session.keys import NullKeySource
from fchain.session.monitor import SessionMonitor


def _payload(size: int = 20000) -> bytes:
    return bytes(i % 251 for i in range(size))


@pytest.mark.unit
class TestLoading:
    def test_load_by_name(self, local_session):
        f = local_session.load_filter("UTSource:nb_pck=3")
        assert f.id == "F1"
        assert f.impl.args["nb_pck"] == 3

    def test_unknown_filter(self, local_session):
        assert local_session.load_filter("nosuch") is None
        assert local_session.filters == []

    def test_bad_option(self, local_session):
        assert local_session.load_filter("UTSource:nb_pck=many") is None
        assert local_session.load_filter("UTSource:speed=2") is None

    def test_source_and_destination_by_url(self, local_session, tmp_path):
        src = local_session.load_source(str(tmp_path / "in.bin"))
        dst = local_session.load_destination(str(tmp_path / "out.bin"))
        assert src.name == "fin"
        assert dst.name == "fout"
        assert local_session.load_source("rtsp://host/stream") is None
        assert local_session.load_destination("http://host/out") is None

    def test_meta_filters_loadable_without_listing(self, local_session):
        assert local_session.load_filter("zlib:deflate:level=9") is not None
        assert "zlib:deflate" not in [d.name for d in local_session.registry()]

    def test_negative_threads(self):
        with pytest.raises(EngineError):
            LocalSession(threads=-2)

    def test_from_config(self):
        cfg = RunConfig(
            threads=2, scheduler=SchedulerMode.LOCK, list_mode=ListMode.META,
            disable_blocking=True, strict_error=True,
        )
        session = LocalSession.from_config(cfg)
        assert session.threads == 2
        assert session.scheduler is SchedulerMode.LOCK
        assert session.load_meta
        assert session.disable_blocking and session.strict_error
        assert "zlib:inflate" in [d.name for d in session.registry()]


@pytest.mark.unit
class TestRun:
    def test_test_filter_chain(self, local_session):
        local_session.load_filter("UTSource")
        mid = local_session.load_filter("UTFilter")
        sink = local_session.load_filter("UTSink")
        local_session.run()
        assert mid.impl.received == 10
        assert sink.impl.received == 10
        assert sink.impl.size == 1000
        assert all(f.state is FilterState.EOS for f in local_session.filters)
        assert local_session.is_last_task()

    @pytest.mark.parametrize("disable_blocking", [False, True])
    def test_blocking_modes_deliver_everything(self, disable_blocking):
        session = LocalSession(disable_blocking=disable_blocking)
        session.register_test_filters()
        session.load_filter("UTSource:nb_pck=50:size=1")
        sink = session.load_filter("UTSink")
        session.run()
        session.close()
        assert sink.impl.received == 50

    def test_explicit_link_overrides_nearest(self, local_session):
        first = local_session.load_filter("UTSource:nb_pck=3")
        local_session.load_filter("UTSource:nb_pck=5")
        sink = local_session.load_filter("UTSink")
        local_session.set_source(sink, first)
        local_session.run()
        assert sink.impl.received == 3

    def test_implicit_link_uses_nearest(self, local_session):
        local_session.load_filter("UTSource:nb_pck=3")
        local_session.load_filter("UTSource:nb_pck=5")
        sink = local_session.load_filter("UTSink")
        local_session.run()
        assert sink.impl.received == 5

    def test_file_copy(self, local_session, tmp_path):
        data = _payload()
        (tmp_path / "in.bin").write_bytes(data)
        local_session.load_source(str(tmp_path / "in.bin"))
        local_session.load_destination(str(tmp_path / "sub" / "out.bin"))
        local_session.run()
        local_session.close()
        assert (tmp_path / "sub" / "out.bin").read_bytes() == data
        assert local_session.open_resources() == 0

    def test_zlib_round_trip(self, local_session, tmp_path):
        data = _payload()
        (tmp_path / "in.bin").write_bytes(data)
        local_session.load_filter(f"fin:block_size=1000:src={tmp_path / 'in.bin'}")
        local_session.load_filter("zlib:deflate:level=9")
        local_session.load_filter(f"fout:dst={tmp_path / 'in.z'}")
        local_session.run()
        local_session.close()
        assert zlib.decompress((tmp_path / "in.z").read_bytes()) == data

        second = LocalSession()
        packed = second.load_filter(f"fin:src={tmp_path / 'in.z'}")
        inflate = second.load_filter("zlib:inflate")
        second.set_source(inflate, packed)
        second.load_filter(f"fout:dst={tmp_path / 'out.bin'}")
        second.run()
        second.close()
        assert (tmp_path / "out.bin").read_bytes() == data

    def test_missing_input_file_fails_filter(self, local_session, tmp_path):
        src = local_session.load_source(str(tmp_path / "missing.bin"))
        local_session.load_filter("UTSink")
        local_session.run()
        assert src.state is FilterState.FAILED
        assert local_session.errors == 1

    def test_missing_src_and_dst_fail_at_setup(self, local_session):
        src = local_session.load_filter("fin")
        dst = local_session.load_filter("fout")
        assert src is not None and dst is not None
        local_session.run()
        assert src.state is FilterState.FAILED
        assert "fin requires a src option" in src.error
        assert dst.state is FilterState.FAILED
        assert "fout requires a dst option" in dst.error
        assert local_session.errors == 2

    def test_httpin_without_src_fails_at_setup(self, local_session):
        src = local_session.load_filter("httpin")
        local_session.run()
        assert src.state is FilterState.FAILED
        assert "httpin requires a src option" in src.error

    def test_flog_summary(self, local_session, capsys):
        local_session.load_filter("UTSource:nb_pck=4:size=5")
        local_session.load_filter("flog")
        local_session.run()
        assert "flog: 4 packets, 20 bytes" in capsys.readouterr().err


@pytest.mark.unit
class TestErrors:
    def test_filter_failure_keeps_session_running(self, local_session):
        local_session.load_filter("UTSource")
        mid = local_session.load_filter("UTFilter:fail_at=3")
        sink = local_session.load_filter("UTSink")
        local_session.run()
        assert mid.state is FilterState.FAILED
        assert "packet 3" in mid.error
        assert sink.impl.received == 2
        assert local_session.errors == 1
        assert not local_session.aborted

    def test_strict_error_aborts(self):
        session = LocalSession(strict_error=True)
        session.register_test_filters()
        session.load_filter("UTSource:nb_pck=1000")
        session.load_filter("UTFilter:fail_at=1")
        sink = session.load_filter("UTSink")
        session.run()
        session.close()
        assert session.aborted
        assert sink.impl.received == 0

    def test_run_after_close(self, local_session):
        local_session.close()
        local_session.close()
        with pytest.raises(EngineError):
            local_session.run()


@pytest.mark.unit
class TestUserTasks:
    def test_task_rescheduled_until_none(self, local_session):
        calls = []

        def task(session):
            calls.append(session.is_last_task())
            return 0 if len(calls) < 3 else None

        local_session.load_filter("UTSource:nb_pck=100")
        local_session.load_filter("UTSink")
        local_session.post_user_task(task, "counter")
        local_session.run()
        assert len(calls) == 3

    def test_task_exception_is_logged_not_raised(self, local_session):
        def task(session):
            raise RuntimeError("boom")

        local_session.load_filter("UTSource:nb_pck=2")
        sink = local_session.load_filter("UTSink")
        local_session.post_user_task(task, "broken")
        local_session.run()
        assert sink.impl.received == 2

    def test_monitor_abort(self, local_session, scripted_keys):
        local_session.load_filter("UTSource:nb_pck=100000")
        sink = local_session.load_filter("UTSink")
        monitor = SessionMonitor(scripted_keys("q"))
        local_session.post_user_task(monitor, monitor.name)
        local_session.run()
        assert local_session.aborted
        assert sink.impl.received < 100000

    def test_monitor_stops_when_drained(self, local_session):
        local_session.load_filter("UTSource:nb_pck=20")
        local_session.load_filter("UTSink")
        monitor = SessionMonitor(NullKeySource())
        local_session.post_user_task(monitor, monitor.name)
        local_session.run()
        assert not local_session.aborted
        assert monitor.activations >= 1

    def test_pending_task_waits_for_due_time(self):
        now = [0.0]
        slept = []

        def sleep(seconds):
            slept.append(seconds)
            now[0] += seconds

        session = LocalSession(clock=lambda: now[0], sleep=sleep)
        calls = []

        def task(s):
            calls.append(now[0])
            return 250 if len(calls) < 3 else None

        session.post_user_task(task, "timer")
        session.run()
        assert calls == [0.0, 0.25, 0.5]
        assert slept == [0.25, 0.25]


@pytest.mark.unit
class TestHttpInput:
    def _patch_client(self, monkeypatch, handler):
        monkeypatch.setattr(
            "fchain.engine.filters._http_client",
            lambda timeout: httpx.Client(transport=httpx.MockTransport(handler)),
        )

    def test_download(self, local_session, monkeypatch, tmp_path):
        data = _payload(5000)
        self._patch_client(monkeypatch, lambda request: httpx.Response(200, content=data))
        local_session.load_source("http://media.example/clip.bin")
        local_session.load_destination(str(tmp_path / "clip.bin"))
        local_session.run()
        local_session.close()
        assert (tmp_path / "clip.bin").read_bytes() == data
        assert local_session.open_resources() == 0

    def test_http_error_fails_filter(self, local_session, monkeypatch):
        self._patch_client(monkeypatch, lambda request: httpx.Response(404))
        src = local_session.load_source("https://media.example/missing")
        local_session.load_filter("UTSink")
        local_session.run()
        assert src.state is FilterState.FAILED
        assert "HTTPStatusError" in src.error


@pytest.mark.unit
class TestReporting:
    def _run_chain(self, session):
        session.load_filter("UTSource:nb_pck=2")
        session.load_filter("UTFilter")
        session.load_filter("UTSink")
        session.run()

    def test_stats(self, local_session):
        self._run_chain(local_session)
        out = io.StringIO()
        local_session.print_stats(out=out)
        lines = out.getvalue().splitlines()
        assert lines[0] == "Session stats: 3 filters - 0 extra threads - scheduler free - 0 errors"
        assert lines[1] == "\tUTSource (F1) eos: 0 packets in (0 bytes), 2 packets out (200 bytes)"
        assert lines[3] == "\tUTSink (F3) eos: 2 packets in (200 bytes), 0 packets out (0 bytes)"

    def test_connections(self, local_session):
        self._run_chain(local_session)
        out = io.StringIO()
        local_session.print_connections(out=out)
        assert out.getvalue().splitlines() == [
            "Filter connections:",
            "UTSource (F1)",
            "\t-> UTFilter (F2)",
            "UTFilter (F2)",
            "\t-> UTSink (F3)",
            "UTSink (F3)",
        ]

    def test_possible_connections(self, local_session):
        out = io.StringIO()
        local_session.print_possible_connections(out=out)
        lines = out.getvalue().splitlines()
        assert "fin -> fout, flog, UTFilter, UTSink" in lines
        assert "UTFilter -> fout, flog, UTSink" in lines
        assert not any(line.startswith("fout") for line in lines)
