"""
Built-in filter implementations for the local engine.

Each filter carries its registry descriptor. Data moves as byte packets:
sources produce them in ``generate``, other filters receive them in
``process`` and may emit packets of their own; ``flush`` runs once all
inputs have reached end of stream.
"""
from __future__ import annotations

import sys
import zlib
from abc import ABC
from pathlib import Path
from typing import Any, ClassVar, Iterator, Optional

import httpx
import structlog

from fchain.registry.models import (
    ANY_PIDS,
    CodecID,
    FilterArg,
    FilterDescriptor,
    PropCode,
    PropType,
    StreamType,
    cap_in,
    cap_inout,
    cap_out,
)

log = structlog.get_logger(__name__, tool="filter")

AUTHOR = "fchain"


class FilterImpl(ABC):
    """Base class for filters run by LocalSession."""

    descriptor: ClassVar[FilterDescriptor]
    protocols: ClassVar[tuple[str, ...]] = ()
    """URL schemes this filter handles when loaded through src= or dst=."""

    def __init__(self, args: dict[str, Any]) -> None:
        self.args = args

    def initialize(self) -> None:
        pass

    def generate(self) -> Optional[bytes]:
        """Next packet for filters without inputs; None at end of stream."""
        return None

    def process(self, packet: bytes) -> list[bytes]:
        return [packet]

    def flush(self) -> list[bytes]:
        return []

    def finalize(self) -> None:
        pass

    def open_resources(self) -> int:
        return 0


def _strip_file_scheme(url: str) -> str:
    return url[len("file://"):] if url.startswith("file://") else url


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class FileInput(FilterImpl):
    descriptor = FilterDescriptor(
        name="fin",
        description="Generic file input",
        author=AUTHOR,
        is_source=True,
        args=[
            FilterArg(name="src", type=PropType.STRING, description="location of source file"),
            FilterArg(
                name="block_size", type=PropType.UINT, default="4096",
                description="block size used to read file", min_max_enum="1-16777216",
            ),
        ],
        caps=[
            cap_out(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_out(PropCode.CODECID, CodecID.RAW),
        ],
    )
    protocols = ("", "file")

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.path = Path(_strip_file_scheme(args["src"])) if args.get("src") else None
        self._fh = None

    def initialize(self) -> None:
        if self.path is None:
            raise ValueError("fin requires a src option")
        self._fh = open(self.path, "rb")
        log.debug("fin.opened", path=str(self.path))

    def generate(self) -> Optional[bytes]:
        data = self._fh.read(self.args["block_size"])
        return data or None

    def finalize(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def open_resources(self) -> int:
        return 1 if self._fh is not None else 0


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout, follow_redirects=True)


class HttpInput(FilterImpl):
    descriptor = FilterDescriptor(
        name="httpin",
        description="HTTP(S) input",
        author=AUTHOR,
        is_source=True,
        args=[
            FilterArg(name="src", type=PropType.STRING, description="URL of source content"),
            FilterArg(
                name="block_size", type=PropType.UINT, default="65536",
                description="block size used to read the response body",
            ),
            FilterArg(
                name="timeout", type=PropType.FLOAT, default="10",
                description="network timeout in seconds",
            ),
        ],
        caps=[
            cap_out(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_out(PropCode.CODECID, CodecID.RAW),
        ],
    )
    protocols = ("http", "https")

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.url = args.get("src")
        self._client: httpx.Client | None = None
        self._response: httpx.Response | None = None
        self._chunks: Iterator[bytes] | None = None

    def initialize(self) -> None:
        if not self.url:
            raise ValueError("httpin requires a src option")
        self._client = _http_client(self.args["timeout"])
        request = self._client.build_request("GET", self.url)
        self._response = self._client.send(request, stream=True)
        self._response.raise_for_status()
        self._chunks = self._response.iter_bytes(self.args["block_size"])
        log.info("httpin.connected", url=self.url, status=self._response.status_code, tool="network")

    def generate(self) -> Optional[bytes]:
        for chunk in self._chunks:
            if chunk:
                return chunk
        return None

    def finalize(self) -> None:
        if self._response is not None:
            self._response.close()
            self._response = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def open_resources(self) -> int:
        return int(self._response is not None) + int(self._client is not None)


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class FileOutput(FilterImpl):
    descriptor = FilterDescriptor(
        name="fout",
        description="Generic file output",
        author=AUTHOR,
        max_extra_pids=ANY_PIDS,
        args=[
            FilterArg(name="dst", type=PropType.STRING, description="location of destination file, - for stdout"),
            FilterArg(name="append", type=PropType.BOOL, default="false", description="append to an existing file"),
        ],
        caps=[cap_in(PropCode.STREAM_TYPE, StreamType.FILE)],
    )
    protocols = ("", "file")

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.dst = _strip_file_scheme(args["dst"]) if args.get("dst") else None
        self._fh = None

    def initialize(self) -> None:
        if self.dst is None:
            raise ValueError("fout requires a dst option")
        if self.dst == "-":
            self._fh = sys.stdout.buffer
            return
        path = Path(self.dst)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(path, "ab" if self.args["append"] else "wb")

    def process(self, packet: bytes) -> list[bytes]:
        self._fh.write(packet)
        return []

    def finalize(self) -> None:
        if self._fh is None:
            return
        if self.dst == "-":
            self._fh.flush()
        else:
            self._fh.close()
        self._fh = None

    def open_resources(self) -> int:
        return 1 if self._fh is not None and self.dst != "-" else 0


class PacketLog(FilterImpl):
    descriptor = FilterDescriptor(
        name="flog",
        description="Packet logger",
        author=AUTHOR,
        max_extra_pids=ANY_PIDS,
        args=[
            FilterArg(
                name="mode", type=PropType.STRING, default="summary",
                description="what to report", min_max_enum="summary|packets",
            ),
        ],
        caps=[cap_in(PropCode.STREAM_TYPE, StreamType.FILE)],
    )

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.packets = 0
        self.size = 0
        self.crc = 0

    def process(self, packet: bytes) -> list[bytes]:
        self.packets += 1
        self.size += len(packet)
        self.crc = zlib.crc32(packet, self.crc)
        if self.args["mode"] == "packets":
            print(f"flog: packet {self.packets} size {len(packet)} crc {zlib.crc32(packet):08x}", file=sys.stderr)
        return []

    def flush(self) -> list[bytes]:
        print(f"flog: {self.packets} packets, {self.size} bytes, crc {self.crc:08x}", file=sys.stderr)
        return []


# ---------------------------------------------------------------------------
# Meta-filter family: one backing library, several instances
# ---------------------------------------------------------------------------

class ZlibDeflate(FilterImpl):
    descriptor = FilterDescriptor(
        name="zlib:deflate",
        description="zlib deflate encoder",
        author=AUTHOR,
        comment="Meta-filter instance backed by zlib",
        explicit_only=True,
        args=[
            FilterArg(
                name="level", type=PropType.SINT, default="-1",
                description="compression level, -1 for library default", min_max_enum="-1-9",
            ),
        ],
        caps=[
            cap_in(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_in(PropCode.CODECID, CodecID.RAW),
            cap_out(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_out(PropCode.CODECID, CodecID.DEFLATE),
        ],
    )

    def initialize(self) -> None:
        self._z = zlib.compressobj(self.args["level"])

    def process(self, packet: bytes) -> list[bytes]:
        out = self._z.compress(packet)
        return [out] if out else []

    def flush(self) -> list[bytes]:
        return [self._z.flush()]


class ZlibInflate(FilterImpl):
    descriptor = FilterDescriptor(
        name="zlib:inflate",
        description="zlib deflate decoder",
        author=AUTHOR,
        comment="Meta-filter instance backed by zlib",
        explicit_only=True,
        caps=[
            cap_in(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_in(PropCode.CODECID, CodecID.DEFLATE),
            cap_out(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_out(PropCode.CODECID, CodecID.RAW),
        ],
    )

    def initialize(self) -> None:
        self._z = zlib.decompressobj()

    def process(self, packet: bytes) -> list[bytes]:
        out = self._z.decompress(packet)
        return [out] if out else []

    def flush(self) -> list[bytes]:
        out = self._z.flush()
        return [out] if out else []


# ---------------------------------------------------------------------------
# Unit-test filters (-ltf)
# ---------------------------------------------------------------------------

class UTSource(FilterImpl):
    descriptor = FilterDescriptor(
        name="UTSource",
        description="Unit test source, generates packets of a fixed pattern",
        author=AUTHOR,
        args=[
            FilterArg(name="nb_pck", type=PropType.UINT, default="10", description="number of packets"),
            FilterArg(name="size", type=PropType.UINT, default="100", description="packet size in bytes"),
        ],
        caps=[
            cap_out(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_out(PropCode.CODECID, CodecID.RAW),
        ],
    )

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.sent = 0

    def generate(self) -> Optional[bytes]:
        if self.sent >= self.args["nb_pck"]:
            return None
        self.sent += 1
        return bytes([self.sent % 256]) * self.args["size"]


class UTFilter(FilterImpl):
    descriptor = FilterDescriptor(
        name="UTFilter",
        description="Unit test pass-through filter",
        author=AUTHOR,
        reconfigure_output=True,
        args=[
            FilterArg(
                name="fail_at", type=PropType.SINT, default="-1",
                description="fail when receiving this packet number, -1 never fails",
            ),
        ],
        caps=[
            cap_inout(PropCode.STREAM_TYPE, StreamType.FILE),
            cap_inout(PropCode.CODECID, CodecID.RAW),
        ],
    )

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.received = 0

    def process(self, packet: bytes) -> list[bytes]:
        self.received += 1
        if self.received == self.args["fail_at"]:
            raise RuntimeError(f"UTFilter failing on packet {self.received}")
        return [packet]


class UTSink(FilterImpl):
    descriptor = FilterDescriptor(
        name="UTSink",
        description="Unit test sink, counts received packets",
        author=AUTHOR,
        max_extra_pids=ANY_PIDS,
        caps=[cap_in(PropCode.STREAM_TYPE, StreamType.FILE)],
    )

    def __init__(self, args: dict[str, Any]) -> None:
        super().__init__(args)
        self.received = 0
        self.size = 0

    def process(self, packet: bytes) -> list[bytes]:
        self.received += 1
        self.size += len(packet)
        return []
