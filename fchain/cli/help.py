"""
Usage text for the fchain command line.
"""
from __future__ import annotations

import sys
from typing import TextIO

from fchain import __version__
from fchain.logs.levels import LOG_TOOLS

USAGE = """\
Usage: fchain [options] FILTER_ARGS [LINK] FILTER_ARGS
Sets up and runs filter chains.
Filters are listed with their name and options given as a list of colon-separated Name=Value:
\tValue can be omitted for booleans, defaulting to true.
\tName can be omitted for enumerations (eg :mode=packets <=> :packets).
\tSources may be specified directly using src=URL, destinations using dst=URL.

LINK directives may be specified. The syntax is an '@' character optionally followed by an integer (0 if omitted).
This indicates which previous (0-based, counting backwards) filter should be linked to the next filter listed.
Only the last link directive occurring before a filter is used to set up links for that filter.
\tEX: "f1 f2 @1 f3" directs f1 outputs to f3
\tEX: "f1 f2 @1 @0 f3" directs f2 outputs to f3, @1 is ignored
If no link directives are given, links are solved from filter capabilities.

Global options are:
\t-list           : lists all supported filters.
\t-list-meta      : lists all supported filters including meta-filters.
\t-info NAME      : prints info on filter NAME. For meta-filters, use NAME:INST, eg zlib:deflate
\t                  Use * to print info on all filters
\t                  Use *:* to print info on all meta-filter instances
\t-links          : prints possible connections between supported filters and exits
\t-stats          : prints stats after execution. Stats can be viewed at runtime by typing 's' in the prompt
\t-graph          : prints the filter graph after execution. It can be viewed at runtime by typing 'g' in the prompt
\t-threads=N      : sets N extra threads for the session. -1 means use all available cores
\t-no-block       : disables blocking mode of filters
\t-sched=MODE     : sets scheduler mode. Possible modes are:
\t             free: uses lock-free queues (default)
\t             lock: uses mutexes for queues when several threads
\t             flock: uses mutexes for queues even when no thread (debug mode)
\t             direct: uses no threads and direct dispatch of tasks whenever possible (debug mode)
\t             freex: uses lock-free queues with extra checks
\t-ltf            : loads test filters for unit tests.
\t-strict-error   : exits at first error
\t-log-file=file  : sets output log file. Also works with -lf
\t-logs=log_args  : sets log tools and levels, formatted as a ':'-separated list of toolX[:toolZ]@levelX
\t                  levelX can be one of: quiet, error, warning, info, debug
\t                  toolX can be one of: {tools}, all
\t-log-clock or -lc : logs time in micro sec since start time before each log line.
\t-log-utc or -lu   : logs UTC time in ms before each log line.
\t-h or -help       : prints this message.

Environment: FCHAIN_THREADS, FCHAIN_SCHED, FCHAIN_LOGS, FCHAIN_LOG_FILE, FCHAIN_LEAK_CHECK
Interactive keys while running: q abort, s stats, g graph

fchain - filter chain command line - version {version}
"""


def usage_text() -> str:
    return USAGE.format(tools=", ".join(LOG_TOOLS), version=__version__)


def print_usage(out: TextIO | None = None) -> None:
    print(usage_text(), file=out or sys.stderr, end="")
