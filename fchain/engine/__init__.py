"""
Filter engine.

``FilterSession`` is the boundary the CLI drives; ``LocalSession`` is the
in-process engine shipped with fchain.

Quick start:
    from fchain.engine.local import LocalSession
    session = LocalSession()
"""
from fchain.engine.base import FilterSession, SchedulerMode

__all__ = ["FilterSession", "SchedulerMode"]
