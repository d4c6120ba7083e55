"""
Exception hierarchy for fchain.

Errors are raised where they are detected and mapped to process exit codes
only by the CLI driver.
"""
from __future__ import annotations


class FchainError(Exception):
    """Base class for every error raised by fchain."""

    exit_code: int = 1


class UsageError(FchainError):
    """Bad command line: missing or unknown required values."""


class NoFiltersError(UsageError):
    """No filter could be found on the command line."""

    def __init__(self) -> None:
        super().__init__("No filter specified")


class LogConfigError(FchainError):
    """Malformed -logs specification."""


class EngineError(FchainError):
    """The filter engine could not create or drive a session."""


class ChainError(FchainError):
    """Filter chain construction failed."""


class BadLinkIndexError(ChainError):
    def __init__(self, offset: int, loaded: int) -> None:
        self.offset = offset
        self.loaded = loaded
        super().__init__(f"Wrong filter index @{offset}")


class FilterLoadError(ChainError):
    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Failed to load filter {token}")
