"""Exception taxonomy for the vote wait-time analyzer.

Errors deriving from :class:`VoteLookupError` are scoped to a single vote: the
pipeline logs them and moves on. Everything else aborts the run.
"""

from __future__ import annotations

from typing import Optional


class VoteAnalyzerError(RuntimeError):
    """Base class for analyzer failures."""


class ConfigurationError(VoteAnalyzerError):
    """Raised when configuration is invalid."""


class VoteLookupError(VoteAnalyzerError):
    """A failure that only affects the vote being resolved."""


class InvalidIdentity(VoteLookupError):
    """Raised when a transaction id cannot be parsed into a hash."""

    def __init__(self, value: object, reason: str) -> None:
        super().__init__(f"Invalid transaction hash {value!r}: {reason}")
        self.value = value


class MalformedVoteTransaction(VoteLookupError):
    """Raised when a vote (or the ticket it spends) does not have the expected shape."""


class TransactionNotFound(VoteLookupError):
    """Raised when the node answers a lookup with an RPC error object."""

    def __init__(self, method: str, code: Optional[int], message: str) -> None:
        super().__init__(f"RPC error on method {method} (code {code}): {message}")
        self.method = method
        self.code = code
        self.message = message


class SourceUnavailable(VoteAnalyzerError):
    """Raised when the wallet RPC server cannot be reached or refuses the session."""


class NoVotesFound(VoteAnalyzerError):
    """Raised when no vote could be resolved, so no mean wait exists."""
