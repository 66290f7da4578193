"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module defines the errors raised while synthesizing SQL statements.

All errors are raised before a statement is sent to the database. Errors reported by the database driver are not
wrapped, and propagate to the caller unmodified.
"""

from typing import Optional


class SynthesisError(RuntimeError):
    "Raised when a SQL statement cannot be constructed."


class MissingParameterError(SynthesisError):
    "Raised when a named placeholder has no value, or a supplied value has no placeholder."

    names: tuple[str, ...]

    def __init__(self, message: str, names: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.names = names


class MalformedJoinPredicateError(SynthesisError):
    "Raised when a join or key expression is not a field equality or field access."

    side: Optional[str]
    predicate: str

    def __init__(self, message: str, predicate: str, side: Optional[str] = None) -> None:
        if side is not None:
            super().__init__(f"{side} side of predicate: {message}: {predicate}")
        else:
            super().__init__(f"{message}: {predicate}")
        self.side = side
        self.predicate = predicate


class UnresolvedJoinAliasError(SynthesisError):
    "Raised when a join step references a table that has no alias assigned yet."


class UnresolvedFilterAliasError(SynthesisError):
    "Raised when a filter references a table that takes no part in the join."


class JoinLimitExceededError(SynthesisError):
    "Raised when a join chain has more steps than permitted."


class NoMappableColumnsError(SynthesisError):
    "Raised when an entity yields no usable columns for the requested operation."


class EmptyBatchError(SynthesisError):
    "Raised when a batch operation receives no rows."


class BatchTooLargeError(SynthesisError):
    "Raised when a batch operation receives more rows than permitted."

    count: int
    limit: int

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(
            f"batch has {count} rows but at most {limit} are permitted; split the batch into smaller chunks"
        )
        self.count = count
        self.limit = limit
