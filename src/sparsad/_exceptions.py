"""Exceptions raised by the detection and coloring stages."""


class SparsadError(Exception):
    """Base class for sparsad errors."""


class UnsupportedOperation(SparsadError, TypeError):
    """Raised when tracing reaches an operation without a propagation rule.

    Skipping the operation would silently drop dependencies
    and produce a pattern that is too sparse,
    so tracing stops instead.
    """


class InvalidStructure(SparsadError, ValueError):
    """Raised when a pattern does not have the structure a coloring requires.

    Symmetric colorings need a square pattern that equals its transpose.
    """


class PreconditionViolated(SparsadError, ValueError):
    """Raised when a star or acyclic coloring is requested
    for a pattern with a structurally zero diagonal entry.
    """
