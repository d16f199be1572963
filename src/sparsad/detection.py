"""Jacobian and Hessian sparsity detection by tracing a function at a point."""

import logging
from collections.abc import Callable

import numpy as np
from numpy.typing import ArrayLike

from sparsad._trace import (
    bits,
    pairs_to_coordinates,
    read_hessian,
    read_jacobian,
    seed,
)
from sparsad.pattern import SparsityPattern

logger = logging.getLogger(__name__)


def jacobian_sparsity(f: Callable, x: ArrayLike) -> SparsityPattern:
    """Detect the Jacobian sparsity pattern of f: R^n -> R^m at ``x``.

    Runs ``f`` once on tracers that carry the primal values of ``x``
    together with the set of inputs each value may depend on.
    Branches in ``f`` follow the path taken at ``x``,
    so the result is a superset of the true nonzeros along that path.

    ``f`` may use Python operators, indexing, NumPy ufuncs with a
    registered rule and the functions in [`sparsad.ops`][sparsad.ops].
    Arrays that mix tracers with plain numbers should be built with
    `ops.stack`, `ops.concatenate` or `ops.where`,
    which turn the numbers into constant tracers.
    NumPy's own object loops call methods such as ``element.exp()``
    and fail with a ``TypeError`` on plain floats.

    Args:
        f: Function taking an array and returning an array,
            a sequence or a scalar.
        x: Representative input point.

    Returns:
        SparsityPattern of shape ``(m, n)``
            where ``n = x.size`` and ``m`` is the number of output elements.
            Entry ``(i, j)`` is present if output ``i`` may depend on input ``j``.

    Raises:
        UnsupportedOperation: If ``f`` applies an operation without a rule.
    """
    x = np.asarray(x, dtype=np.float64)
    deps = read_jacobian(f(seed(x, "jacobian")))

    rows = []
    cols = []
    for i, mask in enumerate(deps):
        for j in bits(mask):
            rows.append(i)
            cols.append(j)

    sparsity = SparsityPattern.from_coordinates(
        rows, cols, (len(deps), x.size), input_shape=x.shape
    )
    logger.debug(
        "Detected Jacobian sparsity %s with %d nonzeros", sparsity.shape, sparsity.nnz
    )
    return sparsity


def hessian_sparsity(f: Callable, x: ArrayLike) -> SparsityPattern:
    """Detect the Hessian sparsity pattern of f: R^n -> R at ``x``.

    Uses second-order tracers that propagate the gradient's dependencies
    and the symmetric pairs of inputs that interact nonlinearly.
    An output of size 1, such as shape ``(1,)``, is treated as a scalar.
    ``f`` may use the same operations as in `jacobian_sparsity`.

    Args:
        f: Scalar-valued function taking an array.
        x: Representative input point.

    Returns:
        Symmetric SparsityPattern of shape ``(n, n)`` where ``n = x.size``.
            Entry ``(i, j)`` is present if ``H[i, j]`` may be nonzero.

    Raises:
        ValueError: If ``f`` does not return a single value.
        UnsupportedOperation: If ``f`` applies an operation without a rule.
    """
    x = np.asarray(x, dtype=np.float64)
    rows, cols = pairs_to_coordinates(read_hessian(f(seed(x, "hessian"))))
    sparsity = SparsityPattern.from_coordinates(
        rows, cols, (x.size, x.size), input_shape=x.shape
    )
    logger.debug(
        "Detected Hessian sparsity %s with %d nonzeros", sparsity.shape, sparsity.nnz
    )
    return sparsity
