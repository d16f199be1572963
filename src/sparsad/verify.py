"""Verification utilities for checking sparse results against JAX references."""

from collections.abc import Callable

import jax
import jax.numpy as jnp
import numpy as np
from numpy.typing import ArrayLike

from sparsad.coloring import hessian_coloring, jacobian_coloring
from sparsad.decompression import hessian, jacobian
from sparsad.pattern import ColoredPattern


class VerificationError(AssertionError):
    """Raised when a sparse result does not match JAX's dense reference.

    Usually the detected pattern is missing nonzeros,
    for example because ``f`` takes a different branch at the input being checked
    than at the point the pattern was detected at.
    """


def check_jacobian_correctness(
    f: Callable[[ArrayLike], ArrayLike],
    x: ArrayLike,
    *,
    colored_pattern: ColoredPattern | None = None,
    rtol: float = 1e-7,
    atol: float = 1e-7,
) -> None:
    """Verify the sparse Jacobian against ``jax.jacobian`` at a given input.

    Args:
        f: Function taking an array and returning an array.
        x: Input at which to evaluate the Jacobian.
        colored_pattern: Optional pre-computed colored pattern.
            If None, sparsity is detected at ``x`` and colored automatically.
        rtol: Relative tolerance for comparison.
        atol: Absolute tolerance for comparison.

    Raises:
        VerificationError: If the sparse and dense Jacobians disagree.
    """
    x = jnp.asarray(x, dtype=float)

    if colored_pattern is None:
        colored_pattern = jacobian_coloring(f, x)

    J_sparse = jacobian(f, x, colored_pattern).todense()
    J_dense = jnp.reshape(jax.jacobian(f)(x), (-1, x.size))

    _check_allclose(J_sparse, J_dense, "Jacobian", rtol=rtol, atol=atol)


def check_hessian_correctness(
    f: Callable[[ArrayLike], ArrayLike],
    x: ArrayLike,
    *,
    colored_pattern: ColoredPattern | None = None,
    rtol: float = 1e-7,
    atol: float = 1e-7,
) -> None:
    """Verify the sparse Hessian against ``jax.hessian`` at a given input.

    Args:
        f: Scalar-valued function taking an array.
        x: Input at which to evaluate the Hessian.
        colored_pattern: Optional pre-computed colored pattern.
            If None, sparsity is detected at ``x`` and colored automatically.
        rtol: Relative tolerance for comparison.
        atol: Absolute tolerance for comparison.

    Raises:
        VerificationError: If the sparse and dense Hessians disagree.
    """
    x = jnp.asarray(x, dtype=float)

    if colored_pattern is None:
        colored_pattern = hessian_coloring(f, x)

    H_sparse = hessian(f, x, colored_pattern).todense()
    H_dense = jax.hessian(lambda z: jnp.squeeze(f(z)))(x).reshape(x.size, x.size)

    _check_allclose(H_sparse, H_dense, "Hessian", rtol=rtol, atol=atol)


def _check_allclose(
    sparse: jax.Array,
    dense: jax.Array,
    name: str,
    *,
    rtol: float,
    atol: float,
) -> None:
    """Compare sparse and dense results, raising VerificationError on mismatch."""
    sparse_np = np.asarray(sparse)
    dense_np = np.asarray(dense)

    if sparse_np.shape != dense_np.shape:
        raise VerificationError(
            f"Sparse {name} has shape {sparse_np.shape} "
            f"but JAX's dense reference has shape {dense_np.shape}."
        )

    try:
        np.testing.assert_allclose(sparse_np, dense_np, rtol=rtol, atol=atol)
    except AssertionError as e:
        raise VerificationError(
            f"Sparse {name} does not match JAX's dense reference. "
            "This likely means the sparsity pattern is missing nonzeros "
            f"at this input.\n{e}"
        ) from None
