"""Sparse Jacobian and Hessian computation using coloring and AD.

Row coloring + VJPs: same-colored rows don't share non-zero columns,
so they can be computed together in a single VJP.
Column coloring + JVPs: same-colored columns don't share non-zero rows,
so they can be computed together in a single JVP.
Star coloring + HVPs: every entry is read directly off one product.
Acyclic coloring + HVPs: entries are recovered by substitution,
peeling leaves off the two-colored trees one at a time.

The compressed matrix always has one row per color.
Its width is the number of columns for ``"VJP"``
and the number of rows for ``"JVP"`` and ``"HVP"``.
"""

import logging
from collections.abc import Callable

import jax
import jax.numpy as jnp
import numpy as np
from jax.experimental.sparse import BCOO
from numpy.typing import ArrayLike, NDArray

from sparsad._graph import AdjacencyGraph
from sparsad.coloring import hessian_coloring, jacobian_coloring
from sparsad.pattern import ColoredPattern

logger = logging.getLogger(__name__)


# =========================================================================
# Compression and decompression of known products
# =========================================================================


def compress(colored: ColoredPattern, matrix: ArrayLike) -> NDArray:
    """Compressed representation of a dense matrix under a coloring.

    Equivalent to what the AD products return for a function
    whose Jacobian (or Hessian) is ``matrix``.

    Args:
        colored: Coloring of ``matrix``'s sparsity pattern.
        matrix: Dense matrix of shape ``colored.sparsity.shape``.

    Returns:
        Array of shape ``(num_colors, n)`` for ``"VJP"``
            and ``(num_colors, m)`` otherwise.
    """
    matrix = np.asarray(matrix)
    if matrix.shape != colored.sparsity.shape:
        msg = f"Expected matrix of shape {colored.sparsity.shape}, got {matrix.shape}"
        raise ValueError(msg)
    seeds = colored.seed_matrix.astype(matrix.dtype)
    if colored.mode == "VJP":
        return seeds @ matrix
    return (matrix @ seeds.T).T


def decompress(colored: ColoredPattern, compressed: ArrayLike) -> BCOO:
    """Recover the sparse matrix from its compressed products.

    Uses direct extraction for distance-2 and star colorings
    and substitution for acyclic colorings,
    as recorded in ``colored.decompression``.
    A coloring that does not match the matrix's true pattern
    gives wrong values without raising.

    Args:
        colored: The coloring the products were computed with.
        compressed: One product per color, see `compress` for the shape.

    Returns:
        Sparse matrix as BCOO with ``colored.sparsity``'s shape and entries.
    """
    compressed = np.asarray(compressed)
    sparsity = colored.sparsity
    width = sparsity.n if colored.mode == "VJP" else sparsity.m
    if compressed.shape != (colored.num_colors, width):
        msg = (
            f"Expected compressed products of shape {(colored.num_colors, width)}, "
            f"got {compressed.shape}"
        )
        raise ValueError(msg)

    if sparsity.nnz == 0:
        return sparsity.to_bcoo(data=jnp.zeros(0, dtype=compressed.dtype))

    if colored.decompression == "substitution":
        data = _decompress_substitution(colored, compressed)
    else:
        color_idx, elem_idx = colored._extraction_indices
        data = compressed[color_idx, elem_idx]
    return sparsity.to_bcoo(data=jnp.asarray(data))


def _decompress_substitution(colored: ColoredPattern, compressed: NDArray) -> NDArray:
    """Extract Hessian entries from HVP results using an acyclic coloring.

    ``compressed[d][u]`` is the sum of ``A[u, w]`` over neighbors ``w``
    colored ``d``.
    Once all but one of those neighbors are resolved,
    the residual is exactly the remaining entry.
    In an acyclic coloring every two-colored component is a tree,
    so resolving leaves exposes new leaves until every edge is done.

    Diagonal entries are read directly:
    no neighbor of ``i`` shares its color.
    """
    sparsity = colored.sparsity
    colors = colored.colors
    graph = AdjacencyGraph.from_pattern(sparsity)

    residual = compressed.copy()
    remaining = [set(nbrs) for nbrs in graph.neighbors]
    counts: list[dict[int, int]] = []
    for nbrs in graph.neighbors:
        per_color: dict[int, int] = {}
        for w in nbrs:
            per_color[int(colors[w])] = per_color.get(int(colors[w]), 0) + 1
        counts.append(per_color)

    worklist = [
        (u, d)
        for u, per_color in enumerate(counts)
        for d, count in per_color.items()
        if count == 1
    ]
    entries: dict[tuple[int, int], object] = {}
    while worklist:
        u, d = worklist.pop()
        if counts[u].get(d) != 1:
            continue
        v = next(w for w in remaining[u] if colors[w] == d)
        value = residual[d, u]
        entries[u, v] = entries[v, u] = value

        c = int(colors[u])
        remaining[u].discard(v)
        remaining[v].discard(u)
        counts[u][d] -= 1
        counts[v][c] -= 1
        residual[d, u] -= value
        residual[c, v] -= value
        if counts[v][c] == 1:
            worklist.append((v, c))

    unresolved = sum(len(r) for r in remaining) // 2
    logger.debug(
        "Substitution resolved %d off-diagonal pairs, %d left unresolved",
        len(entries) // 2,
        unresolved,
    )

    data = np.empty(sparsity.nnz, dtype=compressed.dtype)
    for k, (i, j) in enumerate(zip(sparsity.rows, sparsity.cols, strict=True)):
        i, j = int(i), int(j)
        if i == j:
            data[k] = compressed[colors[i], i]
        else:
            # Unresolved pairs only occur for a coloring that is not acyclic.
            data[k] = entries.get((i, j), compressed[colors[j], i])
    return data


# =========================================================================
# AD products
# =========================================================================


def _flat_output(f: Callable) -> Callable:
    return lambda x: jnp.ravel(jnp.asarray(f(x)))


def _compute_jvps(f: Callable, x: jax.Array, seeds: NDArray[np.bool_]) -> jax.Array:
    """One JVP per color, batched with ``vmap``: shape ``(num_colors, m)``."""
    g = _flat_output(f)
    tangents = jnp.asarray(seeds, dtype=x.dtype).reshape((-1, *x.shape))

    def jvp(tangent):
        _, out = jax.jvp(g, (x,), (tangent,))
        return out

    return jax.vmap(jvp)(tangents)


def _compute_vjps(f: Callable, x: jax.Array, seeds: NDArray[np.bool_]) -> jax.Array:
    """One VJP per color, batched with ``vmap``: shape ``(num_colors, n)``."""
    out, vjp_fn = jax.vjp(_flat_output(f), x)
    cotangents = jnp.asarray(seeds, dtype=out.dtype)

    def vjp(cotangent):
        (grad,) = vjp_fn(cotangent)
        return jnp.ravel(grad)

    return jax.vmap(vjp)(cotangents)


def _compute_hvps(f: Callable, x: jax.Array, seeds: NDArray[np.bool_]) -> jax.Array:
    """One HVP per color using forward-over-reverse AD: shape ``(num_colors, n)``."""
    grad = jax.grad(lambda z: jnp.squeeze(jnp.asarray(f(z))))
    tangents = jnp.asarray(seeds, dtype=x.dtype).reshape((-1, *x.shape))

    def hvp(tangent):
        _, out = jax.jvp(grad, (x,), (tangent,))
        return jnp.ravel(out)

    return jax.vmap(hvp)(tangents)


def _as_float(x: ArrayLike) -> jax.Array:
    x = jnp.asarray(x)
    if not jnp.issubdtype(x.dtype, jnp.inexact):
        x = x.astype(float)
    return x


def jacobian(
    f: Callable[[ArrayLike], ArrayLike],
    x: ArrayLike,
    colored_pattern: ColoredPattern | None = None,
) -> BCOO:
    """Compute sparse Jacobian using coloring and AD.

    Uses row coloring + VJPs or column coloring + JVPs,
    as recorded in the colored pattern.

    Args:
        f: Function taking an array and returning an array.
            Both may be multi-dimensional.
        x: Input point (any shape).
        colored_pattern: Optional pre-computed
            [`ColoredPattern`][sparsad.ColoredPattern]
            from [`jacobian_coloring`][sparsad.jacobian_coloring].
            If None, sparsity is detected at ``x`` and colored automatically.

    Returns:
        Sparse Jacobian matrix of shape (m, n) as BCOO,
        where n = x.size and m = prod(output_shape)
    """
    x = _as_float(x)
    if colored_pattern is None:
        colored_pattern = jacobian_coloring(f, x)

    sparsity = colored_pattern.sparsity
    if sparsity.nnz == 0:
        return sparsity.to_bcoo(data=jnp.zeros(0, dtype=x.dtype))

    logger.debug(
        "Computing %s Jacobian with %d %ss",
        sparsity.shape,
        colored_pattern.num_colors,
        colored_pattern.mode,
    )
    seeds = colored_pattern.seed_matrix
    if colored_pattern.mode == "VJP":
        compressed = _compute_vjps(f, x, seeds)
    else:
        compressed = _compute_jvps(f, x, seeds)
    return decompress(colored_pattern, compressed)


def hessian(
    f: Callable[[ArrayLike], ArrayLike],
    x: ArrayLike,
    colored_pattern: ColoredPattern | None = None,
) -> BCOO:
    """Compute sparse Hessian using coloring and HVPs.

    Uses forward-over-reverse Hessian-vector products for efficiency.

    Args:
        f: Scalar-valued function.
            Input may be multi-dimensional.
        x: Input point (any shape).
        colored_pattern: Optional pre-computed
            [`ColoredPattern`][sparsad.ColoredPattern]
            from [`hessian_coloring`][sparsad.hessian_coloring].
            If None, sparsity is detected at ``x``
            and star colored automatically.

    Returns:
        Sparse Hessian matrix of shape (n, n) as BCOO
    """
    x = _as_float(x)
    if colored_pattern is None:
        colored_pattern = hessian_coloring(f, x)
    if colored_pattern.mode != "HVP":
        msg = f"Expected an HVP coloring, got mode {colored_pattern.mode!r}"
        raise ValueError(msg)

    sparsity = colored_pattern.sparsity
    if sparsity.nnz == 0:
        return sparsity.to_bcoo(data=jnp.zeros(0, dtype=x.dtype))

    logger.debug(
        "Computing %s Hessian with %d HVPs (%s decompression)",
        sparsity.shape,
        colored_pattern.num_colors,
        colored_pattern.decompression,
    )
    compressed = _compute_hvps(f, x, colored_pattern.seed_matrix)
    return decompress(colored_pattern, compressed)
