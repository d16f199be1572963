"""Graph coloring for sparse Jacobian and Hessian computation.

Greedy coloring assigns colors to vertices such that conflicting vertices
get different colors.
Row coloring enables computing multiple Jacobian rows in a single VJP.
Column coloring enables computing multiple Jacobian columns in a single JVP.
Star and acyclic coloring exploit Hessian symmetry for fewer colors:
star colorings decompress directly,
acyclic colorings need substitution but use fewer colors still.

References:
    Gebremedhin, Manne & Pothen (2005), "What Color Is Your Jacobian?
    Graph Coloring for Computing Derivatives", SIAM Review 47(4).
    Gebremedhin, Tarafdar, Manne & Pothen (2007), "New Acyclic and Star
    Coloring Algorithms with Application to Computing Hessians",
    SIAM J. Sci. Comput. 29(3).
"""

import logging
from collections.abc import Callable
from typing import Literal

import numpy as np
from numpy.typing import ArrayLike, NDArray

from sparsad._exceptions import InvalidStructure, PreconditionViolated
from sparsad._graph import (
    AdjacencyGraph,
    BipartiteGraph,
    VertexOrder,
    greedy_acyclic,
    greedy_distance1,
    greedy_star,
    is_acyclic,
    is_distance_k,
    is_star,
    vertex_order,
)
from sparsad.detection import hessian_sparsity as _detect_hessian_sparsity
from sparsad.detection import jacobian_sparsity as _detect_jacobian_sparsity
from sparsad.pattern import ColoredPattern, SparsityPattern

logger = logging.getLogger(__name__)

Coloring = tuple[NDArray[np.int32], int]

# =========================================================================
# Public API: high-level convenience functions
# =========================================================================


def jacobian_coloring(
    f: Callable,
    x: ArrayLike,
    partition: Literal["row", "column", "auto"] = "auto",
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> ColoredPattern:
    """Detect Jacobian sparsity at ``x`` and color in one step.

    Args:
        f: Function taking an array and returning an array.
        x: Representative input point.
        partition: Which partition to color
            (``"row"``, ``"column"``, or ``"auto"``).
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        A [`ColoredPattern`][sparsad.ColoredPattern] ready for [`jacobian`][sparsad.jacobian].
    """
    sparsity = _detect_jacobian_sparsity(f, x)
    return color_jacobian_pattern(sparsity, partition, order=order, seed=seed)


def hessian_coloring(
    f: Callable,
    x: ArrayLike,
    decompression: Literal["direct", "substitution"] = "direct",
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> ColoredPattern:
    """Detect Hessian sparsity at ``x`` and color in one step.

    The detected pattern gets its full diagonal added before coloring,
    since both symmetric disciplines require one.
    A structurally zero diagonal entry is then recovered as an explicit zero.

    Args:
        f: Scalar-valued function taking an array.
        x: Representative input point.
        decompression: ``"direct"`` for star coloring,
            ``"substitution"`` for acyclic coloring.
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        A [`ColoredPattern`][sparsad.ColoredPattern] ready for [`hessian`][sparsad.hessian].
    """
    sparsity = _detect_hessian_sparsity(f, x).with_diagonal()
    return color_hessian_pattern(sparsity, decompression, order=order, seed=seed)


# =========================================================================
# Public API: pattern coloring
# =========================================================================


def color_jacobian_pattern(
    sparsity: SparsityPattern,
    partition: Literal["row", "column", "auto"] = "auto",
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
    verify: bool = True,
) -> ColoredPattern:
    """Color a sparsity pattern for sparse Jacobian computation.

    Assigns colors so that same-colored rows (or columns) can be
    computed together in a single VJP (or JVP).

    Args:
        sparsity: Sparsity pattern of shape (m, n).
        partition: Which partition to color.
            ``"row"`` colors rows (uses VJPs),
            ``"column"`` colors columns (uses JVPs),
            ``"auto"`` picks whichever needs fewer colors
            (ties go to column coloring since JVPs are cheaper).
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.
        verify: Check structural orthogonality before returning.

    Returns:
        A [`ColoredPattern`][sparsad.ColoredPattern] ready for [`jacobian`][sparsad.jacobian].

    Raises:
        ValueError: If ``partition`` is not one of the above.
    """
    if partition not in ("row", "column", "auto"):
        msg = f"Unknown partition {partition!r}, expected 'row', 'column' or 'auto'"
        raise ValueError(msg)

    # Nothing to compute when there are no nonzeros.
    if sparsity.nnz == 0:
        mode = "VJP" if partition == "row" else "JVP"
        n_vertices = sparsity.m if partition == "row" else sparsity.n
        return ColoredPattern(
            sparsity,
            colors=np.full(n_vertices, -1, dtype=np.int32),
            num_colors=0,
            mode=mode,
        )

    if partition == "row":
        colors_arr, num = color_rows(sparsity, order=order, seed=seed)
        mode = "VJP"
    elif partition == "column":
        colors_arr, num = color_cols(sparsity, order=order, seed=seed)
        mode = "JVP"
    else:
        row_colors, num_row = color_rows(sparsity, order=order, seed=seed)
        col_colors, num_col = color_cols(sparsity, order=order, seed=seed)
        if num_col <= num_row:
            colors_arr, num, mode = col_colors, num_col, "JVP"
        else:
            colors_arr, num, mode = row_colors, num_row, "VJP"

    partition_name = "row" if mode == "VJP" else "column"
    if verify and not is_structurally_orthogonal(sparsity, colors_arr, partition_name):
        msg = f"Greedy {partition_name} coloring is not structurally orthogonal"
        raise RuntimeError(msg)

    logger.debug(
        "Colored %s pattern by %ss: %d colors instead of %d",
        sparsity.shape,
        partition_name,
        num,
        len(colors_arr),
    )
    return ColoredPattern(sparsity, colors=colors_arr, num_colors=num, mode=mode)


def color_hessian_pattern(
    sparsity: SparsityPattern,
    decompression: Literal["direct", "substitution"] = "direct",
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
    verify: bool = True,
) -> ColoredPattern:
    """Color a symmetric sparsity pattern for sparse Hessian computation.

    Uses star coloring for direct decompression
    or acyclic coloring for decompression by substitution.
    Both exploit symmetry for fewer colors than row or column coloring.

    Args:
        sparsity: Symmetric sparsity pattern of shape (n, n)
            with a full diagonal.
        decompression: ``"direct"`` or ``"substitution"``.
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.
        verify: Check the coloring against its discipline before returning.

    Returns:
        A [`ColoredPattern`][sparsad.ColoredPattern] ready for [`hessian`][sparsad.hessian].

    Raises:
        InvalidStructure: If the pattern is not square and symmetric.
        PreconditionViolated: If a diagonal entry is missing.
        ValueError: If ``decompression`` is not one of the above.
    """
    if decompression not in ("direct", "substitution"):
        msg = (
            f"Unknown decompression {decompression!r}, "
            "expected 'direct' or 'substitution'"
        )
        raise ValueError(msg)
    _check_symmetric(sparsity, require_diagonal=True)

    if sparsity.nnz == 0:
        return ColoredPattern(
            sparsity,
            colors=np.full(sparsity.n, -1, dtype=np.int32),
            num_colors=0,
            mode="HVP",
            decompression=decompression,
        )

    graph = AdjacencyGraph.from_pattern(sparsity)
    if decompression == "direct":
        colors_arr, num = greedy_star(graph, vertex_order(graph, order, seed))
        valid = not verify or is_star(graph, colors_arr)
        discipline = "star"
    else:
        colors_arr, num = greedy_acyclic(graph, vertex_order(graph, order, seed))
        valid = not verify or is_acyclic(graph, colors_arr)
        discipline = "acyclic"
    if not valid:
        msg = f"Greedy {discipline} coloring violates its invariant"
        raise RuntimeError(msg)

    logger.debug(
        "Colored %s pattern by %s coloring: %d colors instead of %d",
        sparsity.shape,
        discipline,
        num,
        sparsity.n,
    )
    return ColoredPattern(
        sparsity,
        colors=colors_arr,
        num_colors=num,
        mode="HVP",
        decompression=decompression,
    )


# =========================================================================
# Public API: low-level coloring algorithms
# =========================================================================


def color_rows(
    sparsity: SparsityPattern,
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> Coloring:
    """Greedy row-wise coloring for sparse Jacobian computation.

    Assigns colors to rows such that no two rows sharing a non-zero column
    have the same color,
    i.e. a distance-2 coloring of the row vertices of the bipartite graph.
    This enables computing multiple Jacobian rows in a single VJP
    by using a combined seed vector.

    Args:
        sparsity: SparsityPattern of shape (m, n) representing the
            Jacobian sparsity pattern
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        Tuple of (colors, num_colors) where:
        - colors: Array of shape (m,) with color assignment for each row
        - num_colors: Total number of colors used
    """
    if sparsity.m == 0:
        return np.array([], dtype=np.int32), 0

    conflicts = BipartiteGraph(sparsity).row_intersection_graph()
    return greedy_distance1(conflicts, vertex_order(conflicts, order, seed))


def color_cols(
    sparsity: SparsityPattern,
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> Coloring:
    """Greedy column-wise coloring for sparse Jacobian computation.

    Assigns colors to columns such that no two columns sharing a non-zero row
    have the same color,
    i.e. a distance-2 coloring of the column vertices of the bipartite graph.
    This enables computing multiple Jacobian columns in a single JVP
    by using a combined tangent vector.

    Args:
        sparsity: SparsityPattern of shape (m, n) representing the
            Jacobian sparsity pattern
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        Tuple of (colors, num_colors) where:
        - colors: Array of shape (n,) with color assignment for each column
        - num_colors: Total number of colors used
    """
    if sparsity.n == 0:
        return np.array([], dtype=np.int32), 0

    conflicts = BipartiteGraph(sparsity).column_intersection_graph()
    return greedy_distance1(conflicts, vertex_order(conflicts, order, seed))


def color_star(
    sparsity: SparsityPattern,
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> Coloring:
    """Greedy star coloring for sparse Hessian computation.

    A distance-1 coloring of the adjacency graph
    with the additional constraint that every path on 4 vertices
    uses at least 3 colors.
    Each off-diagonal entry can then be read directly
    off a single Hessian-vector product.

    Args:
        sparsity: Symmetric SparsityPattern of shape (n, n)
            with a full diagonal.
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        Tuple of (colors, num_colors).

    Raises:
        InvalidStructure: If the pattern is not square and symmetric.
        PreconditionViolated: If a diagonal entry is missing.
    """
    _check_symmetric(sparsity, require_diagonal=True)
    if sparsity.n == 0:
        return np.array([], dtype=np.int32), 0
    graph = AdjacencyGraph.from_pattern(sparsity)
    return greedy_star(graph, vertex_order(graph, order, seed))


def color_acyclic(
    sparsity: SparsityPattern,
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> Coloring:
    """Greedy acyclic coloring for sparse Hessian computation.

    A distance-1 coloring of the adjacency graph
    in which every cycle uses at least 3 colors,
    so the subgraph induced by any two colors is a forest.
    Entries are recovered by substitution along those forests.

    Args:
        sparsity: Symmetric SparsityPattern of shape (n, n)
            with a full diagonal.
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        Tuple of (colors, num_colors).

    Raises:
        InvalidStructure: If the pattern is not square and symmetric.
        PreconditionViolated: If a diagonal entry is missing.
    """
    _check_symmetric(sparsity, require_diagonal=True)
    if sparsity.n == 0:
        return np.array([], dtype=np.int32), 0
    graph = AdjacencyGraph.from_pattern(sparsity)
    return greedy_acyclic(graph, vertex_order(graph, order, seed))


def color_distance_k(
    sparsity: SparsityPattern,
    k: int,
    *,
    order: VertexOrder = "largest_first",
    seed: int | None = None,
) -> Coloring:
    """Greedy distance-k coloring of the adjacency graph.

    Vertices within distance ``k`` of each other get different colors.
    ``k=1`` is an ordinary proper coloring,
    ``k=2`` a coloring of the squared graph,
    which is always also a star coloring.

    Args:
        sparsity: Symmetric SparsityPattern of shape (n, n).
            The diagonal is ignored.
        k: Distance, at least 1.
        order: Vertex order for the greedy coloring.
        seed: Seed for the ``"random"`` vertex order.

    Returns:
        Tuple of (colors, num_colors).

    Raises:
        InvalidStructure: If the pattern is not square and symmetric.
        ValueError: If ``k < 1``.
    """
    _check_symmetric(sparsity, require_diagonal=False)
    if sparsity.n == 0:
        return np.array([], dtype=np.int32), 0
    power = AdjacencyGraph.from_pattern(sparsity).power(k)
    return greedy_distance1(power, vertex_order(power, order, seed))


# =========================================================================
# Public API: validity predicates
# =========================================================================


def is_structurally_orthogonal(
    sparsity: SparsityPattern,
    colors: NDArray[np.int32],
    partition: Literal["row", "column"] = "column",
) -> bool:
    """Whether same-colored columns (or rows) never share a nonzero.

    Args:
        sparsity: Sparsity pattern of shape (m, n).
        colors: One color per column (or row).
        partition: Which side ``colors`` belongs to.
    """
    groups = (
        sparsity.row_to_cols if partition == "column" else sparsity.col_to_rows
    ).values()
    for members in groups:
        seen = [int(colors[v]) for v in members]
        if len(set(seen)) < len(seen):
            return False
    return True


def is_distance_k_coloring(
    sparsity: SparsityPattern, colors: NDArray[np.int32], k: int
) -> bool:
    """Whether vertices within distance ``k`` in the adjacency graph differ in color."""
    _check_symmetric(sparsity, require_diagonal=False)
    return is_distance_k(AdjacencyGraph.from_pattern(sparsity), colors, k)


def is_star_coloring(sparsity: SparsityPattern, colors: NDArray[np.int32]) -> bool:
    """Whether ``colors`` is a star coloring of the adjacency graph."""
    _check_symmetric(sparsity, require_diagonal=False)
    return is_star(AdjacencyGraph.from_pattern(sparsity), colors)


def is_acyclic_coloring(
    sparsity: SparsityPattern, colors: NDArray[np.int32]
) -> bool:
    """Whether ``colors`` is an acyclic coloring of the adjacency graph."""
    _check_symmetric(sparsity, require_diagonal=False)
    return is_acyclic(AdjacencyGraph.from_pattern(sparsity), colors)


# =========================================================================
# Private helpers
# =========================================================================


def _check_symmetric(sparsity: SparsityPattern, *, require_diagonal: bool) -> None:
    """Reject patterns the symmetric disciplines cannot handle."""
    if sparsity.m != sparsity.n:
        msg = (
            f"Symmetric coloring requires a square pattern, got shape {sparsity.shape}"
        )
        raise InvalidStructure(msg)
    if not sparsity.is_symmetric:
        msg = "Symmetric coloring requires a symmetric pattern"
        raise InvalidStructure(msg)
    if require_diagonal and not sparsity.has_full_diagonal:
        diagonal = set(sparsity.rows[sparsity.rows == sparsity.cols].tolist())
        missing = [i for i in range(sparsity.n) if i not in diagonal]
        msg = (
            "Star and acyclic coloring require a nonzero diagonal, "
            f"missing entries {missing[:10]}"
        )
        raise PreconditionViolated(msg)
