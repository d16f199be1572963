"""Tests for graph coloring algorithms.

Validity is checked with independent brute-force helpers,
and with networkx for the acyclic forest property.
"""

import itertools

import networkx as nx
import numpy as np
import pytest

from sparsad import (
    ColoredPattern,
    InvalidStructure,
    PreconditionViolated,
    SparsityPattern,
    color_acyclic,
    color_cols,
    color_distance_k,
    color_hessian_pattern,
    color_jacobian_pattern,
    color_rows,
    color_star,
    hessian_coloring,
    is_acyclic_coloring,
    is_distance_k_coloring,
    is_star_coloring,
    is_structurally_orthogonal,
    jacobian_coloring,
    ops,
)
from sparsad._graph import (
    AdjacencyGraph,
    is_acyclic,
    is_proper,
    is_star,
    vertex_order,
)


def _make_pattern(
    rows: list[int], cols: list[int], shape: tuple[int, int]
) -> SparsityPattern:
    return SparsityPattern.from_coordinates(rows, cols, shape)


def _from_dense(matrix: list[list[int]]) -> SparsityPattern:
    return SparsityPattern.from_dense(np.array(matrix))


def _from_graph(graph: nx.Graph) -> SparsityPattern:
    """Symmetric pattern with full diagonal whose adjacency graph is ``graph``."""
    n = graph.number_of_nodes()
    rows = list(range(n))
    cols = list(range(n))
    for i, j in graph.edges():
        rows += [i, j]
        cols += [j, i]
    return _make_pattern(rows, cols, (n, n))


def _path(n: int) -> SparsityPattern:
    """Tridiagonal pattern: the path graph on ``n`` vertices."""
    return _from_graph(nx.path_graph(n))


def _make_arrow(n: int) -> SparsityPattern:
    """Arrow matrix: diagonal + dense first row/column."""
    return _from_graph(nx.star_graph(n - 1))


def _make_banded(n: int, half_bandwidth: int) -> SparsityPattern:
    rows, cols = [], []
    for i in range(n):
        for j in range(max(0, i - half_bandwidth), min(n, i + half_bandwidth + 1)):
            rows.append(i)
            cols.append(j)
    return _make_pattern(rows, cols, (n, n))


def _random_pattern(rng, m: int, n: int, density: float) -> SparsityPattern:
    return SparsityPattern.from_dense(rng.random((m, n)) < density)


def _columns_orthogonal(sparsity: SparsityPattern, colors) -> bool:
    """Brute force: same-colored columns have disjoint row sets."""
    dense = sparsity.todense().astype(bool)
    for a, b in itertools.combinations(range(sparsity.n), 2):
        if colors[a] == colors[b] and np.any(dense[:, a] & dense[:, b]):
            return False
    return True


def _no_bicolored_p4(sparsity: SparsityPattern, colors) -> bool:
    """Brute force over every path v0 - v1 - v2 - v3."""
    adj = AdjacencyGraph.from_pattern(sparsity).neighbors
    for v1 in range(sparsity.n):
        for v2 in adj[v1]:
            for v0 in adj[v1] - {v2}:
                for v3 in adj[v2] - {v1, v0}:
                    if len({colors[v0], colors[v1], colors[v2], colors[v3]}) < 3:
                        return False
    return True


def _bicolored_subgraphs_are_forests(sparsity: SparsityPattern, colors) -> bool:
    graph = nx.Graph()
    graph.add_nodes_from(range(sparsity.n))
    graph.add_edges_from(AdjacencyGraph.from_pattern(sparsity).edges())
    for c, d in itertools.combinations(sorted(set(colors.tolist())), 2):
        nodes = [v for v in range(sparsity.n) if colors[v] in (c, d)]
        if nodes and not nx.is_forest(graph.subgraph(nodes)):
            return False
    return True


# Row and column coloring


@pytest.mark.coloring
def test_diagonal_one_color():
    """Diagonal matrix: all rows are independent, should use 1 color."""
    sparsity = _make_pattern([0, 1, 2, 3], [0, 1, 2, 3], (4, 4))

    colors, num_colors = color_rows(sparsity)

    assert num_colors == 1
    np.testing.assert_array_equal(colors, [0, 0, 0, 0])


@pytest.mark.coloring
def test_dense_needs_all_colors():
    sparsity = _from_dense(np.ones((4, 3), dtype=int))

    _, num_rows = color_rows(sparsity)
    _, num_cols = color_cols(sparsity)

    assert num_rows == 4
    assert num_cols == 3


@pytest.mark.coloring
def test_bridged_cliques_largest_first():
    """Two 3-cliques of rows bridged by one column need exactly 3 colors."""
    rows = [0, 1, 2, 3, 4, 5, 0, 3]
    cols = [0, 0, 0, 1, 1, 1, 2, 2]
    sparsity = _make_pattern(rows, cols, (6, 3))

    colors, num_colors = color_rows(sparsity)

    assert num_colors == 3
    assert is_structurally_orthogonal(sparsity, colors, "row")


@pytest.mark.coloring
def test_column_coloring_of_tutorial_matrix():
    """4x6 pattern containing a triangle of conflicting columns."""
    sparsity = _from_dense(
        [
            [0, 0, 1, 1, 0, 1],
            [1, 0, 0, 0, 1, 0],
            [0, 1, 0, 0, 1, 0],
            [0, 1, 1, 0, 0, 0],
        ]
    )

    colors, num_colors = color_cols(sparsity)

    assert num_colors == 3
    assert _columns_orthogonal(sparsity, colors)


@pytest.mark.coloring
def test_4x5_needs_two_jvps():
    """Columns 0, 3 and 4 share no rows, nor do columns 1 and 2."""
    sparsity = _make_pattern(
        [0, 0, 1, 1, 2, 2, 3], [0, 2, 1, 3, 2, 4, 3], (4, 5)
    )

    colored = color_jacobian_pattern(sparsity, "column")

    assert colored.num_colors == 2
    assert colored.mode == "JVP"
    np.testing.assert_array_equal(colored.colors, [1, 0, 0, 1, 1])


@pytest.mark.coloring
@pytest.mark.parametrize("seed", range(10))
def test_structural_orthogonality_random(seed):
    """Random patterns up to 50x50: same-colored columns never share a row."""
    rng = np.random.default_rng(seed)
    m, n = rng.integers(1, 51, size=2)
    sparsity = _random_pattern(rng, int(m), int(n), density=0.1)

    col_colors, num_cols = color_cols(sparsity)
    row_colors, num_rows = color_rows(sparsity)

    assert _columns_orthogonal(sparsity, col_colors)
    assert _columns_orthogonal(sparsity.transpose(), row_colors)
    assert set(col_colors.tolist()) == set(range(num_cols))
    assert set(row_colors.tolist()) == set(range(num_rows))


@pytest.mark.coloring
def test_zero_pattern_one_color():
    sparsity = _make_pattern([], [], (3, 3))

    colors, num_colors = color_rows(sparsity)

    assert num_colors == 1
    np.testing.assert_array_equal(colors, [0, 0, 0])


@pytest.mark.coloring
def test_empty_dimension():
    colors, num_colors = color_cols(_make_pattern([], [], (3, 0)))
    assert num_colors == 0
    assert len(colors) == 0


# Jacobian pattern coloring


@pytest.mark.coloring
def test_auto_prefers_fewer_colors():
    """Single dense row: 1 row color versus n column colors."""
    sparsity = _make_pattern([0, 0, 0], [0, 1, 2], (1, 3))

    colored = color_jacobian_pattern(sparsity, "auto")

    assert colored.mode == "VJP"
    assert colored.num_colors == 1


@pytest.mark.coloring
def test_auto_ties_go_to_columns():
    sparsity = _make_pattern([0, 1], [0, 1], (2, 2))

    colored = color_jacobian_pattern(sparsity)

    assert colored.mode == "JVP"
    assert colored.num_colors == 1


@pytest.mark.coloring
def test_jacobian_pattern_without_nonzeros():
    colored = color_jacobian_pattern(_make_pattern([], [], (2, 3)), "row")

    assert colored.num_colors == 0
    assert colored.mode == "VJP"
    np.testing.assert_array_equal(colored.colors, [-1, -1])


@pytest.mark.coloring
def test_unknown_partition_raises():
    with pytest.raises(ValueError, match="partition"):
        color_jacobian_pattern(_make_pattern([0], [0], (1, 1)), "diagonal")


@pytest.mark.coloring
def test_jacobian_coloring_detects_and_colors():
    def f(x):
        return ops.stack([x[0] * x[1], ops.sin(x[2]), x[3] ** 2])

    colored = jacobian_coloring(f, np.ones(4))

    assert isinstance(colored, ColoredPattern)
    assert colored.sparsity.shape == (3, 4)
    # No two rows share a column, so a single VJP suffices.
    assert colored.mode == "VJP"
    assert colored.num_colors == 1


# Star coloring


@pytest.mark.coloring
def test_star_worked_example():
    """[[1,2,3,0],[2,4,0,5],[3,0,6,0],[0,5,0,7]] needs 3 star colors.

    Vertices 1 and 2 share a color, 0 and 3 get their own.
    """
    sparsity = _from_dense(
        [
            [1, 2, 3, 0],
            [2, 4, 0, 5],
            [3, 0, 6, 0],
            [0, 5, 0, 7],
        ]
    )

    colors, num_colors = color_star(sparsity)

    assert num_colors == 3
    np.testing.assert_array_equal(colors, [0, 1, 1, 2])
    assert _no_bicolored_p4(sparsity, colors)


@pytest.mark.coloring
def test_star_path_needs_three_colors():
    colors, num_colors = color_star(_path(4))

    assert num_colors == 3
    assert _no_bicolored_p4(_path(4), colors)


@pytest.mark.coloring
def test_star_arrow_two_colors():
    """The hub gets one color, all leaves share another."""
    colors, num_colors = color_star(_make_arrow(8))

    assert num_colors == 2
    assert colors[0] == 0
    assert np.all(colors[1:] == 1)


@pytest.mark.coloring
@pytest.mark.parametrize("half_bandwidth", [1, 2, 3])
def test_star_banded(half_bandwidth):
    sparsity = _make_banded(12, half_bandwidth)

    colors, num_colors = color_star(sparsity)

    assert _no_bicolored_p4(sparsity, colors)
    assert num_colors >= half_bandwidth + 1


@pytest.mark.coloring
@pytest.mark.parametrize("seed", range(10))
def test_star_random_graphs(seed):
    sparsity = _from_graph(nx.gnp_random_graph(25, 0.15, seed=seed))

    colors, _ = color_star(sparsity)

    assert _no_bicolored_p4(sparsity, colors)
    assert is_star_coloring(sparsity, colors)


@pytest.mark.coloring
def test_star_predicate_rejects_bicolored_path():
    sparsity = _path(4)
    assert not is_star_coloring(sparsity, np.array([0, 1, 0, 1]))
    assert is_star_coloring(sparsity, np.array([0, 1, 2, 0]))
    assert not is_star_coloring(sparsity, np.array([0, 0, 1, 2]))


# Acyclic coloring


@pytest.mark.coloring
def test_acyclic_path_two_colors():
    colors, num_colors = color_acyclic(_path(4))

    assert num_colors == 2
    np.testing.assert_array_equal(colors, [1, 0, 1, 0])


@pytest.mark.coloring
def test_acyclic_even_cycle_needs_three_colors():
    """A 2-colored even cycle is proper but not acyclic."""
    sparsity = _from_graph(nx.cycle_graph(6))

    colors, num_colors = color_acyclic(sparsity)

    assert num_colors == 3
    assert _bicolored_subgraphs_are_forests(sparsity, colors)
    assert not is_acyclic_coloring(sparsity, np.array([0, 1, 0, 1, 0, 1]))


@pytest.mark.coloring
@pytest.mark.parametrize("seed", range(10))
def test_acyclic_random_graphs(seed):
    sparsity = _from_graph(nx.gnp_random_graph(25, 0.2, seed=seed))

    colors, _ = color_acyclic(sparsity)

    assert _bicolored_subgraphs_are_forests(sparsity, colors)
    assert is_acyclic_coloring(sparsity, colors)


@pytest.mark.coloring
@pytest.mark.parametrize("seed", range(5))
def test_star_colorings_are_acyclic(seed):
    sparsity = _from_graph(nx.gnp_random_graph(20, 0.2, seed=seed))

    colors, _ = color_star(sparsity)

    assert _bicolored_subgraphs_are_forests(sparsity, colors)


# Distance-k coloring


@pytest.mark.coloring
def test_distance_two_on_path():
    colors, num_colors = color_distance_k(_path(6), 2)

    assert num_colors == 3
    assert is_distance_k_coloring(_path(6), colors, 2)


@pytest.mark.coloring
def test_distance_one_is_proper():
    sparsity = _from_graph(nx.cycle_graph(5))

    colors, num_colors = color_distance_k(sparsity, 1)

    assert num_colors == 3
    assert is_distance_k_coloring(sparsity, colors, 1)
    assert not is_distance_k_coloring(sparsity, colors, 2)


@pytest.mark.coloring
def test_distance_two_coloring_is_star():
    sparsity = _from_graph(nx.gnp_random_graph(20, 0.2, seed=3))

    colors, _ = color_distance_k(sparsity, 2)

    assert is_star_coloring(sparsity, colors)


@pytest.mark.coloring
def test_graph_power():
    graph = AdjacencyGraph.from_pattern(_path(5))

    squared = graph.power(2)

    assert squared.neighbors[0] == {1, 2}
    assert squared.neighbors[2] == {0, 1, 3, 4}
    assert graph.power(10).max_degree == 4


@pytest.mark.coloring
def test_distance_k_rejects_nonpositive_k():
    with pytest.raises(ValueError, match="k >= 1"):
        color_distance_k(_path(3), 0)


# Vertex orders


@pytest.mark.coloring
@pytest.mark.parametrize(
    "order", ["natural", "largest_first", "smallest_last", "random"]
)
def test_every_order_gives_valid_colorings(order):
    sparsity = _from_graph(nx.gnp_random_graph(20, 0.25, seed=7))

    star, _ = color_star(sparsity, order=order, seed=0)
    acyclic, _ = color_acyclic(sparsity, order=order, seed=0)
    cols, _ = color_cols(sparsity, order=order, seed=0)

    assert _no_bicolored_p4(sparsity, star)
    assert _bicolored_subgraphs_are_forests(sparsity, acyclic)
    assert _columns_orthogonal(sparsity, cols)


@pytest.mark.coloring
def test_random_order_is_seeded():
    graph = AdjacencyGraph.from_pattern(_path(10))

    first = vertex_order(graph, "random", seed=1)
    assert first == vertex_order(graph, "random", seed=1)
    assert sorted(vertex_order(graph, "random", seed=1)) == list(range(10))


@pytest.mark.coloring
def test_smallest_last_order():
    """Leaves of a star graph are removed first, so the hub ends up in front."""
    graph = AdjacencyGraph.from_pattern(_make_arrow(5))

    order = vertex_order(graph, "smallest_last")

    assert sorted(order) == list(range(5))
    assert 0 in order[:2]


@pytest.mark.coloring
def test_unknown_order_raises():
    with pytest.raises(ValueError, match="vertex order"):
        color_star(_path(3), order="alphabetical")


# Hessian pattern coloring


@pytest.mark.coloring
def test_hessian_pattern_modes():
    direct = color_hessian_pattern(_path(4))
    substitution = color_hessian_pattern(_path(4), "substitution")

    assert direct.mode == substitution.mode == "HVP"
    assert (direct.num_colors, direct.decompression) == (3, "direct")
    assert (substitution.num_colors, substitution.decompression) == (2, "substitution")


@pytest.mark.coloring
def test_non_square_raises_invalid_structure():
    sparsity = _make_pattern([0, 1], [0, 2], (2, 3))

    with pytest.raises(InvalidStructure, match="square"):
        color_hessian_pattern(sparsity)
    with pytest.raises(ValueError, match="square"):
        color_star(sparsity)


@pytest.mark.coloring
def test_non_symmetric_raises_invalid_structure():
    sparsity = _from_dense([[1, 1], [0, 1]])

    with pytest.raises(InvalidStructure, match="symmetric"):
        color_acyclic(sparsity)


@pytest.mark.coloring
@pytest.mark.parametrize("decompression", ["direct", "substitution"])
def test_missing_diagonal_raises(decompression):
    sparsity = _from_dense([[1, 1, 0], [1, 0, 1], [0, 1, 1]])

    with pytest.raises(PreconditionViolated, match=r"missing entries \[1\]"):
        color_hessian_pattern(sparsity, decompression)


@pytest.mark.coloring
def test_unknown_decompression_raises():
    with pytest.raises(ValueError, match="decompression"):
        color_hessian_pattern(_path(3), "magic")


@pytest.mark.hessian
def test_hessian_coloring_adds_diagonal():
    """x0 * x1 has no diagonal, which the convenience path fills in."""

    def f(x):
        return x[0] * x[1] + x[2]

    colored = hessian_coloring(f, np.ones(3))

    assert colored.sparsity.has_full_diagonal
    assert colored.sparsity.nnz == 5
    assert colored.num_colors == 2


# Chromatic ordering


def _exact_chromatic_numbers(graph: AdjacencyGraph) -> tuple[int, int, int, int]:
    """Exact (xi_1, xi_acyclic, xi_star, xi_1(G^2)) by enumerating partitions.

    Colorings are enumerated as restricted growth strings,
    so each partition of the vertices is visited once.
    """
    n = graph.num_vertices
    squared = graph.power(2)
    best = [n, n, n, n]

    def visit(colors, num):
        if not is_proper(graph, colors):
            return
        best[0] = min(best[0], num)
        if num < best[1] and is_acyclic(graph, colors):
            best[1] = num
        if num < best[2] and is_star(graph, colors):
            best[2] = num
        if num < best[3] and is_proper(squared, colors):
            best[3] = num

    colors = np.zeros(n, dtype=np.int32)

    def grow(v, num):
        if v == n:
            visit(colors, num)
            return
        for c in range(num + 1):
            colors[v] = c
            grow(v + 1, max(num, c + 1))

    grow(0, 0)
    return best[0], best[1], best[2], best[3]


@pytest.mark.slow
@pytest.mark.coloring
@pytest.mark.parametrize("seed", range(20))
def test_chromatic_ordering(seed):
    """xi_1 <= xi_acyclic <= xi_star <= xi_1(G^2) on Erdos-Renyi graphs.

    Exact values for small graphs,
    greedy upper bounds and implications between disciplines otherwise.
    """
    rng = np.random.default_rng(seed)
    n = int(rng.integers(4, 9)) if seed < 10 else int(rng.integers(9, 31))
    graph_nx = nx.erdos_renyi_graph(n, 0.3, seed=seed)
    sparsity = _from_graph(graph_nx)
    graph = AdjacencyGraph.from_pattern(sparsity)

    d1, num_d1 = color_distance_k(sparsity, 1)
    acyclic, num_acyclic = color_acyclic(sparsity)
    star, num_star = color_star(sparsity)
    d2, num_d2 = color_distance_k(sparsity, 2)

    # Each discipline implies the weaker ones.
    assert is_star_coloring(sparsity, d2)
    assert is_acyclic_coloring(sparsity, star)
    assert is_distance_k_coloring(sparsity, acyclic, 1)
    assert is_distance_k_coloring(sparsity, d1, 1)

    # Lower bound: a vertex and its neighbors all differ at distance 2.
    assert num_d2 >= graph.max_degree + 1

    if n <= 8:
        xi_1, xi_acyclic, xi_star, xi_d2 = _exact_chromatic_numbers(graph)
        assert xi_1 <= xi_acyclic <= xi_star <= xi_d2
        assert xi_d2 >= graph.max_degree + 1
        assert num_d1 >= xi_1
        assert num_acyclic >= xi_acyclic
        assert num_star >= xi_star
        assert num_d2 >= xi_d2
