"""Graph views of sparsity patterns and greedy coloring kernels.

Vertices are integer ids and adjacency is stored as one set per vertex,
so every algorithm works on arrays indexed by vertex id.

Greedy star and acyclic coloring follow the invariants of
Gebremedhin, Manne & Pothen (2005), "What Color Is Your Jacobian?
Graph Coloring for Computing Derivatives", SIAM Review 47(4):
- star: proper, and every path on 4 vertices uses at least 3 colors;
- acyclic: proper, and every cycle uses at least 3 colors.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Literal

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from sparsad.pattern import SparsityPattern

VertexOrder = Literal["natural", "largest_first", "smallest_last", "random"]
VERTEX_ORDERS: tuple[str, ...] = ("natural", "largest_first", "smallest_last", "random")


class AdjacencyGraph:
    """Undirected graph without self-loops.

    For a symmetric matrix, vertices are indices
    and ``{i, j}`` is an edge iff ``A[i, j]`` is nonzero with ``i != j``.
    """

    def __init__(self, neighbors: Sequence[set[int]]) -> None:
        self.neighbors: list[set[int]] = [set(s) for s in neighbors]

    @classmethod
    def from_pattern(cls, sparsity: SparsityPattern) -> AdjacencyGraph:
        """Adjacency graph of a square pattern (diagonal ignored)."""
        neighbors: list[set[int]] = [set() for _ in range(sparsity.n)]
        for i, j in zip(sparsity.rows, sparsity.cols, strict=True):
            i, j = int(i), int(j)
            if i != j:
                neighbors[i].add(j)
                neighbors[j].add(i)
        return cls(neighbors)

    @classmethod
    def from_edges(cls, n: int, edges: Sequence[tuple[int, int]]) -> AdjacencyGraph:
        """Graph on ``n`` vertices from an edge list."""
        neighbors: list[set[int]] = [set() for _ in range(n)]
        for i, j in edges:
            if i != j:
                neighbors[i].add(j)
                neighbors[j].add(i)
        return cls(neighbors)

    @property
    def num_vertices(self) -> int:
        return len(self.neighbors)

    def degree(self, v: int) -> int:
        return len(self.neighbors[v])

    @property
    def max_degree(self) -> int:
        return max((len(s) for s in self.neighbors), default=0)

    def edges(self) -> Iterator[tuple[int, int]]:
        """Each undirected edge once, as ``(i, j)`` with ``i < j``."""
        for i, nbrs in enumerate(self.neighbors):
            for j in nbrs:
                if i < j:
                    yield i, j

    def within(self, v: int, k: int) -> set[int]:
        """Vertices at distance ``1..k`` from ``v``."""
        seen = {v}
        frontier = {v}
        for _ in range(k):
            frontier = {w for u in frontier for w in self.neighbors[u]} - seen
            if not frontier:
                break
            seen |= frontier
        seen.discard(v)
        return seen

    def power(self, k: int) -> AdjacencyGraph:
        """The graph ``G^k``: vertices adjacent iff within distance ``k`` in G.

        A coloring is distance-k in G iff it is distance-1 in ``G^k``.
        """
        if k < 1:
            msg = f"Graph power requires k >= 1, got {k}"
            raise ValueError(msg)
        if k == 1:
            return AdjacencyGraph(self.neighbors)
        return AdjacencyGraph([self.within(v, k) for v in range(self.num_vertices)])


class BipartiteGraph:
    """Bipartite graph of a rectangular pattern.

    Rows and columns are distinct vertex sets
    and row ``i`` is joined to column ``j`` iff ``A[i, j]`` is nonzero.
    """

    def __init__(self, sparsity: SparsityPattern) -> None:
        self.num_rows, self.num_cols = sparsity.shape
        self.row_to_cols = sparsity.row_to_cols
        self.col_to_rows = sparsity.col_to_rows

    def column_intersection_graph(self) -> AdjacencyGraph:
        """Columns adjacent iff they share a nonzero row.

        This is the square of the bipartite graph restricted to columns,
        so distance-1 colorings of it are distance-2 column colorings.
        """
        return _intersection_graph(self.num_cols, self.row_to_cols.values())

    def row_intersection_graph(self) -> AdjacencyGraph:
        """Rows adjacent iff they share a nonzero column."""
        return _intersection_graph(self.num_rows, self.col_to_rows.values())


def _intersection_graph(n: int, groups) -> AdjacencyGraph:
    neighbors: list[set[int]] = [set() for _ in range(n)]
    for group in groups:
        for a, u in enumerate(group):
            for w in group[a + 1 :]:
                neighbors[u].add(w)
                neighbors[w].add(u)
    return AdjacencyGraph(neighbors)


# =========================================================================
# Vertex orders
# =========================================================================


def vertex_order(
    graph: AdjacencyGraph, order: VertexOrder = "largest_first", seed: int | None = None
) -> list[int]:
    """Order in which greedy coloring visits the vertices.

    Orders only affect how many colors are used, never validity.

    Args:
        graph: Graph to order.
        order: ``"natural"`` (by index),
            ``"largest_first"`` (decreasing degree, ties by index),
            ``"smallest_last"`` (reverse of repeatedly removing a
            minimum-degree vertex),
            or ``"random"``.
        seed: Seed for the ``"random"`` order.
    """
    n = graph.num_vertices
    if order == "natural":
        return list(range(n))
    if order == "largest_first":
        return sorted(range(n), key=lambda v: -graph.degree(v))
    if order == "smallest_last":
        return _smallest_last(graph)
    if order == "random":
        return [int(v) for v in np.random.default_rng(seed).permutation(n)]
    msg = f"Unknown vertex order {order!r}, expected one of {VERTEX_ORDERS}"
    raise ValueError(msg)


def _smallest_last(graph: AdjacencyGraph) -> list[int]:
    degrees = [graph.degree(v) for v in range(graph.num_vertices)]
    removed = [False] * graph.num_vertices
    removal: list[int] = []
    for _ in range(graph.num_vertices):
        v = min(
            (u for u in range(graph.num_vertices) if not removed[u]),
            key=lambda u: degrees[u],
        )
        removed[v] = True
        removal.append(v)
        for w in graph.neighbors[v]:
            if not removed[w]:
                degrees[w] -= 1
    return removal[::-1]


# =========================================================================
# Greedy coloring kernels
# =========================================================================


def _smallest_allowed(forbidden: set[int]) -> int:
    color = 0
    while color in forbidden:
        color += 1
    return color


def greedy_distance1(
    graph: AdjacencyGraph, order: Sequence[int]
) -> tuple[NDArray[np.int32], int]:
    """Assign each vertex the smallest color not used by its neighbors."""
    colors = np.full(graph.num_vertices, -1, dtype=np.int32)
    num_colors = 0
    for v in order:
        forbidden = {int(colors[w]) for w in graph.neighbors[v] if colors[w] >= 0}
        color = _smallest_allowed(forbidden)
        colors[v] = color
        num_colors = max(num_colors, color + 1)
    return colors, num_colors


def greedy_star(
    graph: AdjacencyGraph, order: Sequence[int]
) -> tuple[NDArray[np.int32], int]:
    """Greedy star coloring.

    When coloring ``v`` with color ``c``,
    a two-colored path on 4 vertices through ``v``
    (colors alternating ``c, d, c, d``) can appear in two ways:

    - ``v - w - x - y`` with ``color[x] == c``, ``color[w] == color[y] == d``;
    - ``a - v - w - x`` with ``color[x] == c``, ``color[a] == color[w] == d``.

    Both are ruled out by forbidding ``color[x]``.
    Every 4-path is checked when its last vertex is colored,
    and a fresh color is always allowed, so greedy never fails.
    """
    colors = np.full(graph.num_vertices, -1, dtype=np.int32)
    num_colors = 0
    for v in order:
        colored = [w for w in graph.neighbors[v] if colors[w] >= 0]
        forbidden = {int(colors[w]) for w in colored}
        per_color: dict[int, int] = {}
        for w in colored:
            per_color[int(colors[w])] = per_color.get(int(colors[w]), 0) + 1

        for w in colored:
            d = int(colors[w])
            for x in graph.neighbors[w]:
                if x == v or colors[x] < 0 or int(colors[x]) in forbidden:
                    continue
                if per_color[d] >= 2 or any(
                    y != w and colors[y] == d for y in graph.neighbors[x]
                ):
                    forbidden.add(int(colors[x]))

        color = _smallest_allowed(forbidden)
        colors[v] = color
        num_colors = max(num_colors, color + 1)
    return colors, num_colors


class _PairForests:
    """Disjoint sets of the subgraph induced by each pair of colors."""

    def __init__(self) -> None:
        self._parent: dict[tuple[int, int], dict[int, int]] = {}

    def find(self, pair: tuple[int, int], v: int) -> int:
        parent = self._parent.setdefault(pair, {})
        root = v
        while parent.get(root, root) != root:
            root = parent[root]
        while v != root:  # path compression
            parent[v], v = root, parent.get(v, v)
        return root

    def union(self, pair: tuple[int, int], u: int, v: int) -> None:
        ru, rv = self.find(pair, u), self.find(pair, v)
        if ru != rv:
            self._parent[pair][ru] = rv


def _pair(c: int, d: int) -> tuple[int, int]:
    return (c, d) if c < d else (d, c)


def greedy_acyclic(
    graph: AdjacencyGraph, order: Sequence[int]
) -> tuple[NDArray[np.int32], int]:
    """Greedy acyclic coloring.

    Giving ``v`` color ``c`` closes a two-colored cycle iff two of its
    neighbors with the same color ``d`` are already connected
    in the subgraph induced by ``{c, d}``.
    Connectivity of every color pair is tracked with disjoint sets.
    """
    colors = np.full(graph.num_vertices, -1, dtype=np.int32)
    num_colors = 0
    forests = _PairForests()

    for v in order:
        by_color: dict[int, list[int]] = {}
        for w in graph.neighbors[v]:
            if colors[w] >= 0:
                by_color.setdefault(int(colors[w]), []).append(w)

        color = 0
        while color in by_color or _closes_cycle(forests, color, by_color):
            color += 1

        colors[v] = color
        num_colors = max(num_colors, color + 1)
        for d, ws in by_color.items():
            for w in ws:
                forests.union(_pair(color, d), v, w)
    return colors, num_colors


def _closes_cycle(
    forests: _PairForests, color: int, by_color: dict[int, list[int]]
) -> bool:
    for d, ws in by_color.items():
        if len(ws) < 2:
            continue
        roots = [forests.find(_pair(color, d), w) for w in ws]
        if len(set(roots)) < len(roots):
            return True
    return False


# =========================================================================
# Validity predicates
# =========================================================================


def is_proper(graph: AdjacencyGraph, colors: NDArray[np.int32]) -> bool:
    """Adjacent vertices have different colors."""
    return all(colors[i] != colors[j] for i, j in graph.edges())


def is_distance_k(graph: AdjacencyGraph, colors: NDArray[np.int32], k: int) -> bool:
    """Vertices within distance ``k`` have different colors."""
    return all(
        colors[w] != colors[v]
        for v in range(graph.num_vertices)
        for w in graph.within(v, k)
    )


def is_star(graph: AdjacencyGraph, colors: NDArray[np.int32]) -> bool:
    """Proper, and every path on 4 vertices uses at least 3 colors.

    A two-colored 4-path ``a - u - w - b`` exists iff
    ``u`` has a neighbor ``a != w`` colored like ``w``
    and ``w`` has a neighbor ``b != u`` colored like ``u``.
    """
    if not is_proper(graph, colors):
        return False
    for u, w in graph.edges():
        u_side = any(a != w and colors[a] == colors[w] for a in graph.neighbors[u])
        w_side = any(b != u and colors[b] == colors[u] for b in graph.neighbors[w])
        if u_side and w_side:
            return False
    return True


def is_acyclic(graph: AdjacencyGraph, colors: NDArray[np.int32]) -> bool:
    """Proper, and the subgraph induced by any two colors is a forest."""
    if not is_proper(graph, colors):
        return False
    forests = _PairForests()
    for i, j in graph.edges():
        pair = _pair(int(colors[i]), int(colors[j]))
        if forests.find(pair, i) == forests.find(pair, j):
            return False
        forests.union(pair, i, j)
    return True
