"""Pattern data structures for the detection->coloring->decompression pipeline."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from typing import Literal

import jax.numpy as jnp
import numpy as np
from jax.experimental.sparse import BCOO
from numpy.typing import NDArray

from sparsad._display import colored_repr, colored_str, sparsity_repr, sparsity_str


@dataclass(frozen=True)
class SparsityPattern:
    """Sparse matrix pattern storing only structural information (no values).

    Stores row and column indices separately for efficient access
    by the coloring and decompression stages.
    Coordinates are kept in row-major order without duplicates.

    Attributes:
        rows: Row indices of non-zero entries, shape ``(nnz,)``
        cols: Column indices of non-zero entries, shape ``(nnz,)``
        shape: Matrix dimensions ``(m, n)``
        input_shape: Shape of the function input that produced this pattern.
            Defaults to ``(n,)`` if not specified.
    """

    rows: NDArray[np.int32]
    cols: NDArray[np.int32]
    shape: tuple[int, int]
    input_shape: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        """Validate inputs and set defaults."""
        if len(self.rows) != len(self.cols):
            msg = (
                "rows and cols must have same length, "
                f"got {len(self.rows)} and {len(self.cols)}"
            )
            raise ValueError(msg)
        m, n = self.shape
        if len(self.rows) and (
            self.rows.min() < 0
            or self.cols.min() < 0
            or self.rows.max() >= m
            or self.cols.max() >= n
        ):
            msg = f"Coordinates out of bounds for shape {self.shape}"
            raise ValueError(msg)
        if self.input_shape is None:
            object.__setattr__(self, "input_shape", (self.n,))

    # Properties

    @property
    def nnz(self) -> int:
        """Number of non-zero elements."""
        return len(self.rows)

    @property
    def m(self) -> int:
        """Number of rows."""
        return self.shape[0]

    @property
    def n(self) -> int:
        """Number of columns."""
        return self.shape[1]

    @property
    def density(self) -> float:
        """Fraction of non-zero entries."""
        total = self.m * self.n
        return self.nnz / total if total > 0 else 0.0

    @cached_property
    def col_to_rows(self) -> dict[int, list[int]]:
        """Mapping from column index to list of row indices with non-zeros.

        Used by the coloring algorithm to build the row conflict graph.
        """
        result: dict[int, list[int]] = defaultdict(list)
        for row, col in zip(self.rows, self.cols, strict=True):
            result[int(col)].append(int(row))
        return dict(result)

    @cached_property
    def row_to_cols(self) -> dict[int, list[int]]:
        """Mapping from row index to list of column indices with non-zeros.

        Used by the coloring algorithm to build the column conflict graph.
        """
        result: dict[int, list[int]] = defaultdict(list)
        for row, col in zip(self.rows, self.cols, strict=True):
            result[int(row)].append(int(col))
        return dict(result)

    @cached_property
    def is_symmetric(self) -> bool:
        """Whether the pattern is square and equal to its transpose."""
        if self.m != self.n:
            return False
        entries = set(zip(self.rows.tolist(), self.cols.tolist()))
        return all((j, i) in entries for i, j in entries)

    @cached_property
    def has_full_diagonal(self) -> bool:
        """Whether every diagonal entry of a square pattern is present."""
        if self.m != self.n:
            return False
        diagonal = self.rows[self.rows == self.cols]
        return len(np.unique(diagonal)) == self.n

    # Constructors

    @classmethod
    def from_coordinates(
        cls,
        rows: NDArray[np.int32] | list[int],
        cols: NDArray[np.int32] | list[int],
        shape: tuple[int, int],
        *,
        input_shape: tuple[int, ...] | None = None,
    ) -> SparsityPattern:
        """Create pattern from row and column index arrays.

        Duplicate coordinates are merged and entries are sorted row-major.

        Args:
            rows: Row indices of non-zero entries.
            cols: Column indices of non-zero entries.
            shape: Matrix dimensions ``(m, n)``.
            input_shape: Shape of the function input.
                Defaults to ``(n,)`` if not specified.
        """
        rows = np.asarray(rows, dtype=np.int32).ravel()
        cols = np.asarray(cols, dtype=np.int32).ravel()
        if len(rows) == len(cols) and len(rows) > 0:
            unique = sorted(set(zip(rows.tolist(), cols.tolist())))
            rows = np.array([r for r, _ in unique], dtype=np.int32)
            cols = np.array([c for _, c in unique], dtype=np.int32)
        return cls(
            rows=rows,
            cols=cols,
            shape=(int(shape[0]), int(shape[1])),
            input_shape=input_shape,
        )

    @classmethod
    def from_bcoo(cls, bcoo: BCOO) -> SparsityPattern:
        """Create pattern from JAX BCOO sparse matrix."""
        indices = np.asarray(bcoo.indices)
        shape = (bcoo.shape[0], bcoo.shape[1])
        if indices.size == 0:
            return cls.from_coordinates([], [], shape)
        return cls.from_coordinates(indices[:, 0], indices[:, 1], shape)

    @classmethod
    def from_dense(cls, dense: NDArray) -> SparsityPattern:
        """Create pattern from dense boolean/numeric matrix.

        Non-zero entries indicate pattern positions.
        """
        dense = np.asarray(dense)
        rows, cols = np.nonzero(dense)
        return cls(
            rows=rows.astype(np.int32),
            cols=cols.astype(np.int32),
            shape=(dense.shape[0], dense.shape[1]),
        )

    # Derived patterns

    def transpose(self) -> SparsityPattern:
        """Pattern of the transposed matrix."""
        return SparsityPattern.from_coordinates(
            self.cols, self.rows, (self.n, self.m)
        )

    def with_diagonal(self) -> SparsityPattern:
        """Square pattern with every diagonal entry added."""
        if self.m != self.n:
            msg = f"Only square patterns have a diagonal, got shape {self.shape}"
            raise ValueError(msg)
        diag = np.arange(self.n, dtype=np.int32)
        return SparsityPattern.from_coordinates(
            np.concatenate([self.rows, diag]),
            np.concatenate([self.cols, diag]),
            self.shape,
            input_shape=self.input_shape,
        )

    # Conversion methods

    @cached_property
    def _bcoo_indices(self) -> jnp.ndarray:
        """BCOO index array of shape ``(nnz, 2)``, cached for reuse."""
        if self.nnz == 0:
            return jnp.zeros((0, 2), dtype=jnp.int32)
        return jnp.stack([self.rows, self.cols], axis=1)

    def to_bcoo(self, data: jnp.ndarray | None = None) -> BCOO:
        """Convert to JAX BCOO sparse matrix.

        Args:
            data: Optional data values in pattern order.
                If None, uses all 1s.
        """
        indices = self._bcoo_indices
        if data is None:
            if self.nnz == 0:
                data = jnp.array([])
            else:
                data = jnp.ones(self.nnz, dtype=jnp.int8)
        return BCOO((data, indices), shape=self.shape)

    def todense(self) -> NDArray:
        """Convert to dense numpy array with 1s at pattern positions."""
        result = np.zeros(self.shape, dtype=np.int8)
        if self.nnz > 0:
            result[self.rows, self.cols] = 1
        return result

    # Display

    def __str__(self) -> str:
        """Render sparsity pattern with header and dot/braille grid."""
        return sparsity_str(self)

    def __repr__(self) -> str:
        """Return compact single-line representation."""
        return sparsity_repr(self)


@dataclass(frozen=True, repr=False)
class ColoredPattern:
    """Result of a graph coloring for sparse differentiation.

    Immutable once built,
    so one instance can be reused for every evaluation
    that shares its sparsity pattern.

    Attributes:
        sparsity: The sparsity pattern that was colored.
        colors: Color assignment array with ids ``0..num_colors-1``.
            Shape ``(m,)`` for ``"VJP"`` mode,
            ``(n,)`` for ``"JVP"`` and ``"HVP"`` modes.
        num_colors: Total number of colors used.
        mode: The AD primitive used per color.
            ``"VJP"`` for row-colored Jacobians,
            ``"JVP"`` for column-colored Jacobians,
            ``"HVP"`` for symmetrically colored Hessians.
        decompression: How entries are recovered from the compressed products.
            ``"direct"`` reads each entry off a single product
            (distance-2 and star colorings),
            ``"substitution"`` resolves entries by peeling
            two-colored trees (acyclic colorings).
    """

    sparsity: SparsityPattern
    colors: NDArray[np.int32]
    num_colors: int
    mode: Literal["JVP", "VJP", "HVP"]
    decompression: Literal["direct", "substitution"] = "direct"

    @property
    def _compresses_columns(self) -> bool:
        """Whether coloring compresses columns (JVP/HVP) or rows (VJP)."""
        return self.mode in ("JVP", "HVP")

    @property
    def dim(self) -> int:
        """Length of each seed vector."""
        return self.sparsity.m if self.mode == "VJP" else self.sparsity.n

    @cached_property
    def groups(self) -> list[NDArray[np.intp]]:
        """Indices of each color class, one array per color."""
        return [np.flatnonzero(self.colors == c) for c in range(self.num_colors)]

    @cached_property
    def seed_matrix(self) -> NDArray[np.bool_]:
        """Boolean seed matrix of shape ``(num_colors, dim)``.

        Row ``c`` is the indicator vector of color ``c``,
        used as the seed/tangent vector for the ``c``-th AD evaluation.
        """
        seeds = np.zeros((self.num_colors, self.dim), dtype=np.bool_)
        for c, group in enumerate(self.groups):
            seeds[c, group] = True
        return seeds

    # Cached arrays for fast decompression

    @cached_property
    def _extraction_indices(
        self,
    ) -> tuple[NDArray[np.intp], NDArray[np.intp]]:
        """Indices for extracting sparse entries from compressed products.

        Returns ``(color_idx, elem_idx)`` such that for a compressed matrix
        ``C`` of shape ``(num_colors, dim)``::

            data = C[color_idx, elem_idx]

        gives the nnz values in sparsity-pattern order.
        Only valid for direct decompression.

        For VJP: ``color_idx = colors[rows]``, ``elem_idx = cols``.
        For JVP: ``color_idx = colors[cols]``, ``elem_idx = rows``.
        For HVP: delegates to `_star_extraction_indices`.
        """
        if self.mode == "HVP":
            return self._star_extraction_indices

        rows = self.sparsity.rows
        cols = self.sparsity.cols

        if self.mode == "VJP":
            color_idx = self.colors[rows].astype(np.intp)
            elem_idx = cols.astype(np.intp)
        else:  # JVP
            color_idx = self.colors[cols].astype(np.intp)
            elem_idx = rows.astype(np.intp)

        return color_idx, elem_idx

    @cached_property
    def _star_extraction_indices(
        self,
    ) -> tuple[NDArray[np.intp], NDArray[np.intp]]:
        """HVP extraction indices for a star coloring.

        For each nonzero ``(i, j)``:
        - diagonal (``i == j``): use ``compressed[colors[i]][i]``
        - off-diagonal: the edge belongs to a two-colored star.
          If ``i`` is a leaf, it has no other neighbor colored ``colors[j]``,
          so ``compressed[colors[j]][i]`` holds ``A[i, j]`` alone.
          Otherwise ``j`` is the leaf and ``compressed[colors[i]][j]``
          holds ``A[j, i] = A[i, j]``.
        """
        rows = self.sparsity.rows
        cols = self.sparsity.cols
        row_to_cols = self.sparsity.row_to_cols

        color_idx = np.empty(len(rows), dtype=np.intp)
        elem_idx = np.empty(len(rows), dtype=np.intp)

        for k, (i, j) in enumerate(zip(rows, cols, strict=True)):
            i, j = int(i), int(j)
            if i == j:
                color_idx[k] = self.colors[i]
                elem_idx[k] = i
                continue
            color_j = self.colors[j]
            i_is_leaf = not any(
                r != j and self.colors[r] == color_j for r in row_to_cols.get(i, [])
            )
            if i_is_leaf:
                color_idx[k] = color_j
                elem_idx[k] = i
            else:
                color_idx[k] = self.colors[i]
                elem_idx[k] = j

        return color_idx, elem_idx

    # Display

    def __repr__(self) -> str:
        """Return compact single-line representation."""
        return colored_repr(self)

    def __str__(self) -> str:
        """Render colored pattern with sparsity grid and color assignments."""
        return colored_str(self)
