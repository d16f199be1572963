"""Pretty-printing for SparsityPattern and ColoredPattern.

Small patterns render as a grid of dots,
large ones as braille with each character covering a 4x2 block.
Colored patterns label each nonzero with the color that recovers it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from sparsad.pattern import ColoredPattern, SparsityPattern

_SMALL_ROWS = 16
_SMALL_COLS = 40

# Color ids beyond 35 fall back to a plain bullet.
_COLOR_CHARS = "0123456789abcdefghijklmnopqrstuvwxyz"

_DISCIPLINES = {
    ("JVP", "direct"): "distance-2 column coloring",
    ("VJP", "direct"): "distance-2 row coloring",
    ("HVP", "direct"): "star coloring",
    ("HVP", "substitution"): "acyclic coloring",
}


def sparsity_str(pattern: SparsityPattern) -> str:
    """Full string representation with header and visualization."""
    header = (
        f"SparsityPattern({pattern.m}×{pattern.n}, "
        f"nnz={pattern.nnz}, sparsity={1 - pattern.density:.1%})"
    )
    return f"{header}\n{_render(pattern)}"


def sparsity_repr(pattern: SparsityPattern) -> str:
    """Compact single-line representation."""
    return f"SparsityPattern(shape={pattern.shape}, nnz={pattern.nnz})"


def colored_repr(colored: ColoredPattern) -> str:
    """Compact single-line representation."""
    sp = colored.sparsity
    m, n = sp.shape
    c = colored.num_colors
    return (
        f"ColoredPattern({m}×{n}, nnz={sp.nnz}, {colored.mode}, "
        f"{colored.decompression}, {c} {'color' if c == 1 else 'colors'})"
    )


def colored_str(colored: ColoredPattern) -> str:
    """Full representation: discipline, savings, and the labelled grid.

    Column compression (JVP/HVP) shows the compressed pattern to the right,
    row compression (VJP) below.
    """
    m, n = colored.sparsity.shape
    c = colored.num_colors
    discipline = _DISCIPLINES.get((colored.mode, colored.decompression), "coloring")
    full = m if colored.mode == "VJP" else n
    header = (
        f"{colored_repr(colored)}\n"
        f"  {discipline}: {c} {colored.mode}{'' if c == 1 else 's'} instead of {full}"
    )

    compressed = _compressed_pattern(colored)
    if m > _SMALL_ROWS or n > _SMALL_COLS:
        left_lines = _render(colored.sparsity).split("\n")
    else:
        left_lines = _render_labels(colored).split("\n")
    right_lines = _render(compressed).split("\n")

    if colored._compresses_columns:
        viz = _render_side_by_side(left_lines, right_lines)
    else:
        viz = _render_stacked(left_lines, right_lines)
    return f"{header}\n{viz}"


def _compressed_pattern(colored: ColoredPattern) -> SparsityPattern:
    """Pattern of the compressed matrix after coloring.

    Column compression gives shape ``(m, num_colors)``
    with ``(i, c)`` present iff some column of color ``c`` has a nonzero in row ``i``.
    Row compression gives shape ``(num_colors, n)`` analogously.
    """
    cls = type(colored.sparsity)
    rows = colored.sparsity.rows
    cols = colored.sparsity.cols
    if colored._compresses_columns:
        return cls.from_coordinates(
            rows, colored.colors[cols], (colored.sparsity.m, colored.num_colors)
        )
    return cls.from_coordinates(
        colored.colors[rows], cols, (colored.num_colors, colored.sparsity.n)
    )


def _render(pattern: SparsityPattern) -> str:
    """Dots for small matrices, bordered braille for large ones."""
    if pattern.m == 0 or pattern.n == 0:
        return "(empty)"
    if pattern.m <= _SMALL_ROWS and pattern.n <= _SMALL_COLS:
        dense = pattern.todense()
        return "\n".join(
            " ".join("●" if v else "⋅" for v in row) for row in dense
        )

    lines = _render_braille(pattern).split("\n")
    if len(lines) == 1:
        return "[" + lines[0] + "]"
    bordered = ["⎡" + lines[0] + "⎤"]
    bordered += ["⎢" + line + "⎥" for line in lines[1:-1]]
    bordered.append("⎣" + lines[-1] + "⎦")
    return "\n".join(bordered)


def _render_labels(colored: ColoredPattern) -> str:
    """Small grid where each nonzero shows the color id that recovers it."""
    sp = colored.sparsity
    if sp.m == 0 or sp.n == 0:
        return "(empty)"
    grid = np.full(sp.shape, "⋅", dtype=object)
    for i, j in zip(sp.rows, sp.cols, strict=True):
        color = colored.colors[i] if colored.mode == "VJP" else colored.colors[j]
        grid[i, j] = _COLOR_CHARS[color] if 0 <= color < len(_COLOR_CHARS) else "●"
    return "\n".join(" ".join(row) for row in grid)


def _render_braille(
    pattern: SparsityPattern,
    max_height: int = 20,
    max_width: int = 40,
) -> str:
    """Render a pattern using Unicode braille characters.

    Large matrices are downsampled by linearly interpolating each
    non-zero position to the output grid.
    """
    scale_height = min(pattern.m, max_height * 4)
    scale_width = min(pattern.n, max_width * 2)
    out_rows = (scale_height - 1) // 4 + 1
    out_cols = (scale_width - 1) // 2 + 1

    # Dot bit for (col_offset % 2) * 4 + (row_offset % 4)
    braille_bits = [0x01, 0x02, 0x04, 0x40, 0x08, 0x10, 0x20, 0x80]
    grid = [[0] * out_cols for _ in range(out_rows)]

    row_denom = max(pattern.m - 1, 1)
    col_denom = max(pattern.n - 1, 1)
    for i, j in zip(pattern.rows, pattern.cols, strict=True):
        si = round(int(i) * (scale_height - 1) / row_denom)
        sj = round(int(j) * (scale_width - 1) / col_denom)
        grid[si // 4][sj // 2] |= braille_bits[(sj % 2) * 4 + (si % 4)]

    return "\n".join("".join(chr(0x2800 + b) for b in row) for row in grid)


def _render_side_by_side(left_lines: list[str], right_lines: list[str]) -> str:
    """Join two visualizations side-by-side with ``→`` on the middle line."""
    width = max((len(line) for line in left_lines), default=0)
    n_lines = max(len(left_lines), len(right_lines))
    mid = n_lines // 2
    result = []
    for i in range(n_lines):
        left = left_lines[i] if i < len(left_lines) else ""
        right = right_lines[i] if i < len(right_lines) else ""
        sep = " → " if i == mid else "   "
        result.append(f"{left:<{width}}{sep}{right}")
    return "\n".join(result)


def _render_stacked(top_lines: list[str], bottom_lines: list[str]) -> str:
    """Join two visualizations stacked with a centered ``↓`` between them."""
    width = max((len(line) for line in top_lines + bottom_lines), default=0)
    return "\n".join([*top_lines, " " * (width // 2) + "↓", *bottom_lines])
