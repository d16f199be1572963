"""Tests for printing sparsity and colored patterns."""

import numpy as np
import pytest

from sparsad import (
    SparsityPattern,
    color_hessian_pattern,
    color_jacobian_pattern,
)

_WORKED_EXAMPLE = np.array(
    [
        [1, 2, 3, 0],
        [2, 4, 0, 5],
        [3, 0, 6, 0],
        [0, 5, 0, 7],
    ]
)


@pytest.mark.pattern
def test_sparsity_repr():
    pattern = SparsityPattern.from_dense(np.eye(3))
    assert repr(pattern) == "SparsityPattern(shape=(3, 3), nnz=3)"


@pytest.mark.pattern
def test_small_pattern_renders_dots():
    pattern = SparsityPattern.from_dense(np.array([[1, 0, 1], [0, 1, 0]]))

    lines = str(pattern).split("\n")

    assert lines[0] == "SparsityPattern(2×3, nnz=3, sparsity=50.0%)"
    assert lines[1:] == ["● ⋅ ●", "⋅ ● ⋅"]


@pytest.mark.pattern
def test_large_pattern_renders_braille():
    pattern = SparsityPattern.from_dense(np.eye(100))

    lines = str(pattern).split("\n")[1:]

    assert len(lines) == 20
    assert lines[0].startswith("⎡") and lines[0].endswith("⎤")
    assert lines[-1].startswith("⎣") and lines[-1].endswith("⎦")
    assert all(line.startswith("⎢") for line in lines[1:-1])
    body = "".join(line[1:-1] for line in lines)
    assert all("⠀" <= ch <= "⣿" for ch in body)


@pytest.mark.pattern
def test_single_braille_line_uses_brackets():
    pattern = SparsityPattern.from_dense(np.ones((2, 60)))

    lines = str(pattern).split("\n")

    assert len(lines) == 2
    assert lines[1].startswith("[") and lines[1].endswith("]")


@pytest.mark.pattern
def test_empty_pattern():
    pattern = SparsityPattern.from_coordinates([], [], (0, 4))
    assert str(pattern).endswith("(empty)")


@pytest.mark.coloring
def test_colored_repr():
    colored = color_hessian_pattern(SparsityPattern.from_dense(_WORKED_EXAMPLE))
    assert repr(colored) == "ColoredPattern(4×4, nnz=10, HVP, direct, 3 colors)"


@pytest.mark.coloring
def test_colored_repr_single_color():
    colored = color_jacobian_pattern(SparsityPattern.from_dense(np.eye(3)))
    assert repr(colored) == "ColoredPattern(3×3, nnz=3, JVP, direct, 1 color)"
    assert "1 JVP instead of 3" in str(colored)


@pytest.mark.coloring
def test_star_coloring_str_labels_entries():
    colored = color_hessian_pattern(SparsityPattern.from_dense(_WORKED_EXAMPLE))

    lines = str(colored).split("\n")

    assert lines[1] == "  star coloring: 3 HVPs instead of 4"
    # Labels are the column colors [0, 1, 1, 2].
    assert lines[2].startswith("0 1 1 ⋅")
    assert lines[3].startswith("0 1 ⋅ 2")
    assert "→" in lines[2 + 2]


@pytest.mark.coloring
def test_acyclic_coloring_str():
    colored = color_hessian_pattern(
        SparsityPattern.from_dense(_WORKED_EXAMPLE), "substitution"
    )
    assert "acyclic coloring: 2 HVPs instead of 4" in str(colored)


@pytest.mark.coloring
def test_row_coloring_is_stacked():
    pattern = SparsityPattern.from_dense(np.array([[1, 1, 1], [0, 0, 1], [1, 0, 0]]))
    colored = color_jacobian_pattern(pattern, "row")

    text = str(colored)

    assert "distance-2 row coloring" in text
    assert "↓" in text
    assert "→" not in text
