"""Derivative-structure rules for every traceable operation.

Each supported operation is classified once by which of its derivatives
can be nonzero.
Both tracer kinds read the same table:
first-order flags drive Jacobian detection,
second-order and mixed flags additionally drive Hessian detection.

Rule names follow the NumPy ufunc names,
so ``np.sin(tracer)`` and ``tracer.sin()`` resolve to the same entry.
Anything missing from these tables is unsupported.
"""

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class UnaryRule:
    """Structure of ``f(a)``.

    Attributes:
        name: Operation name (matches the NumPy ufunc name).
        primal: Function evaluating the operation on plain numbers.
        first: Whether ``f'`` can be nonzero.
        second: Whether ``f''`` can be nonzero.
    """

    name: str
    primal: Callable
    first: bool
    second: bool


@dataclass(frozen=True)
class BinaryRule:
    """Structure of ``f(a, b)``.

    Attributes:
        name: Operation name (matches the NumPy ufunc name).
        primal: Function evaluating the operation on plain numbers.
        first_a: Whether ``∂f/∂a`` can be nonzero.
        first_b: Whether ``∂f/∂b`` can be nonzero.
        second_a: Whether ``∂²f/∂a²`` can be nonzero.
        second_b: Whether ``∂²f/∂b²`` can be nonzero.
        mixed: Whether ``∂²f/∂a∂b`` can be nonzero.
    """

    name: str
    primal: Callable
    first_a: bool
    first_b: bool
    second_a: bool
    second_b: bool
    mixed: bool


def _unary(name: str, first: bool, second: bool) -> UnaryRule:
    return UnaryRule(name, getattr(np, name), first, second)


def _binary(
    name: str,
    first_a: bool,
    first_b: bool,
    second_a: bool,
    second_b: bool,
    mixed: bool,
) -> BinaryRule:
    return BinaryRule(
        name, getattr(np, name), first_a, first_b, second_a, second_b, mixed
    )


# Nonlinear: f' and f'' both generally nonzero.
_NONLINEAR_UNARY = [
    "sin",
    "cos",
    "tan",
    "arcsin",
    "arccos",
    "arctan",
    "sinh",
    "cosh",
    "tanh",
    "arcsinh",
    "arccosh",
    "arctanh",
    "exp",
    "exp2",
    "expm1",
    "log",
    "log2",
    "log10",
    "log1p",
    "sqrt",
    "cbrt",
    "square",
    "reciprocal",
]

# Linear or piecewise linear: f'' = 0 almost everywhere.
_LINEAR_UNARY = [
    "negative",
    "positive",
    "absolute",
    "conjugate",
    "deg2rad",
    "rad2deg",
]

# Locally constant: f' = 0 almost everywhere, so no dependencies survive.
# Non-differentiable boundaries are ignored on purpose.
_ZERO_DERIVATIVE_UNARY = [
    "sign",
    "floor",
    "ceil",
    "rint",
    "trunc",
]

UNARY_RULES: dict[str, UnaryRule] = {
    **{name: _unary(name, True, True) for name in _NONLINEAR_UNARY},
    **{name: _unary(name, True, False) for name in _LINEAR_UNARY},
    **{name: _unary(name, False, False) for name in _ZERO_DERIVATIVE_UNARY},
}

BINARY_RULES: dict[str, BinaryRule] = {
    rule.name: rule
    for rule in [
        _binary("add", True, True, False, False, False),
        _binary("subtract", True, True, False, False, False),
        _binary("multiply", True, True, False, False, True),
        # a / b: linear in a, nonlinear in b.
        # Dividing by a traced value unions both dependency sets.
        _binary("divide", True, True, False, True, True),
        _binary("power", True, True, True, True, True),
        _binary("float_power", True, True, True, True, True),
        _binary("arctan2", True, True, True, True, True),
        _binary("hypot", True, True, True, True, True),
        _binary("logaddexp", True, True, True, True, True),
        _binary("maximum", True, True, False, False, False),
        _binary("minimum", True, True, False, False, False),
        _binary("fmax", True, True, False, False, False),
        _binary("fmin", True, True, False, False, False),
        # a mod b = a - b * floor(a / b): piecewise linear in both.
        _binary("remainder", True, True, False, False, False),
        _binary("floor_divide", False, False, False, False, False),
    ]
}

# Comparisons return plain booleans computed from primal values.
COMPARISONS: dict[str, Callable] = {
    "less": np.less,
    "less_equal": np.less_equal,
    "greater": np.greater,
    "greater_equal": np.greater_equal,
    "equal": np.equal,
    "not_equal": np.not_equal,
}


def lookup(name: str) -> UnaryRule | BinaryRule | None:
    """Find the rule for an operation name, or None if unsupported."""
    return UNARY_RULES.get(name) or BINARY_RULES.get(name)
