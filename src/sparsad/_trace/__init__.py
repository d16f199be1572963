"""Trace dependency structure through a function by operator overloading.

Each scalar input is replaced by a tracer seeded with its own index.
The function runs unmodified,
and every operation it performs combines its operands' structure
according to the rule registered for it in `_rules`.
Reading the structure off the outputs gives the sparsity pattern.

The main entry points are `seed` and `read_jacobian` / `read_hessian`.
"""

from typing import Any, Literal

import numpy as np
from numpy.typing import NDArray

from sparsad._exceptions import UnsupportedOperation

from ._commons import EMPTY, Bitset, Pairs, bits, singleton
from ._rules import BINARY_RULES, COMPARISONS, UNARY_RULES, BinaryRule, UnaryRule
from ._tracer import (
    BaseTracer,
    HessianTracer,
    Tracer,
    apply_rule,
    compare,
    elementwise,
)

__all__ = [
    "BINARY_RULES",
    "COMPARISONS",
    "UNARY_RULES",
    "BaseTracer",
    "BinaryRule",
    "HessianTracer",
    "Tracer",
    "UnaryRule",
    "apply_rule",
    "bits",
    "compare",
    "elementwise",
    "is_traced",
    "pairs_to_coordinates",
    "read_hessian",
    "read_jacobian",
    "seed",
]


def seed(x: NDArray, kind: Literal["jacobian", "hessian"]) -> NDArray[np.object_]:
    """Wrap every element of ``x`` in a tracer seeded with its flat index.

    Returns an object array with the shape of ``x``.
    """
    flat = np.asarray(x).ravel()
    tracers = np.empty(flat.size, dtype=object)
    for i, value in enumerate(flat):
        if kind == "jacobian":
            tracers[i] = Tracer(value, singleton(i))
        else:
            tracers[i] = HessianTracer(value, singleton(i))
    return tracers.reshape(np.shape(x))


def is_traced(value: Any) -> bool:
    """Whether ``value`` is a tracer, or an object array or sequence holding tracers."""
    if isinstance(value, BaseTracer):
        return True
    if isinstance(value, (list, tuple)):
        return any(is_traced(v) for v in value)
    return isinstance(value, np.ndarray) and value.dtype == object


def _flatten_outputs(out: Any) -> list[Any]:
    """Flatten scalars, nested sequences and arrays of outputs into a list."""
    if isinstance(out, BaseTracer):
        return [out]
    return list(np.asarray(out, dtype=object).ravel())


def read_jacobian(out: Any) -> list[Bitset]:
    """Dependency bitset of each output element, in flat order.

    Plain numbers among the outputs are constants and depend on nothing.
    """
    result: list[Bitset] = []
    for value in _flatten_outputs(out):
        if isinstance(value, Tracer):
            result.append(value.deps)
        elif isinstance(value, BaseTracer):
            msg = f"Expected Tracer outputs, got {type(value).__name__}."
            raise UnsupportedOperation(msg)
        else:
            result.append(EMPTY)
    return result


def read_hessian(out: Any) -> Pairs:
    """Hessian pairs of a scalar output.

    Raises:
        ValueError: If the output has more than one element.
    """
    values = _flatten_outputs(out)
    if len(values) != 1:
        msg = (
            "Expected scalar-valued function, "
            f"but f has output shape {np.shape(np.asarray(out, dtype=object))}."
        )
        raise ValueError(msg)
    (value,) = values
    if isinstance(value, HessianTracer):
        return value.hess
    if isinstance(value, BaseTracer):
        msg = f"Expected HessianTracer output, got {type(value).__name__}."
        raise UnsupportedOperation(msg)
    return {}


def pairs_to_coordinates(pairs: Pairs) -> tuple[list[int], list[int]]:
    """Expand symmetric pairs into row-major sorted coordinate lists."""
    rows: list[int] = []
    cols: list[int] = []
    for i in sorted(pairs):
        for j in bits(pairs[i]):
            rows.append(i)
            cols.append(j)
    return rows, cols
