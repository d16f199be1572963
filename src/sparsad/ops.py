"""Array functions that work under sparsity tracing and under JAX.

Sparsity detection runs a function on object arrays of tracers,
while `sparsad.jacobian` and `sparsad.hessian` differentiate it with JAX.
Functions written with these ops (plus Python operators and indexing)
serve both purposes from a single definition::

    from sparsad import ops

    def f(x):
        return ops.stack([x[0] * x[1], ops.sin(x[2]) + ops.sign(x[3])])

Traced inputs go through the registered propagation rules,
anything else goes to ``jax.numpy``.
"""

from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

import jax.numpy as jnp
import numpy as np

from sparsad._trace import (
    BINARY_RULES,
    UNARY_RULES,
    BaseTracer,
    apply_rule,
    elementwise,
    is_traced,
)


def _elementwise(rule, *args: Any) -> Any:
    fn = partial(apply_rule, rule)
    args = tuple(
        np.asarray(a, dtype=object) if isinstance(a, (list, tuple)) else a
        for a in args
    )
    if any(isinstance(a, np.ndarray) for a in args):
        return elementwise(fn, *args)
    return fn(*args)


def _make_unary(name: str, jax_fn: Callable) -> Callable:
    rule = UNARY_RULES[name]

    def op(x):
        if is_traced(x):
            return _elementwise(rule, x)
        return jax_fn(x)

    op.__name__ = jax_fn.__name__
    op.__doc__ = f"Element-wise ``{jax_fn.__name__}`` (traced via ``{name}``)."
    return op


def _make_binary(name: str, jax_fn: Callable) -> Callable:
    rule = BINARY_RULES[name]

    def op(a, b):
        if is_traced(a) or is_traced(b):
            return _elementwise(rule, a, b)
        return jax_fn(a, b)

    op.__name__ = jax_fn.__name__
    op.__doc__ = f"Element-wise ``{jax_fn.__name__}`` (traced via ``{name}``)."
    return op


sin = _make_unary("sin", jnp.sin)
cos = _make_unary("cos", jnp.cos)
tan = _make_unary("tan", jnp.tan)
arcsin = _make_unary("arcsin", jnp.arcsin)
arccos = _make_unary("arccos", jnp.arccos)
arctan = _make_unary("arctan", jnp.arctan)
sinh = _make_unary("sinh", jnp.sinh)
cosh = _make_unary("cosh", jnp.cosh)
tanh = _make_unary("tanh", jnp.tanh)
exp = _make_unary("exp", jnp.exp)
expm1 = _make_unary("expm1", jnp.expm1)
log = _make_unary("log", jnp.log)
log1p = _make_unary("log1p", jnp.log1p)
sqrt = _make_unary("sqrt", jnp.sqrt)
square = _make_unary("square", jnp.square)
abs = _make_unary("absolute", jnp.abs)  # noqa: A001
sign = _make_unary("sign", jnp.sign)
floor = _make_unary("floor", jnp.floor)
ceil = _make_unary("ceil", jnp.ceil)
round = _make_unary("rint", jnp.round)  # noqa: A001

maximum = _make_binary("maximum", jnp.maximum)
minimum = _make_binary("minimum", jnp.minimum)
arctan2 = _make_binary("arctan2", jnp.arctan2)
hypot = _make_binary("hypot", jnp.hypot)
power = _make_binary("power", jnp.power)


def _object_array(value: Any) -> np.ndarray:
    return value if isinstance(value, np.ndarray) else np.asarray(value, dtype=object)


def _lift_constants(values: np.ndarray) -> np.ndarray:
    """Replace plain numbers in a traced object array by constant tracers.

    NumPy's object loops call methods such as ``element.exp()``,
    which plain floats lack.
    """
    if values.dtype != object:
        return values
    kind = next((type(v) for v in values.flat if isinstance(v, BaseTracer)), None)
    if kind is None:
        return values
    lifted = values.copy()
    for idx, v in np.ndenumerate(values):
        if not isinstance(v, BaseTracer):
            lifted[idx] = kind(v)
    return lifted


def sum(x, axis: int | None = None):  # noqa: A001
    """Sum of elements; a traced sum unions the summands' structure."""
    if is_traced(x):
        return np.sum(_object_array(x), axis=axis)
    return jnp.sum(x, axis=axis)


def prod(x, axis: int | None = None):
    """Product of elements."""
    if is_traced(x):
        return np.prod(_object_array(x), axis=axis)
    return jnp.prod(x, axis=axis)


def dot(a, b):
    """Dot product; constant operands are converted with NumPy when tracing."""
    if is_traced(a) or is_traced(b):
        a = a if is_traced(a) else np.asarray(a)
        b = b if is_traced(b) else np.asarray(b)
        return np.dot(a, b)
    return jnp.dot(a, b)


def where(condition, a, b):
    """Select from ``a`` where ``condition`` holds, else from ``b``.

    Under tracing the condition is evaluated on primal values,
    so only the selected branch contributes dependencies.
    """
    if is_traced(a) or is_traced(b) or is_traced(condition):
        cond = np.asarray(condition, dtype=bool)
        return _lift_constants(np.where(cond, _object_array(a), _object_array(b)))
    return jnp.where(condition, a, b)


def stack(values: Sequence[Any], axis: int = 0):
    """Stack scalars or arrays along a new axis."""
    if any(is_traced(v) for v in values):
        stacked = np.stack([_object_array(v) for v in values], axis=axis)
        return _lift_constants(stacked)
    return jnp.stack([jnp.asarray(v) for v in values], axis=axis)


def concatenate(values: Sequence[Any], axis: int = 0):
    """Join arrays along an existing axis."""
    if any(is_traced(v) for v in values):
        joined = np.concatenate([_object_array(v) for v in values], axis=axis)
        return _lift_constants(joined)
    return jnp.concatenate(values, axis=axis)
