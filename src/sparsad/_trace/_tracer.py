"""Operator-overloading tracers for sparsity detection.

A tracer wraps the primal value at the representative input point
together with the input indices the value may depend on.
Running an unmodified function on tracers propagates this structure:
Python operators, ``math.floor``-style hooks, NumPy ufuncs on tracers,
and NumPy object-array loops all resolve to the rules in `_rules`.

Primal values are kept so that comparisons return real booleans.
A function may therefore branch on its inputs,
and the detected pattern is valid for every input
that takes the same control-flow path.
"""

from __future__ import annotations

import numbers
from functools import partial
from typing import Any

import numpy as np

from sparsad._exceptions import UnsupportedOperation

from ._commons import EMPTY, Bitset, Pairs, bits, outer_pairs, union_pairs
from ._rules import (
    BINARY_RULES,
    COMPARISONS,
    UNARY_RULES,
    BinaryRule,
    UnaryRule,
    lookup,
)


def _is_scalar_operand(value: Any) -> bool:
    return isinstance(value, (BaseTracer, numbers.Number, np.generic))


def _primal(value: Any) -> Any:
    return value.primal if isinstance(value, BaseTracer) else value


def apply_rule(rule: UnaryRule | BinaryRule, *args: Any) -> Any:
    """Evaluate ``rule`` on scalar arguments, some of which may be tracers.

    Without any tracer argument this is plain evaluation.
    A constant exponent of zero yields a constant,
    since ``x ** 0`` does not depend on ``x``.
    """
    tracers = [a for a in args if isinstance(a, BaseTracer)]
    if not tracers:
        return rule.primal(*args)
    kind = type(tracers[0])
    if any(type(t) is not kind for t in tracers[1:]):
        msg = (
            f"Cannot combine {type(tracers[0]).__name__} "
            f"and {type(tracers[1]).__name__} in '{rule.name}'."
        )
        raise UnsupportedOperation(msg)

    value = rule.primal(*(_primal(a) for a in args))

    if isinstance(rule, UnaryRule):
        return kind._from_unary(rule, args[0], value)

    a, b = args
    if rule.name in ("power", "float_power") and not isinstance(b, BaseTracer):
        if b == 0:
            return value
    return kind._from_binary(rule, a, b, value)


def elementwise(fn, *args: Any) -> Any:
    """Apply the scalar function ``fn`` element-wise over arrays of tracers.

    Bare tracers are boxed into 0-d object arrays,
    otherwise NumPy hands the vectorized ufunc
    back to the tracer's ``__array_ufunc__``.
    """
    operands = [_as_operand(a) for a in args]
    return np.frompyfunc(fn, len(operands), 1)(*operands)


def _as_operand(value: Any) -> np.ndarray:
    if isinstance(value, np.ndarray):
        return value
    if isinstance(value, BaseTracer):
        box = np.empty((), dtype=object)
        box[()] = value
        return box
    return np.asarray(value)


def compare(name: str, a: Any, b: Any) -> bool:
    """Compare primal values; the result carries no dependencies."""
    return bool(COMPARISONS[name](_primal(a), _primal(b)))


class BaseTracer:
    """Shared operator overloads for both tracer kinds.

    Subclasses implement `_from_unary` and `_from_binary`,
    which combine the structure of the operands under a rule.
    """

    __slots__ = ("primal",)

    # Structure combination hooks

    @classmethod
    def _from_unary(cls, rule: UnaryRule, a: BaseTracer, value: Any) -> BaseTracer:
        raise NotImplementedError

    @classmethod
    def _from_binary(cls, rule: BinaryRule, a: Any, b: Any, value: Any) -> BaseTracer:
        raise NotImplementedError

    # Helpers for operators

    def _binop(self, name: str, a: Any, b: Any) -> Any:
        other = b if a is self else a
        if not _is_scalar_operand(other):
            # Arrays come back through ``__array_ufunc__``.
            return NotImplemented
        return apply_rule(BINARY_RULES[name], a, b)

    def _cmp(self, name: str, other: Any) -> Any:
        if not _is_scalar_operand(other):
            return NotImplemented
        return compare(name, self, other)

    # Arithmetic

    def __add__(self, other):
        return self._binop("add", self, other)

    def __radd__(self, other):
        return self._binop("add", other, self)

    def __sub__(self, other):
        return self._binop("subtract", self, other)

    def __rsub__(self, other):
        return self._binop("subtract", other, self)

    def __mul__(self, other):
        return self._binop("multiply", self, other)

    def __rmul__(self, other):
        return self._binop("multiply", other, self)

    def __truediv__(self, other):
        return self._binop("divide", self, other)

    def __rtruediv__(self, other):
        return self._binop("divide", other, self)

    def __pow__(self, other):
        return self._binop("power", self, other)

    def __rpow__(self, other):
        return self._binop("power", other, self)

    def __mod__(self, other):
        return self._binop("remainder", self, other)

    def __rmod__(self, other):
        return self._binop("remainder", other, self)

    def __floordiv__(self, other):
        return self._binop("floor_divide", self, other)

    def __rfloordiv__(self, other):
        return self._binop("floor_divide", other, self)

    def __neg__(self):
        return apply_rule(UNARY_RULES["negative"], self)

    def __pos__(self):
        return apply_rule(UNARY_RULES["positive"], self)

    def __abs__(self):
        return apply_rule(UNARY_RULES["absolute"], self)

    # Locally constant hooks (round, math.floor, math.ceil, math.trunc)

    def __round__(self, ndigits=None):
        out = apply_rule(UNARY_RULES["rint"], self)
        if ndigits is not None:
            out.primal = np.round(self.primal, ndigits)
        return out

    def __floor__(self):
        return apply_rule(UNARY_RULES["floor"], self)

    def __ceil__(self):
        return apply_rule(UNARY_RULES["ceil"], self)

    def __trunc__(self):
        return apply_rule(UNARY_RULES["trunc"], self)

    # Comparisons

    def __lt__(self, other):
        return self._cmp("less", other)

    def __le__(self, other):
        return self._cmp("less_equal", other)

    def __gt__(self, other):
        return self._cmp("greater", other)

    def __ge__(self, other):
        return self._cmp("greater_equal", other)

    def __eq__(self, other):
        return self._cmp("equal", other)

    def __ne__(self, other):
        return self._cmp("not_equal", other)

    __hash__ = None

    def __bool__(self) -> bool:
        return bool(self.primal)

    # Conversions that would drop dependencies

    def _refuse_conversion(self, target: str):
        msg = (
            f"Cannot convert a {type(self).__name__} to {target}: "
            "the dependency information would be lost. "
            "Use sparsad.ops or operators instead of math/float conversions."
        )
        raise UnsupportedOperation(msg)

    def __float__(self):
        self._refuse_conversion("float")

    def __int__(self):
        self._refuse_conversion("int")

    def __complex__(self):
        self._refuse_conversion("complex")

    def __index__(self):
        self._refuse_conversion("an index")

    # NumPy interop

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        name = ufunc.__name__
        if method != "__call__" or kwargs:
            msg = f"Unsupported use of ufunc '{name}' (method={method!r}) on tracers."
            raise UnsupportedOperation(msg)

        if name in COMPARISONS:
            fn = partial(compare, name)
        else:
            rule = lookup(name)
            if rule is None:
                msg = f"No sparsity rule for operation '{name}'."
                raise UnsupportedOperation(msg)
            fn = partial(apply_rule, rule)

        if any(isinstance(x, np.ndarray) for x in inputs):
            return elementwise(fn, *inputs)
        return fn(*inputs)


def _unary_method(rule: UnaryRule):
    def method(self):
        return apply_rule(rule, self)

    method.__name__ = rule.name
    method.__doc__ = f"Trace ``{rule.name}``."
    return method


def _binary_method(rule: BinaryRule):
    def method(self, other):
        return apply_rule(rule, self, other)

    method.__name__ = rule.name
    method.__doc__ = f"Trace ``{rule.name}``."
    return method


# NumPy's object-dtype loops call methods named after the ufunc,
# e.g. ``np.sin(obj_array)`` calls ``element.sin()``.
for _rule in UNARY_RULES.values():
    setattr(BaseTracer, _rule.name, _unary_method(_rule))
for _rule in BINARY_RULES.values():
    setattr(BaseTracer, _rule.name, _binary_method(_rule))


class Tracer(BaseTracer):
    """First-order tracer: primal value plus a dependency bitset.

    Attributes:
        primal: Value at the representative input point.
        deps: Bitset of input indices this value may depend on.
    """

    __slots__ = ("deps",)

    def __init__(self, primal: Any, deps: Bitset = EMPTY) -> None:
        self.primal = primal
        self.deps = deps

    @classmethod
    def _from_unary(cls, rule: UnaryRule, a: Tracer, value: Any) -> Tracer:
        return cls(value, a.deps if rule.first else EMPTY)

    @classmethod
    def _from_binary(cls, rule: BinaryRule, a: Any, b: Any, value: Any) -> Tracer:
        deps = EMPTY
        if rule.first_a and isinstance(a, Tracer):
            deps |= a.deps
        if rule.first_b and isinstance(b, Tracer):
            deps |= b.deps
        return cls(value, deps)

    @property
    def indices(self) -> list[int]:
        """Sorted input indices this value may depend on."""
        return list(bits(self.deps))

    def __repr__(self) -> str:
        return f"Tracer(primal={self.primal!r}, deps={set(self.indices)})"


class HessianTracer(BaseTracer):
    """Second-order tracer: primal value, gradient bitset and Hessian pairs.

    ``grad`` is the structure of the gradient,
    ``hess`` the structure of the Hessian as symmetric pairs.
    By the chain rule,
    ``∇²f(a) = f''(a) ∇a ∇aᵀ + f'(a) ∇²a``,
    so existing pairs survive where ``f'`` can be nonzero
    and new pairs appear where ``f''`` can be nonzero.
    """

    __slots__ = ("grad", "hess")

    def __init__(
        self, primal: Any, grad: Bitset = EMPTY, hess: Pairs | None = None
    ) -> None:
        self.primal = primal
        self.grad = grad
        self.hess = {} if hess is None else hess

    @classmethod
    def _from_unary(
        cls, rule: UnaryRule, a: HessianTracer, value: Any
    ) -> HessianTracer:
        if not rule.first:
            return cls(value)
        hess = a.hess
        if rule.second:
            hess = union_pairs(hess, outer_pairs(a.grad, a.grad))
        return cls(value, a.grad, hess)

    @classmethod
    def _from_binary(
        cls, rule: BinaryRule, a: Any, b: Any, value: Any
    ) -> HessianTracer:
        ga, ha = (a.grad, a.hess) if isinstance(a, HessianTracer) else (EMPTY, {})
        gb, hb = (b.grad, b.hess) if isinstance(b, HessianTracer) else (EMPTY, {})

        grad = EMPTY
        parts: list[Pairs] = []
        if rule.first_a:
            grad |= ga
            parts.append(ha)
        if rule.first_b:
            grad |= gb
            parts.append(hb)
        if rule.second_a:
            parts.append(outer_pairs(ga, ga))
        if rule.second_b:
            parts.append(outer_pairs(gb, gb))
        if rule.mixed:
            parts.append(outer_pairs(ga, gb))
        return cls(value, grad, union_pairs(*parts))

    def __repr__(self) -> str:
        pairs = sorted((i, j) for i, mask in self.hess.items() for j in bits(mask))
        return (
            f"HessianTracer(primal={self.primal!r}, "
            f"grad={set(bits(self.grad))}, hess={pairs})"
        )
