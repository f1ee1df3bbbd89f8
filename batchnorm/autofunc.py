"""
Minimal reverse-mode autodiff on flat numpy vectors.

Every differentiable value is a Result with three capabilities:
  - output: the forward value (1-D float64 array)
  - constant(grad): True if no Variable in grad can be reached from it
  - propagate_gradient(upstream, grad): push dL/d(output) back to the inputs

A Gradient maps each Variable that should receive a gradient to its
accumulator. Results are free to modify the upstream vector they receive.
"""

import numpy as np


def as_vector(values):
    return np.array(values, dtype=np.float64).reshape(-1)


class Gradient(dict):
    """Accumulated gradients keyed by Variable."""

    @classmethod
    def zeros(cls, variables):
        return cls((v, np.zeros_like(v.vector)) for v in variables)

    def accumulate(self, variable, vec):
        self[variable] += vec


class Result:
    """Base class for nodes of the computation graph."""

    @property
    def output(self):
        raise NotImplementedError

    def constant(self, grad):
        raise NotImplementedError

    def propagate_gradient(self, upstream, grad):
        raise NotImplementedError


class Variable(Result):
    def __init__(self, vector):
        self.vector = as_vector(vector)

    @property
    def output(self):
        return self.vector

    def constant(self, grad):
        return self not in grad

    def propagate_gradient(self, upstream, grad):
        if self in grad:
            grad.accumulate(self, upstream)

    def __repr__(self):
        return f"Variable({self.vector!r})"


def _check_same_length(a, b, op):
    if len(a.output) != len(b.output):
        raise ValueError(f"{op}: operand sizes differ ({len(a.output)} vs {len(b.output)})")


class _Add(Result):
    def __init__(self, a, b):
        _check_same_length(a, b, "add")
        self.a = a
        self.b = b
        self._output = a.output + b.output

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad) and self.b.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            if self.b.constant(grad):
                self.a.propagate_gradient(upstream, grad)
                return
            self.a.propagate_gradient(upstream.copy(), grad)
        if not self.b.constant(grad):
            self.b.propagate_gradient(upstream, grad)


class _Mul(Result):
    def __init__(self, a, b):
        _check_same_length(a, b, "mul")
        self.a = a
        self.b = b
        self._output = a.output * b.output

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad) and self.b.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            self.a.propagate_gradient(upstream * self.b.output, grad)
        if not self.b.constant(grad):
            self.b.propagate_gradient(upstream * self.a.output, grad)


class _Scale(Result):
    def __init__(self, a, scaler):
        self.a = a
        self.scaler = scaler
        self._output = a.output * scaler

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            upstream *= self.scaler
            self.a.propagate_gradient(upstream, grad)


class _AddScaler(Result):
    def __init__(self, a, scaler):
        self.a = a
        self._output = a.output + scaler

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            self.a.propagate_gradient(upstream, grad)


class _Power(Result):
    def __init__(self, a, exponent):
        self.a = a
        self.exponent = exponent
        self._output = np.power(a.output, exponent)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            deriv = self.exponent * np.power(self.a.output, self.exponent - 1)
            self.a.propagate_gradient(upstream * deriv, grad)


class _Repeat(Result):
    def __init__(self, a, n):
        self.a = a
        self.n = n
        self._output = np.tile(a.output, n)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            summed = upstream.reshape(self.n, len(self.a.output)).sum(axis=0)
            self.a.propagate_gradient(summed, grad)


class _Slice(Result):
    def __init__(self, a, start, end):
        if not 0 <= start <= end <= len(a.output):
            raise ValueError(f"slice [{start}:{end}] out of range for size {len(a.output)}")
        self.a = a
        self.start = start
        self.end = end
        self._output = a.output[start:end].copy()

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            downstream = np.zeros_like(self.a.output)
            downstream[self.start:self.end] = upstream
            self.a.propagate_gradient(downstream, grad)


class _Concat(Result):
    def __init__(self, parts):
        self.parts = list(parts)
        self._output = np.concatenate([p.output for p in self.parts])

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return all(p.constant(grad) for p in self.parts)

    def propagate_gradient(self, upstream, grad):
        offset = 0
        for part in self.parts:
            size = len(part.output)
            if not part.constant(grad):
                part.propagate_gradient(upstream[offset:offset + size].copy(), grad)
            offset += size


class _Pool(Result):
    """
    Shares one evaluated input between every consumer built by fn.

    The consumers see a private Variable. On the backward pass that
    Variable's accumulator collects the contributions of all consumers and
    is propagated into the real input exactly once.
    """

    def __init__(self, a, fn):
        self.a = a
        self.pool_var = Variable(a.output)
        self.result = fn(self.pool_var)

    @property
    def output(self):
        return self.result.output

    def constant(self, grad):
        return self.result.constant(grad) and self.a.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.a.constant(grad):
            grad[self.pool_var] = np.zeros_like(self.pool_var.vector)
        try:
            if not self.result.constant(grad):
                self.result.propagate_gradient(upstream, grad)
        finally:
            pooled = grad.pop(self.pool_var, None)
        if pooled is not None:
            self.a.propagate_gradient(pooled, grad)


def add(a, b):
    return _Add(a, b)


def mul(a, b):
    return _Mul(a, b)


def scale(a, scaler):
    return _Scale(a, scaler)


def add_scaler(a, scaler):
    return _AddScaler(a, scaler)


def power(a, exponent):
    return _Power(a, exponent)


def square(a):
    return _Mul(a, a)


def repeat(a, n):
    return _Repeat(a, n)


def slice_vector(a, start, end):
    return _Slice(a, start, end)


def concat(*parts):
    return _Concat(parts)


def pool(a, fn):
    return _Pool(a, fn)
