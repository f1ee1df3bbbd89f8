"""
Small feed-forward network built on the autofunc graph.

Only the pieces needed to exercise batch normalization live here: a dense
layer, a tanh activation, and an ordered Network that can be sliced into
prefixes.
"""

from collections import namedtuple

import numpy as np

from .autofunc import Result, Variable, concat, slice_vector

VectorSample = namedtuple("VectorSample", ["input", "output"], defaults=[None])


class NetworkLayer:
    """Base class for layers that map a vector Result to a vector Result."""

    def apply(self, input):
        raise NotImplementedError

    def batch(self, input, n):
        """Apply the layer independently to each of the n samples in input."""
        size = len(input.output)
        if n <= 0 or size % n != 0:
            raise ValueError(f"input size {size} cannot be split into {n} samples")
        step = size // n
        outs = [self.apply(slice_vector(input, i * step, (i + 1) * step)) for i in range(n)]
        return concat(*outs)

    def normalization_width(self):
        """Channel width if this layer is a normalization point, else None."""
        return None

    def parameters(self):
        return []

    def randomize(self, rng=None):
        pass


class _DenseResult(Result):
    def __init__(self, layer, input):
        self.layer = layer
        self.input = input
        self.matrix = layer.weights.vector.reshape(layer.output_count, layer.input_count)
        self._output = self.matrix @ input.output + layer.biases.vector

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return (self.input.constant(grad) and self.layer.weights.constant(grad)
                and self.layer.biases.constant(grad))

    def propagate_gradient(self, upstream, grad):
        if not self.layer.weights.constant(grad):
            self.layer.weights.propagate_gradient(np.outer(upstream, self.input.output).reshape(-1), grad)
        if not self.layer.biases.constant(grad):
            self.layer.biases.propagate_gradient(upstream.copy(), grad)
        if not self.input.constant(grad):
            self.input.propagate_gradient(self.matrix.T @ upstream, grad)


class DenseLayer(NetworkLayer):
    """Fully connected layer: W @ x + b."""

    def __init__(self, input_count, output_count):
        self.input_count = input_count
        self.output_count = output_count
        self.weights = Variable(np.zeros(input_count * output_count))
        self.biases = Variable(np.zeros(output_count))

    def randomize(self, rng=None):
        # Xavier init, suited to the tanh layers used with it
        rng = rng if rng is not None else np.random.default_rng()
        std = np.sqrt(2.0 / (self.input_count + self.output_count))
        self.weights.vector[:] = rng.standard_normal(len(self.weights.vector)) * std
        self.biases.vector[:] = rng.standard_normal(self.output_count) * std

    def apply(self, input):
        if len(input.output) != self.input_count:
            raise ValueError(f"dense layer expects {self.input_count} inputs, got {len(input.output)}")
        return _DenseResult(self, input)

    def parameters(self):
        return [self.weights, self.biases]


class _TanhResult(Result):
    def __init__(self, input):
        self.input = input
        self._output = np.tanh(input.output)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.input.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if not self.input.constant(grad):
            upstream *= 1 - np.square(self._output)
            self.input.propagate_gradient(upstream, grad)


class HyperbolicTangent(NetworkLayer):
    def apply(self, input):
        return _TanhResult(input)

    def batch(self, input, n):
        return _TanhResult(input)


class Network(list):
    """Ordered list of layers. Slicing yields a Network prefix/suffix."""

    def __getitem__(self, item):
        if isinstance(item, slice):
            return Network(super().__getitem__(item))
        return super().__getitem__(item)

    def apply(self, input):
        for layer in self:
            input = layer.apply(input)
        return input

    def batch(self, input, n):
        for layer in self:
            input = layer.batch(input, n)
        return input

    def parameters(self):
        return [p for layer in self for p in layer.parameters()]

    def randomize(self, rng=None):
        for layer in self:
            layer.randomize(rng)
