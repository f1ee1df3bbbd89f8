import numpy as np

from .autofunc import Result

DEFAULT_STABILIZER = 1e-3


def block_count(in_size, width):
    """Number of width-sized blocks in a vector of in_size values."""
    if width <= 0:
        raise ValueError(f"invalid channel width: {width}")
    if in_size == 0 or in_size % width != 0:
        raise ValueError(f"input size {in_size} is not a positive multiple of {width}")
    return in_size // width


def effective_stabilizer(stabilizer):
    if stabilizer < 0:
        raise ValueError(f"stabilizer must be positive, got {stabilizer}")
    if stabilizer == 0:
        return DEFAULT_STABILIZER
    return stabilizer


class MeanResult(Result):
    """Per-channel mean over the blocks of the input."""

    def __init__(self, input, width):
        self.input = input
        self.n = block_count(len(input.output), width)
        self.blocks = input.output.reshape(self.n, width)
        self._output = self.blocks.sum(axis=0) / self.n

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.input.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if self.input.constant(grad):
            return
        upstream /= self.n
        downstream = np.tile(upstream, self.n)
        self.input.propagate_gradient(downstream, grad)


class MeanOfSquaresResult(Result):
    """Per-channel mean of the squared input over its blocks."""

    def __init__(self, input, width):
        self.input = input
        self.n = block_count(len(input.output), width)
        self.blocks = input.output.reshape(self.n, width)
        self._output = np.square(self.blocks).sum(axis=0) / self.n

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.input.constant(grad)

    def propagate_gradient(self, upstream, grad):
        if self.input.constant(grad):
            return
        # d/dx of x^2 / N, independently for every block
        downstream = (2 / self.n) * self.blocks * upstream
        self.input.propagate_gradient(downstream.reshape(-1), grad)


class StdDevResult(Result):
    """sqrt(E[x^2] - E[x]^2 + stabilizer) from precomputed moments."""

    def __init__(self, mean, mean_square, stabilizer):
        if len(mean.output) != len(mean_square.output):
            raise ValueError(
                f"mean has {len(mean.output)} channels but mean square has {len(mean_square.output)}"
            )
        self.mean = mean
        self.mean_square = mean_square
        self.stabilizer = effective_stabilizer(stabilizer)
        variance = mean_square.output - np.square(mean.output)
        self._output = np.sqrt(variance + self.stabilizer)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.mean.constant(grad) and self.mean_square.constant(grad)

    def propagate_gradient(self, upstream, grad):
        upstream /= 2 * self._output
        if not self.mean.constant(grad):
            self.mean.propagate_gradient(upstream * (-2 * self.mean.output), grad)
        if not self.mean_square.constant(grad):
            self.mean_square.propagate_gradient(upstream, grad)


def compute_means(input, width):
    return MeanResult(input, width)


def compute_mean_squares(input, width):
    return MeanOfSquaresResult(input, width)


def std_dev(mean, mean_square, stabilizer=0):
    return StdDevResult(mean, mean_square, stabilizer)
