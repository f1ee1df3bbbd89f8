from enum import Enum

import numpy as np

from .arithmetic import add_mul, mul_add
from .autofunc import Variable, as_vector, pool, power, scale
from .mean import block_count, compute_mean_squares, compute_means, effective_stabilizer, std_dev
from .network import NetworkLayer


class LayerState(Enum):
    TRAINING = "training"
    FROZEN = "frozen"


class BatchNorm(NetworkLayer):
    """
    Batch Normalization over input_count independent channels.

    While TRAINING, every call normalizes with the statistics of the batch it
    is given. install_statistics() switches the layer to FROZEN for good;
    from then on the installed neg_means / inv_stddevs are used instead.

    Args:
        input_count: number of independently normalized inputs. After a
            dense layer this is its full output size; after a convolution it
            is the number of filters.
        stabilizer: small positive number added to each variance. 0 selects
            DEFAULT_STABILIZER.
    """

    def __init__(self, input_count, stabilizer=0.0):
        self.input_count = input_count
        self.stabilizer = stabilizer
        # learned so the network can undo the normalization if that helps
        self.biases = Variable(np.zeros(input_count))
        self.scales = Variable(np.ones(input_count))

        self.state = LayerState.TRAINING
        self.neg_means = np.zeros(input_count)
        self.inv_stddevs = np.ones(input_count)

    @property
    def frozen(self):
        return self.state is LayerState.FROZEN

    def effective_stabilizer(self):
        return effective_stabilizer(self.stabilizer)

    def normalization_width(self):
        return self.input_count

    def parameters(self):
        return [self.biases, self.scales]

    def install_statistics(self, neg_means, inv_stddevs):
        """Overwrite the frozen statistics and leave TRAINING mode."""
        neg_means = as_vector(neg_means)
        inv_stddevs = as_vector(inv_stddevs)
        for name, vec in (("neg_means", neg_means), ("inv_stddevs", inv_stddevs)):
            if len(vec) != self.input_count:
                raise ValueError(f"{name} has {len(vec)} entries, expected {self.input_count}")
        self.neg_means = neg_means
        self.inv_stddevs = inv_stddevs
        self.state = LayerState.FROZEN

    def apply(self, input):
        return self.batch(input, 1)

    def batch(self, input, n):
        # n is recomputed from the input so layers after a convolution see
        # every spatial position as its own block.
        n = block_count(len(input.output), self.input_count)
        if self.frozen:
            return self._apply_frozen(input, n)
        return pool(input, lambda pooled: self._normalize_batch(pooled, n))

    def _apply_frozen(self, input, n):
        normalized = add_mul(input, Variable(self.neg_means), Variable(self.inv_stddevs), n)
        return mul_add(normalized, self.scales, self.biases, n)

    def _normalize_batch(self, pooled, n):
        mean = compute_means(pooled, self.input_count)
        mean_square = compute_mean_squares(pooled, self.input_count)
        inv_std = power(std_dev(mean, mean_square, self.effective_stabilizer()), -1)
        normalized = add_mul(pooled, scale(mean, -1), inv_std, n)
        return mul_add(normalized, self.scales, self.biases, n)

    def state_dict(self):
        return {
            "input_count": self.input_count,
            "scales": self.scales.vector.tolist(),
            "biases": self.biases.vector.tolist(),
            "neg_means": self.neg_means.tolist(),
            "inv_stddevs": self.inv_stddevs.tolist(),
            "stabilizer": self.stabilizer,
            "state": self.state.value,
        }

    @classmethod
    def from_state_dict(cls, state):
        layer = cls(state["input_count"], stabilizer=state["stabilizer"])
        layer.scales = Variable(state["scales"])
        layer.biases = Variable(state["biases"])
        if len(layer.scales.vector) != layer.input_count or len(layer.biases.vector) != layer.input_count:
            raise ValueError("scales and biases must have input_count entries")
        if LayerState(state["state"]) is LayerState.FROZEN:
            layer.install_statistics(state["neg_means"], state["inv_stddevs"])
        return layer

    def __repr__(self):
        return f"BatchNorm({self.input_count}, stabilizer={self.stabilizer}, state={self.state.value})"
