import numpy as np

from .autofunc import Variable
from .mean import effective_stabilizer


def batch_statistics(network, samples, out_size, cache=None):
    """
    Per-channel mean and variance of network's outputs over all samples.

    Each output is split into out_size-wide blocks and every block counts as
    one observation, so a network ending in a convolution contributes one
    observation per spatial position.

    Args:
        network: Network prefix to evaluate
        samples: sequence of samples exposing an input vector
        out_size: channel width
        cache: optional OutputCache shared across calls

    Returns:
        (mean, variance), each of length out_size
    """
    total = np.zeros(out_size)
    total_sq = np.zeros(out_size)
    count = 0
    for idx in range(len(samples)):
        if cache is not None:
            out = cache.evaluate(idx, network, samples)
        else:
            out = network.apply(Variable(samples[idx].input)).output
        if len(out) % out_size != 0:
            raise ValueError(
                f"layer {len(network)} got size {len(out)} (not divisible by {out_size})"
            )
        blocks = out.reshape(-1, out_size)
        count += len(blocks)
        total += blocks.sum(axis=0)
        total_sq += np.square(blocks).sum(axis=0)
    if count == 0:
        raise ValueError("cannot compute statistics without any output blocks")
    mean = total / count
    variance = total_sq / count - np.square(mean)
    return mean, variance


class OutputCache:
    """
    Remembers the deepest network output computed for each sample.

    Statistics for successive normalization layers are computed on
    successively longer prefixes of the same network. Keeping the last output
    per sample means only the new suffix has to be replayed.

    capacity bounds the total number of floats kept across all samples.
    """

    def __init__(self, capacity, sample_count):
        self.capacity = capacity
        self.depths = [0] * sample_count
        self.outputs = [None] * sample_count
        self.num_floats = 0

    def evaluate(self, idx, network, samples):
        cached = self.outputs[idx]
        depth = self.depths[idx]
        if cached is None or depth > len(network):
            out = network.apply(Variable(samples[idx].input)).output
            self._store(idx, len(network), out)
            return out
        if depth == len(network):
            return cached.vector

        out = network[depth:].apply(cached).output
        self._store(idx, len(network), out)
        return out

    def _store(self, idx, depth, out):
        if depth == 0:
            return
        new_num = self.num_floats + len(out)
        if self.outputs[idx] is not None:
            new_num -= len(self.outputs[idx].vector)
        if new_num > self.capacity:
            return
        self.depths[idx] = depth
        self.outputs[idx] = Variable(out)
        self.num_floats = new_num


def update_statistics(network, samples, stabilizer=None, cache_size=0):
    """
    Install frozen statistics in every normalization layer of network.

    Layers are visited left to right, so each layer's statistics are measured
    on outputs that already pass through the statistics installed upstream of
    it.

    Args:
        network: Network containing normalization layers
        samples: sequence of samples used to measure the statistics
        stabilizer: added to every variance. None uses each layer's own
            stabilizer; 0 selects the default.
        cache_size: maximum number of floats the output cache may hold
    """
    cache = OutputCache(cache_size, len(samples))
    for i, layer in enumerate(network):
        width = layer.normalization_width()
        if width is None:
            continue
        mean, variance = batch_statistics(network[:i], samples, width, cache)
        if stabilizer is None:
            eps = layer.effective_stabilizer()
        else:
            eps = effective_stabilizer(stabilizer)
        layer.install_statistics(-mean, 1 / np.sqrt(variance + eps))
