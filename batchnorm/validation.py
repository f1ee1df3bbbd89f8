import numpy as np
import torch
import torch.nn.functional as F
import matplotlib.pyplot as plt

from .arithmetic import add_mul, mul_add
from .autofunc import Gradient, Variable
from .layer import BatchNorm
from .mean import compute_mean_squares, compute_means
from .network import DenseLayer, HyperbolicTangent, Network, VectorSample
from .statistics import batch_statistics, update_statistics
from .utils import set_random_seed


def _numpy_run(fn, arrays, dout):
    variables = [Variable(a) for a in arrays]
    out = fn(*variables)
    grad = Gradient.zeros(variables)
    out.propagate_gradient(dout.copy(), grad)
    return out.output, [grad[v] for v in variables]


def _torch_run(fn, arrays, dout):
    tensors = [torch.tensor(a, dtype=torch.float64, requires_grad=True) for a in arrays]
    out = fn(*tensors)
    out.backward(torch.tensor(dout, dtype=torch.float64))
    return out.detach().numpy(), [t.grad.numpy() for t in tensors]


def _compare(name, numpy_fn, torch_fn, arrays, names, dout, atol):
    out_np, grads_np = _numpy_run(numpy_fn, arrays, dout)
    out_torch, grads_torch = _torch_run(torch_fn, arrays, dout)

    diff = np.abs(out_np - out_torch).max()
    print(f"{name} forward diff between torch and numpy: {diff:.8f}")
    ok = diff < atol
    for arg, g_np, g_torch in zip(names, grads_np, grads_torch):
        diff = np.abs(g_np - g_torch).max()
        print(f"{name} d{arg} diff: {diff:.8f}")
        ok = ok and diff < atol
    return ok


def validate_add_mul(n=5, channels=6, atol=1e-5):
    x = np.random.randn(n * channels)
    bias = np.random.randn(channels)
    scale = np.random.randn(channels)
    dout = np.random.randn(n * channels)
    return _compare(
        "AddMul",
        lambda x, b, s: add_mul(x, b, s, n),
        lambda x, b, s: ((x.view(n, -1) + b) * s).reshape(-1),
        [x, bias, scale], ["x", "bias", "scale"], dout, atol,
    )


def validate_mul_add(n=5, channels=6, atol=1e-5):
    x = np.random.randn(n * channels)
    scale = np.random.randn(channels)
    bias = np.random.randn(channels)
    dout = np.random.randn(n * channels)
    return _compare(
        "MulAdd",
        lambda x, s, b: mul_add(x, s, b, n),
        lambda x, s, b: (x.view(n, -1) * s + b).reshape(-1),
        [x, scale, bias], ["x", "scale", "bias"], dout, atol,
    )


def validate_means(n=5, channels=6, atol=1e-5):
    x = np.random.randn(n * channels)
    dout = np.random.randn(channels)
    ok = _compare(
        "Mean",
        lambda x: compute_means(x, channels),
        lambda x: x.view(n, -1).mean(dim=0),
        [x], ["x"], dout, atol,
    )
    ok_sq = _compare(
        "MeanOfSquares",
        lambda x: compute_mean_squares(x, channels),
        lambda x: x.pow(2).view(n, -1).mean(dim=0),
        [x], ["x"], dout, atol,
    )
    return ok and ok_sq


def validate_batch_norm(n=10, channels=8, eps=1e-5, atol=1e-5):
    """Training-mode BatchNorm against torch's batch_norm with batch statistics."""
    x = np.random.randn(n * channels)
    gamma = np.random.randn(channels)
    beta = np.random.randn(channels)
    dout = np.random.randn(n * channels)

    def numpy_fn(x, g, b):
        layer = BatchNorm(channels, stabilizer=eps)
        layer.scales = g
        layer.biases = b
        return layer.batch(x, n)

    def torch_fn(x, g, b):
        return F.batch_norm(x.view(n, -1), None, None, g, b, training=True, eps=eps).reshape(-1)

    return _compare("BatchNorm", numpy_fn, torch_fn, [x, gamma, beta],
                    ["x", "gamma", "beta"], dout, atol)


def validate_frozen_batch_norm(n=10, channels=8, atol=1e-5):
    x = np.random.randn(n * channels)
    gamma = np.random.randn(channels)
    beta = np.random.randn(channels)
    neg_means = np.random.randn(channels)
    inv_stddevs = np.abs(np.random.randn(channels)) + 0.1
    dout = np.random.randn(n * channels)

    def numpy_fn(x, g, b):
        layer = BatchNorm(channels)
        layer.scales = g
        layer.biases = b
        layer.install_statistics(neg_means, inv_stddevs)
        return layer.batch(x, n)

    def torch_fn(x, g, b):
        normalized = (x.view(n, -1) + torch.tensor(neg_means)) * torch.tensor(inv_stddevs)
        return (normalized * g + b).reshape(-1)

    return _compare("FrozenBatchNorm", numpy_fn, torch_fn, [x, gamma, beta],
                    ["x", "gamma", "beta"], dout, atol)


def plot_channel_statistics(network, samples, path=None):
    """
    Bar plot of the per-channel mean and variance seen before and after
    every normalization layer of network.
    """
    points = [(i, layer.normalization_width()) for i, layer in enumerate(network)
              if layer.normalization_width() is not None]
    fig, axes = plt.subplots(max(len(points), 1), 2, figsize=(12, 3 * max(len(points), 1)),
                             squeeze=False)
    for row, (i, width) in enumerate(points):
        mean_in, var_in = batch_statistics(network[:i], samples, width)
        mean_out, var_out = batch_statistics(network[:i + 1], samples, width)
        channels = np.arange(width)
        for ax, before, after, title in ((axes[row][0], mean_in, mean_out, "mean"),
                                         (axes[row][1], var_in, var_out, "variance")):
            ax.bar(channels - 0.2, before, width=0.4, label="input")
            ax.bar(channels + 0.2, after, width=0.4, label="normalized")
            ax.set_title(f"layer {i} {title}")
            ax.set_xlabel("channel")
            ax.grid(True)
            ax.legend()
    fig.tight_layout()
    if path is not None:
        fig.savefig(path)
    return fig


def demo_network(rng=None):
    net = Network([
        DenseLayer(16, 11),
        BatchNorm(11),
        HyperbolicTangent(),
        DenseLayer(11, 13),
        BatchNorm(13),
        HyperbolicTangent(),
        DenseLayer(13, 10),
        BatchNorm(5),
    ])
    net.randomize(rng)
    return net


def demo_samples(count=50, input_size=16, rng=None):
    rng = rng if rng is not None else np.random.default_rng()
    return [VectorSample(rng.standard_normal(input_size)) for _ in range(count)]


if __name__ == "__main__":
    rng = set_random_seed()
    results = {
        "AddMul": validate_add_mul(),
        "MulAdd": validate_mul_add(),
        "Means": validate_means(),
        "BatchNorm": validate_batch_norm(),
        "FrozenBatchNorm": validate_frozen_batch_norm(),
    }
    for name, ok in results.items():
        print(f"{name}: {'✓ PASS' if ok else '✗ FAIL'}")

    net = demo_network(rng)
    samples = demo_samples(rng=rng)
    update_statistics(net, samples, stabilizer=1e-7, cache_size=13 * 51)
    plot_channel_statistics(net, samples, "channel_statistics.png")
    plt.show()
