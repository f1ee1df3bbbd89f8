from .arithmetic import add_mul, mul_add
from .autofunc import Gradient, Result, Variable
from .layer import BatchNorm, LayerState
from .mean import DEFAULT_STABILIZER, compute_mean_squares, compute_means, std_dev
from .network import DenseLayer, HyperbolicTangent, Network, NetworkLayer, VectorSample
from .statistics import OutputCache, batch_statistics, update_statistics

__all__ = [
    "BatchNorm",
    "DEFAULT_STABILIZER",
    "DenseLayer",
    "Gradient",
    "HyperbolicTangent",
    "LayerState",
    "Network",
    "NetworkLayer",
    "OutputCache",
    "Result",
    "Variable",
    "VectorSample",
    "add_mul",
    "batch_statistics",
    "compute_mean_squares",
    "compute_means",
    "mul_add",
    "std_dev",
    "update_statistics",
]
