"""
Utility functions: one-hot encoding, numerical gradients and the registry
used to rebuild objects from their hashes.
"""
import numpy as np

from .errors import UnknownTypeError


def to_categorical(y, num_classes, dtype=np.float32):
    """
    One-hot encode integer labels.

    Args:
        y: Integer label array of shape (n,) or (n, 1)
        num_classes: Number of classes
        dtype: dtype of the result
    """
    y = np.asarray(y).reshape(-1).astype(np.int64)
    y2 = np.zeros((y.shape[0], num_classes), dtype=dtype)
    y2[np.arange(y.shape[0]), y] = 1
    return y2


def numerical_grad(x, func, dy=None, eps=1e-5):
    """
    Centered finite-difference gradient of sum(func(x) * dy) w.r.t. x.

    Use float64 inputs; func must not keep a reference to x.
    """
    x = np.array(x, dtype=np.float64)
    if dy is None:
        dy = np.ones_like(func(x.copy()), dtype=np.float64)
    grad = np.zeros_like(x)
    for idx in np.ndindex(*x.shape):
        orig = x[idx]
        x[idx] = orig + eps
        plus = np.sum(func(x.copy()) * dy)
        x[idx] = orig - eps
        minus = np.sum(func(x.copy()) * dy)
        x[idx] = orig
        grad[idx] = (plus - minus) / (2 * eps)
    return grad


_REGISTRY = None


def _build_registry():
    from . import activations, cnn_layers, initializers, layers, losses, merge_layers, optim, regularizers
    from .models import Sequential

    classes = [
        layers.InputLayer, layers.Dense, layers.Flatten, layers.Reshape,
        layers.Dropout, layers.BatchNormalization,
        activations.Sigmoid, activations.Tanh, activations.Softsign, activations.Softplus,
        activations.Swish, activations.ReLU, activations.LeakyReLU, activations.ELU,
        activations.Mish,
        cnn_layers.Conv2D, cnn_layers.MaxPool2D, cnn_layers.AvgPool2D, cnn_layers.UnPool2D,
        merge_layers.Add, merge_layers.Mul, merge_layers.Concatenate,
        initializers.Zeros, initializers.Const, initializers.RandomNormal,
        initializers.RandomUniform, initializers.Xavier, initializers.He,
        regularizers.L1, regularizers.L2, regularizers.L1L2,
        losses.MeanSquaredError, losses.MeanAbsoluteError, losses.Hinge, losses.HuberLoss,
        losses.SoftmaxCrossEntropy, losses.SigmoidCrossEntropy,
        optim.SGD, optim.Nesterov, optim.AdaGrad, optim.RMSProp, optim.RMSPropGraves,
        optim.AdaDelta, optim.Adam, optim.AdaBound,
        Sequential,
    ]
    return {cls.__name__: cls for cls in classes}


def registered_class(tag):
    """Return the class registered under tag."""
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = _build_registry()
    try:
        return _REGISTRY[tag]
    except KeyError:
        raise UnknownTypeError(f"Unknown type tag '{tag}'.") from None


def from_hash(hash):
    """Rebuild an object from a hash produced by its to_hash()."""
    if hash is None:
        return None
    if not isinstance(hash, dict) or 'class' not in hash:
        raise UnknownTypeError(f"Not a type-tagged hash: {hash!r}")
    cls = registered_class(hash['class'])
    obj = cls.__new__(cls)
    obj.load_hash(hash)
    return obj


def hash_kwargs(hash):
    """Constructor arguments stored in a hash (everything except the tag)."""
    return {k: v for k, v in hash.items() if k != 'class'}
