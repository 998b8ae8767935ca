"""
Merge layers take two tensors and record a link with two parents.
Their backward returns one gradient per input.
"""
import numpy as np

from .errors import ConfigurationError, ShapeError
from .layers import Layer
from .tensor import Graph, Tensor


class MergeLayer(Layer):
    """Base class of two-input layers; built from the first input's shape."""

    def call(self, input1, input2):
        if not isinstance(input1, Tensor):
            input1 = Tensor(input1)
        if not isinstance(input2, Tensor):
            input2 = Tensor(input2)
        x1, x2 = input1.value, input2.value
        self.build(x1.shape[1:])
        graph = Graph.resolve(input1, input2)
        link = graph.add_link(self, input1.link, input2.link)
        y = self.forward(x1, x2)
        return Tensor(y, graph, link, input1.training or input2.training)

    __call__ = call

    def forward(self, x1, x2):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'forward'")

    def backward(self, dy):
        """Return the pair (dx1, dx2)."""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'backward'")


def _check_same_shape(layer, x1, x2):
    if x1.shape != x2.shape:
        raise ShapeError(f"{type(layer).__name__} needs inputs of the same shape, "
                         f"but got {x1.shape} and {x2.shape}.")


class Add(MergeLayer):
    def forward(self, x1, x2):
        _check_same_shape(self, x1, x2)
        return x1 + x2

    def backward(self, dy):
        return dy, dy


class Mul(MergeLayer):
    def forward(self, x1, x2):
        _check_same_shape(self, x1, x2)
        self._x1, self._x2 = x1, x2
        return x1 * x2

    def backward(self, dy):
        return dy * self._x2, dy * self._x1


class Concatenate(MergeLayer):
    """
    Join two inputs along an axis.

    Args:
        axis: Axis of the batched arrays to join along (1 is the first
            sample axis)
    """

    def __init__(self, axis=1):
        if axis == 0:
            raise ValueError("Concatenate cannot join along the batch axis 0.")
        super().__init__()
        self.axis = axis
        self._dim = None
        self._dim2 = None

    def forward(self, x1, x2):
        self._dim = x1.shape[self.axis]
        self._dim2 = x2.shape[self.axis]
        return np.concatenate([x1, x2], axis=self.axis)

    def backward(self, dy):
        dx1, dx2 = np.split(dy, [self._dim], axis=self.axis)
        return dx1, dx2

    @property
    def output_shape(self):
        if self._dim2 is None:
            raise ConfigurationError("Concatenate needs one forward pass before its output shape is known.")
        shape = list(self.input_shape)
        # input_shape has no batch axis
        shape[self.axis - 1 if self.axis > 0 else self.axis] += self._dim2
        return tuple(shape)

    def to_hash(self):
        return super().to_hash({'axis': self.axis})
