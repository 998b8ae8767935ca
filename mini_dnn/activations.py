"""
Activation layers. Each caches what its derivative needs during forward
and never writes into the arrays it is given.
"""
import numpy as np

from .layers import Layer
from . import functional as F


class Sigmoid(Layer):
    """Sigmoid activation: 1 / (1 + exp(-x))"""

    def forward(self, x):
        self._y = F.sigmoid(x)
        return self._y

    def backward(self, dy):
        return dy * (1 - self._y) * self._y


class Tanh(Layer):
    """Hyperbolic tangent activation"""

    def forward(self, x):
        self._y = np.tanh(x)
        return self._y

    def backward(self, dy):
        return dy * (1 - self._y ** 2)


class Softsign(Layer):
    """Softsign activation: x / (1 + |x|)"""

    def forward(self, x):
        self._x = x
        return x / (1 + np.abs(x))

    def backward(self, dy):
        return dy * (1 / (1 + np.abs(self._x)) ** 2)


class Softplus(Layer):
    """Softplus activation: log(1 + exp(x))"""

    def forward(self, x):
        self._x = x
        return F.softplus(x)

    def backward(self, dy):
        return dy * F.sigmoid(self._x)


class Swish(Layer):
    """Swish activation: x * sigmoid(x)"""

    def forward(self, x):
        self._x = x
        self._y = x * F.sigmoid(x)
        return self._y

    def backward(self, dy):
        s = F.sigmoid(self._x)
        return dy * (self._y + s * (1 - self._y))


class ReLU(Layer):
    """ReLU activation: max(0, x)"""

    def forward(self, x):
        self._x = x
        return np.maximum(x, 0)

    def backward(self, dy):
        return dy * (self._x > 0)


class LeakyReLU(Layer):
    """
    Leaky ReLU activation.

    Args:
        alpha: Slope for non-positive inputs
    """

    def __init__(self, alpha=0.3):
        super().__init__()
        self.alpha = alpha

    def forward(self, x):
        self._x = x
        return np.where(x > 0, x, x * self.alpha)

    def backward(self, dy):
        return dy * np.where(self._x > 0, 1.0, self.alpha)

    def to_hash(self):
        return super().to_hash({'alpha': self.alpha})


class ELU(Layer):
    """
    Exponential linear unit.

    Args:
        alpha: Scale of the negative saturation
    """

    def __init__(self, alpha=1.0):
        super().__init__()
        self.alpha = alpha

    def forward(self, x):
        self._x = x
        return np.where(x >= 0, x, self.alpha * (np.exp(np.minimum(x, 0)) - 1))

    def backward(self, dy):
        return dy * np.where(self._x >= 0, 1.0, self.alpha * np.exp(np.minimum(self._x, 0)))

    def to_hash(self):
        return super().to_hash({'alpha': self.alpha})


class Mish(Layer):
    """Mish activation: x * tanh(softplus(x))"""

    def forward(self, x):
        self._x = x
        return x * np.tanh(F.softplus(x))

    def backward(self, dy):
        t = np.tanh(F.softplus(self._x))
        return dy * (t + self._x * (1 - t ** 2) * F.sigmoid(self._x))
