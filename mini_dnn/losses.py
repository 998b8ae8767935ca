"""
Loss functions. Every loss averages over the batch axis and its backward
returns the gradient of that average with respect to the predictions.

Regularizer contributions are added by ``loss`` (forward) and by
``regularizers_backward`` (gradient), which must run before the optimizer
consumes the gradients.
"""
import numpy as np

from .errors import DNNError, ShapeError
from .layers import HasParamLayer
from . import functional as F
from . import utils


class Loss:
    """Base class for all loss functions."""

    def loss(self, y, t, layers=None):
        """
        Loss value of predictions y against targets t.

        Args:
            y: Predictions
            t: Targets, same shape as y
            layers: If given, the penalties of their regularizers are added
        """
        if y.shape != t.shape:
            raise ShapeError(f"The shape of y does not match the t shape. "
                             f"y shape is {y.shape}, but t shape is {t.shape}.")
        loss_value = self.forward(y, t)
        if layers is not None:
            loss_value = self.regularizers_forward(loss_value, layers)
        return loss_value

    def forward(self, y, t):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'forward'")

    def backward(self, y, t):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'backward'")

    @staticmethod
    def _regularizers(layers):
        for layer in layers:
            if isinstance(layer, HasParamLayer):
                yield from layer.regularizers

    def regularizers_forward(self, loss_value, layers):
        for regularizer in self._regularizers(layers):
            loss_value = regularizer.forward(loss_value)
        return loss_value

    def regularizers_backward(self, layers):
        for regularizer in self._regularizers(layers):
            regularizer.backward()

    def to_hash(self, merge_hash=None):
        hash = {'class': type(self).__name__}
        if merge_hash:
            hash.update(merge_hash)
        return hash

    def load_hash(self, hash):
        self.__init__(**utils.hash_kwargs(hash))

    @classmethod
    def from_hash(cls, hash):
        loss = utils.from_hash(hash)
        if loss is not None and not isinstance(loss, cls):
            raise DNNError(f"{type(loss).__name__} is not an instance of {cls.__name__}.")
        return loss

    def clean(self):
        hash = self.to_hash()
        self.__dict__.clear()
        self.load_hash(hash)


class MeanSquaredError(Loss):
    def forward(self, y, t):
        batch_size = t.shape[0]
        return 0.5 * float(((y - t) ** 2).sum()) / batch_size

    def backward(self, y, t):
        return (y - t) / t.shape[0]


class MeanAbsoluteError(Loss):
    def forward(self, y, t):
        batch_size = t.shape[0]
        return float(np.abs(y - t).sum()) / batch_size

    def backward(self, y, t):
        return np.where(y - t >= 0, 1.0, -1.0) / t.shape[0]


class Hinge(Loss):
    def forward(self, y, t):
        batch_size = t.shape[0]
        return float(np.maximum(0, 1 - y * t).sum()) / batch_size

    def backward(self, y, t):
        return np.where(1 - y * t > 0, -t, 0.0) / t.shape[0]


class HuberLoss(Loss):
    """Quadratic for errors within 1, linear beyond."""

    def forward(self, y, t):
        batch_size = t.shape[0]
        d = np.abs(y - t)
        return float(np.where(d <= 1, 0.5 * d ** 2, d - 0.5).sum()) / batch_size

    def backward(self, y, t):
        d = y - t
        return np.clip(d, -1, 1) / t.shape[0]


class SoftmaxCrossEntropy(Loss):
    """
    Softmax followed by cross entropy, computed on logits.

    Args:
        eps: Value to avoid log(0)
    """

    @staticmethod
    def activation(y):
        return F.softmax(y, axis=1)

    softmax = activation

    def __init__(self, eps=1e-7):
        self.eps = eps

    def forward(self, y, t):
        x = SoftmaxCrossEntropy.softmax(y)
        batch_size = t.shape[0]
        return -float((t * np.log(x + self.eps)).sum()) / batch_size

    def backward(self, y, t):
        return (SoftmaxCrossEntropy.softmax(y) - t) / t.shape[0]

    def to_hash(self):
        return super().to_hash({'eps': self.eps})


class SigmoidCrossEntropy(Loss):
    """
    Sigmoid followed by binary cross entropy, computed on logits.

    Args:
        eps: Value to avoid log(0)
    """

    @staticmethod
    def activation(y):
        return F.sigmoid(y)

    sigmoid = activation

    def __init__(self, eps=1e-7):
        self.eps = eps

    def forward(self, y, t):
        x = SigmoidCrossEntropy.sigmoid(y)
        batch_size = t.shape[0]
        return -float((t * np.log(x + self.eps) + (1 - t) * np.log(1 - x + self.eps)).sum()) / batch_size

    def backward(self, y, t):
        return (SigmoidCrossEntropy.sigmoid(y) - t) / t.shape[0]

    def to_hash(self):
        return super().to_hash({'eps': self.eps})
