"""
Regularizers add a penalty on one parameter to the loss and the matching
term to that parameter's gradient.
"""
import numpy as np

from .errors import DNNError
from . import utils


class Regularizer:
    """
    Base class for all regularizers.

    The owning layer binds ``param`` once, when it is constructed.
    """

    param = None

    def forward(self, x):
        """Return loss value x plus this regularizer's penalty."""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'forward'")

    def backward(self):
        """Accumulate the penalty's gradient into the bound parameter."""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'backward'")

    def to_hash(self, merge_hash):
        hash = {'class': type(self).__name__}
        hash.update(merge_hash)
        return hash

    def load_hash(self, hash):
        self.__init__(**utils.hash_kwargs(hash))

    @classmethod
    def from_hash(cls, hash):
        regularizer = utils.from_hash(hash)
        if regularizer is not None and not isinstance(regularizer, cls):
            raise DNNError(f"{type(regularizer).__name__} is not an instance of {cls.__name__}.")
        return regularizer


class L1(Regularizer):
    """
    Args:
        l1_lambda: L1 regularizer coefficient
    """

    def __init__(self, l1_lambda=0.01):
        self.l1_lambda = l1_lambda

    def forward(self, x):
        return x + self.l1_lambda * np.abs(self.param.data).sum()

    def backward(self):
        dparam = np.where(self.param.data < 0, -1.0, 1.0)
        self.param.add_grad(self.l1_lambda * dparam)

    def to_hash(self):
        return super().to_hash({'l1_lambda': self.l1_lambda})


class L2(Regularizer):
    """
    Args:
        l2_lambda: L2 regularizer coefficient
    """

    def __init__(self, l2_lambda=0.01):
        self.l2_lambda = l2_lambda

    def forward(self, x):
        return x + 0.5 * self.l2_lambda * (self.param.data ** 2).sum()

    def backward(self):
        self.param.add_grad(self.l2_lambda * self.param.data)

    def to_hash(self):
        return super().to_hash({'l2_lambda': self.l2_lambda})


class L1L2(Regularizer):
    """
    Args:
        l1_lambda: L1 regularizer coefficient
        l2_lambda: L2 regularizer coefficient
    """

    def __init__(self, l1_lambda=0.01, l2_lambda=0.01):
        self.l1_lambda = l1_lambda
        self.l2_lambda = l2_lambda

    def forward(self, x):
        l1 = self.l1_lambda * np.abs(self.param.data).sum()
        l2 = 0.5 * self.l2_lambda * (self.param.data ** 2).sum()
        return x + l1 + l2

    def backward(self):
        dparam = np.where(self.param.data < 0, -1.0, 1.0)
        self.param.add_grad(self.l1_lambda * dparam + self.l2_lambda * self.param.data)

    def to_hash(self):
        return super().to_hash({'l1_lambda': self.l1_lambda, 'l2_lambda': self.l2_lambda})
