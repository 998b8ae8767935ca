"""
Initializers fill a freshly allocated parameter when its layer is built.
"""
import numpy as np

from .errors import DNNError
from . import utils


class Initializer:
    """
    Base class for all initializers.

    Args:
        seed: Seed of the initializer's private random stream
    """

    def __init__(self, seed=None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def init_param(self, layer, param):
        """Fill param.data in place of its current (allocated) contents."""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'init_param'")

    def to_hash(self, merge_hash=None):
        hash = {'class': type(self).__name__}
        if merge_hash:
            hash.update(merge_hash)
        return hash

    def load_hash(self, hash):
        self.__init__(**utils.hash_kwargs(hash))

    @classmethod
    def from_hash(cls, hash):
        initializer = utils.from_hash(hash)
        if initializer is not None and not isinstance(initializer, cls):
            raise DNNError(f"{type(initializer).__name__} is not an instance of {cls.__name__}.")
        return initializer


class Zeros(Initializer):
    def __init__(self):
        super().__init__()

    def init_param(self, layer, param):
        param.data = np.zeros_like(param.data)

    def to_hash(self):
        return {'class': type(self).__name__}


class Const(Initializer):
    """
    Fill with a constant.

    Args:
        const: Value every element is set to
    """

    def __init__(self, const):
        super().__init__()
        self.const = const

    def init_param(self, layer, param):
        param.data = np.full_like(param.data, self.const)

    def to_hash(self):
        return {'class': type(self).__name__, 'const': self.const}


class RandomNormal(Initializer):
    """
    Draw from a normal distribution.

    Args:
        mean: Mean of the distribution
        std: Standard deviation of the distribution
        seed: Seed of the random stream
    """

    def __init__(self, mean=0, std=0.05, seed=None):
        super().__init__(seed=seed)
        self.mean = mean
        self.std = std

    def init_param(self, layer, param):
        sample = self._rng.normal(self.mean, self.std, param.data.shape)
        param.data = sample.astype(param.data.dtype)

    def to_hash(self):
        return super().to_hash({'mean': self.mean, 'std': self.std, 'seed': self.seed})


class RandomUniform(Initializer):
    """
    Draw from a uniform distribution on [min, max).

    Args:
        min: Lower bound
        max: Upper bound
        seed: Seed of the random stream
    """

    def __init__(self, min=-0.05, max=0.05, seed=None):
        super().__init__(seed=seed)
        self.min = min
        self.max = max

    def init_param(self, layer, param):
        sample = self._rng.uniform(self.min, self.max, param.data.shape)
        param.data = sample.astype(param.data.dtype)

    def to_hash(self):
        return super().to_hash({'min': self.min, 'max': self.max, 'seed': self.seed})


class Xavier(Initializer):
    """Standard normal scaled by 1 / sqrt(fan_in) of the owning layer."""

    def init_param(self, layer, param):
        sample = self._rng.standard_normal(param.data.shape) / np.sqrt(layer.fan_in)
        param.data = sample.astype(param.data.dtype)

    def to_hash(self):
        return super().to_hash({'seed': self.seed})


class He(Initializer):
    """Standard normal scaled by sqrt(2 / fan_in) of the owning layer."""

    def init_param(self, layer, param):
        sample = self._rng.standard_normal(param.data.shape) / np.sqrt(layer.fan_in) * np.sqrt(2)
        param.data = sample.astype(param.data.dtype)

    def to_hash(self):
        return super().to_hash({'seed': self.seed})
