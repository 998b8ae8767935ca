"""
Optimizers for mini_dnn.
Includes SGD, Nesterov, AdaGrad, RMSProp, RMSPropGraves, AdaDelta, Adam and AdaBound.

Auxiliary state (momentum buffers, squared-gradient averages, ...) is kept
in dicts keyed by parameter name, so it survives a save/load cycle and can
be matched against a freshly built model.
"""
import copy

import numpy as np

from .errors import ConfigurationError, DNNError
from .layers import HasParamLayer
from . import utils


class Optimizer:
    """
    Base class for all optimizers.

    Args:
        clip_norm: If set, gradients are rescaled so their global L2 norm
            does not exceed this value
    """

    # Attributes that make up the optimizer's auxiliary state
    status_keys = ()

    def __init__(self, clip_norm=None):
        self.clip_norm = clip_norm

    def update(self, layers):
        """
        Update the parameters of every trainable layer in layers and reset
        their gradients. Gradients of frozen layers are discarded.
        """
        target_params = []
        for layer in layers:
            if not isinstance(layer, HasParamLayer):
                continue
            for param in layer.get_params().values():
                if not param.has_grad:
                    continue
                if layer.trainable:
                    target_params.append(param)
                else:
                    param.zero_grad()
        for param in target_params:
            if param.name is None:
                raise ConfigurationError("Parameters have no names yet. Run a forward pass through the model "
                                         "before updating.")
        if self.clip_norm is not None:
            self._clip_grads(target_params)
        self.update_params(target_params)
        for param in target_params:
            param.zero_grad()

    def update_params(self, params):
        """Update parameters - to be implemented by subclasses"""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'update_params'")

    def _clip_grads(self, params):
        norm = np.sqrt(sum(float((param.grad ** 2).sum()) for param in params))
        if norm <= self.clip_norm:
            return
        rate = self.clip_norm / (norm + 1e-7)
        for param in params:
            param.grad = param.grad * rate

    @staticmethod
    def _zeros(params_state, param):
        if param.name not in params_state:
            params_state[param.name] = np.zeros_like(param.data)
        return params_state[param.name]

    @staticmethod
    def _set_data(param, data):
        param.data = np.asarray(data).astype(param.data.dtype, copy=False)

    @property
    def status(self):
        return {key: getattr(self, key) for key in self.status_keys}

    def load_status(self, status):
        for key, state in status.items():
            if key not in self.status_keys:
                raise DNNError(f"{type(self).__name__} has no status '{key}'.")
            setattr(self, key, copy.deepcopy(state))

    def dump(self, require_status=True):
        status = copy.deepcopy(self.status) if require_status else None
        return {'hash': self.to_hash(), 'status': status}

    @classmethod
    def load(cls, dumped):
        optimizer = cls.from_hash(dumped['hash'])
        if dumped.get('status'):
            optimizer.load_status(dumped['status'])
        return optimizer

    def to_hash(self, merge_hash=None):
        hash = {'class': type(self).__name__, 'clip_norm': self.clip_norm}
        if merge_hash:
            hash.update(merge_hash)
        return hash

    def load_hash(self, hash):
        self.__init__(**utils.hash_kwargs(hash))

    @classmethod
    def from_hash(cls, hash):
        optimizer = utils.from_hash(hash)
        if optimizer is not None and not isinstance(optimizer, cls):
            raise DNNError(f"{type(optimizer).__name__} is not an instance of {cls.__name__}.")
        return optimizer


class SGD(Optimizer):
    """
    Stochastic Gradient Descent optimizer, with optional momentum.

    Args:
        lr: Learning rate (step size)
        momentum: Momentum coefficient
        clip_norm: See Optimizer
    """

    status_keys = ('v',)

    def __init__(self, lr=0.01, momentum=0, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.lr = lr
        self.momentum = momentum
        self.v = {}

    def update_params(self, params):
        for param in params:
            amount = param.grad * self.lr
            if self.momentum > 0:
                if param.name in self.v:
                    amount = amount + self.momentum * self.v[param.name]
                self.v[param.name] = amount
            self._set_data(param, param.data - amount)

    def to_hash(self):
        return super().to_hash({'lr': self.lr, 'momentum': self.momentum})


class Nesterov(SGD):
    """Nesterov accelerated gradient."""

    def __init__(self, lr=0.01, momentum=0.9, clip_norm=None):
        super().__init__(lr=lr, momentum=momentum, clip_norm=clip_norm)

    def update_params(self, params):
        for param in params:
            v = self._zeros(self.v, param)
            amount = param.grad * self.lr
            self.v[param.name] = v * self.momentum - amount
            self._set_data(param, param.data + self.momentum ** 2 * self.v[param.name]
                           - (1 + self.momentum) * amount)


class AdaGrad(Optimizer):
    """
    AdaGrad (Adaptive Gradient) optimizer.
    Adapts learning rate based on cumulative sum of squared gradients.

    Args:
        lr: Learning rate
        eps: Small constant for numerical stability
    """

    status_keys = ('g',)

    def __init__(self, lr=0.01, eps=1e-7, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.lr = lr
        self.eps = eps
        self.g = {}

    def update_params(self, params):
        for param in params:
            g = self._zeros(self.g, param) + param.grad ** 2
            self.g[param.name] = g
            self._set_data(param, param.data - (self.lr / np.sqrt(g + self.eps)) * param.grad)

    def to_hash(self):
        return super().to_hash({'lr': self.lr, 'eps': self.eps})


class RMSProp(Optimizer):
    """
    RMSProp (Root Mean Square Propagation) optimizer.
    Uses exponential moving average of squared gradients.

    Args:
        lr: Learning rate
        alpha: Decay rate of the moving average
        eps: Small constant for numerical stability
    """

    status_keys = ('g',)

    def __init__(self, lr=0.001, alpha=0.9, eps=1e-7, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.lr = lr
        self.alpha = alpha
        self.eps = eps
        self.g = {}

    def update_params(self, params):
        for param in params:
            g = self.alpha * self._zeros(self.g, param) + (1 - self.alpha) * param.grad ** 2
            self.g[param.name] = g
            self._set_data(param, param.data - (self.lr / np.sqrt(g + self.eps)) * param.grad)

    def to_hash(self):
        return super().to_hash({'lr': self.lr, 'alpha': self.alpha, 'eps': self.eps})


class RMSPropGraves(Optimizer):
    """
    RMSProp as formulated by Graves: the squared-gradient average is
    centred by the squared mean gradient.

    Args:
        lr: Learning rate
        alpha: Decay rate of the moving averages
        eps: Small constant for numerical stability
    """

    status_keys = ('m', 'v')

    def __init__(self, lr=0.0001, alpha=0.95, eps=0.0001, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.lr = lr
        self.alpha = alpha
        self.eps = eps
        self.m = {}
        self.v = {}

    def update_params(self, params):
        for param in params:
            m = self.alpha * self._zeros(self.m, param) + (1 - self.alpha) * param.grad
            v = self.alpha * self._zeros(self.v, param) + (1 - self.alpha) * param.grad ** 2
            self.m[param.name] = m
            self.v[param.name] = v
            self._set_data(param, param.data - (self.lr / np.sqrt(v - m ** 2 + self.eps)) * param.grad)

    def to_hash(self):
        return super().to_hash({'lr': self.lr, 'alpha': self.alpha, 'eps': self.eps})


class AdaDelta(Optimizer):
    """
    AdaDelta optimizer.
    Adaptive learning rate method that uses exponential moving averages
    of squared gradients and squared parameter updates; it has no learning
    rate.

    Args:
        rho: Decay rate of the moving averages
        eps: Small constant for numerical stability
    """

    status_keys = ('h', 's')

    def __init__(self, rho=0.95, eps=1e-6, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.rho = rho
        self.eps = eps
        self.h = {}
        self.s = {}

    def update_params(self, params):
        for param in params:
            h = self.rho * self._zeros(self.h, param) + (1 - self.rho) * param.grad ** 2
            s = self._zeros(self.s, param)
            v = (np.sqrt(s + self.eps) / np.sqrt(h + self.eps)) * param.grad
            self.h[param.name] = h
            self.s[param.name] = self.rho * s + (1 - self.rho) * v ** 2
            self._set_data(param, param.data - v)

    def to_hash(self):
        return super().to_hash({'rho': self.rho, 'eps': self.eps})


class Adam(Optimizer):
    """
    Adam (Adaptive Moment Estimation) optimizer.
    Combines momentum and RMSProp with bias correction.

    Args:
        alpha: Base step size (also reachable as ``lr``)
        beta1: Exponential decay rate for first moment
        beta2: Exponential decay rate for second moment
        eps: Small constant for numerical stability
        amsgrad: Use the running maximum of the second moment
    """

    status_keys = ('t', 'm', 'v', 's')

    def __init__(self, alpha=0.001, beta1=0.9, beta2=0.999, eps=1e-7, amsgrad=False, clip_norm=None):
        super().__init__(clip_norm=clip_norm)
        self.alpha = alpha
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.amsgrad = amsgrad
        self.t = 0
        self.m = {}
        self.v = {}
        self.s = {} if amsgrad else None

    @property
    def lr(self):
        return self.alpha

    @lr.setter
    def lr(self, value):
        self.alpha = value

    def _moments(self, param):
        m = self._zeros(self.m, param)
        v = self._zeros(self.v, param)
        m = m + (1 - self.beta1) * (param.grad - m)
        v = v + (1 - self.beta2) * (param.grad ** 2 - v)
        self.m[param.name] = m
        self.v[param.name] = v
        if self.amsgrad:
            s = np.maximum(self._zeros(self.s, param), v)
            self.s[param.name] = s
            return m, s
        return m, v

    def update_params(self, params):
        self.t += 1
        lr = self.alpha * np.sqrt(1 - self.beta2 ** self.t) / (1 - self.beta1 ** self.t)
        for param in params:
            m, v = self._moments(param)
            self._set_data(param, param.data - lr * m / np.sqrt(v + self.eps))

    def to_hash(self):
        return super().to_hash({'alpha': self.alpha, 'beta1': self.beta1, 'beta2': self.beta2,
                                'eps': self.eps, 'amsgrad': self.amsgrad})


class AdaBound(Adam):
    """
    Adam whose per-element step size is clipped into bounds that converge
    to final_lr.

    Args:
        final_lr: Learning rate the bounds converge to
        gamma: Convergence speed of the bounds
        **: See Adam
    """

    def __init__(self, alpha=0.001, beta1=0.9, beta2=0.999, final_lr=0.1, gamma=0.001,
                 eps=1e-7, amsgrad=False, clip_norm=None):
        super().__init__(alpha=alpha, beta1=beta1, beta2=beta2, eps=eps, amsgrad=amsgrad, clip_norm=clip_norm)
        self.final_lr = final_lr
        self.gamma = gamma

    def update_params(self, params):
        self.t += 1
        lr = self.alpha * np.sqrt(1 - self.beta2 ** self.t) / (1 - self.beta1 ** self.t)
        final_lr = self.final_lr * lr / self.alpha
        lower_bound = final_lr * (1 - 1 / (self.gamma * self.t + 1))
        upper_bound = final_lr * (1 + 1 / (self.gamma * self.t))
        for param in params:
            m, v = self._moments(param)
            step = np.clip(lr / (np.sqrt(v) + self.eps), lower_bound, upper_bound)
            self._set_data(param, param.data - step * m)

    def to_hash(self):
        hash = super().to_hash()
        hash.update({'final_lr': self.final_lr, 'gamma': self.gamma})
        return hash
