"""
Learning rate schedulers.

A scheduler owns the learning rate of one optimizer: every ``step()``
computes a new rate and writes it to ``optimizer.lr`` (an alias of
``alpha`` for the Adam family). Call ``step()`` once per epoch, e.g. from
an ``after_epoch`` model callback.
"""
import logging

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class LRScheduler:
    """
    Base class for learning rate schedulers.

    Args:
        optimizer: Optimizer with an ``lr`` attribute
        initial_lr: Starting learning rate (default: the optimizer's current lr)
    """

    def __init__(self, optimizer, initial_lr=None):
        if not hasattr(optimizer, 'lr'):
            raise ConfigurationError(f"{type(optimizer).__name__} has no learning rate to schedule.")
        self.optimizer = optimizer
        self.initial_lr = optimizer.lr if initial_lr is None else initial_lr
        self.iteration = 0
        self._set_lr(self.initial_lr)

    def _set_lr(self, lr):
        self.lr = lr
        self.optimizer.lr = lr

    def get_lr(self, metric=None):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'get_lr'")

    def step(self, metric=None):
        """Advance one epoch and apply the new learning rate."""
        self.iteration += 1
        lr = self.get_lr(metric)
        if lr != self.lr:
            logger.debug("%s: lr %.6g -> %.6g", type(self).__name__, self.lr, lr)
        self._set_lr(lr)


class ReduceLROnPlateau(LRScheduler):
    """
    Multiply the learning rate by factor once the metric has not improved
    for patience steps.

    Args:
        patience: Steps without improvement before a reduction
        factor: Reduction factor
        min_lr: Lower bound of the learning rate
        mode: 'min' when lower metric is better, 'max' otherwise
        threshold: Minimum change that counts as an improvement
    """

    def __init__(self, optimizer, initial_lr=None, patience=10, factor=0.1,
                 min_lr=1e-6, mode='min', threshold=1e-4):
        if mode not in ('min', 'max'):
            raise ValueError(f"Mode {mode} is invalid. Use 'min' or 'max'.")
        super().__init__(optimizer, initial_lr)
        self.patience = patience
        self.factor = factor
        self.min_lr = min_lr
        self.mode = mode
        self.threshold = threshold
        self.best_metric = np.inf if mode == 'min' else -np.inf
        self.num_bad_epochs = 0

    def _is_improvement(self, metric):
        if self.mode == 'min':
            return metric < self.best_metric - self.threshold
        return metric > self.best_metric + self.threshold

    def get_lr(self, metric=None):
        if metric is None:
            return self.lr
        if self._is_improvement(metric):
            self.best_metric = metric
            self.num_bad_epochs = 0
            return self.lr
        self.num_bad_epochs += 1
        if self.num_bad_epochs < self.patience:
            return self.lr
        self.num_bad_epochs = 0
        lr = max(self.lr * self.factor, self.min_lr)
        if lr < self.lr:
            logger.info("no improvement for %d steps, reducing lr to %.6g", self.patience, lr)
        return lr


class StepLR(LRScheduler):
    """Multiply the learning rate by gamma every step_size steps."""

    def __init__(self, optimizer, step_size, gamma=0.1, initial_lr=None):
        super().__init__(optimizer, initial_lr)
        self.step_size = step_size
        self.gamma = gamma

    def get_lr(self, metric=None):
        return self.initial_lr * self.gamma ** (self.iteration // self.step_size)


class ExponentialLR(LRScheduler):
    """Multiply the learning rate by gamma every step."""

    def __init__(self, optimizer, gamma, initial_lr=None):
        super().__init__(optimizer, initial_lr)
        self.gamma = gamma

    def get_lr(self, metric=None):
        return self.initial_lr * self.gamma ** self.iteration


class CosineAnnealingLR(LRScheduler):
    """
    Anneal the learning rate from initial_lr down to eta_min along a half
    cosine over T_max steps, then hold it at eta_min.
    """

    def __init__(self, optimizer, T_max, eta_min=0, initial_lr=None):
        super().__init__(optimizer, initial_lr)
        self.T_max = T_max
        self.eta_min = eta_min

    def get_lr(self, metric=None):
        t = min(self.iteration, self.T_max)
        return self.eta_min + (self.initial_lr - self.eta_min) * (1 + np.cos(np.pi * t / self.T_max)) / 2
