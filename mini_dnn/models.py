"""
Models own the graph of the most recent forward pass and drive training:
forward, loss, backward through the graph, regularizer gradients and the
optimizer update, in that order.
"""
import copy
import logging

import numpy as np

from .errors import ConfigurationError, DNNError, UnknownEventError
from .iterator import Iterator
from .layers import HasParamLayer, Layer
from .losses import Loss, SigmoidCrossEntropy
from .optim import Optimizer
from .savers import PickleLoader, PickleSaver
from .tensor import Tensor, name_layers
from . import utils

logger = logging.getLogger(__name__)

EVENTS = (
    'before_epoch',
    'after_epoch',
    'before_train_on_batch',
    'after_train_on_batch',
    'before_test_on_batch',
    'after_test_on_batch',
)


class Model:
    """
    Base class for models.

    Subclasses implement call(x), which takes a Tensor and returns the
    output Tensor of the network.
    """

    @classmethod
    def load(cls, file_name):
        """Create a model of this class from a file written by save()."""
        model = cls()
        PickleLoader(model).load(file_name)
        return model

    def __init__(self):
        self.optimizer = None
        self.loss_func = None
        self.graph = None
        self.last_link = None
        self.built = False
        self._input_shape = None
        self._layers_cache = None
        self._callbacks = {event: [] for event in EVENTS}

    def call(self, x):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'call'")

    def __call__(self, x):
        return self.call(x)

    def setup(self, optimizer, loss_func):
        """
        Set the optimizer and loss function used for training.

        Args:
            optimizer: Optimizer instance
            loss_func: Loss instance
        """
        if not isinstance(optimizer, Optimizer):
            raise TypeError(f"optimizer: {type(optimizer).__name__} is not an instance of Optimizer.")
        if not isinstance(loss_func, Loss):
            raise TypeError(f"loss_func: {type(loss_func).__name__} is not an instance of Loss.")
        self.optimizer = optimizer
        self.loss_func = loss_func

    @property
    def setup_completed(self):
        return self.optimizer is not None and self.loss_func is not None

    def _check_setup(self):
        if not self.setup_completed:
            raise ConfigurationError("The model is not setup complete. Call setup(optimizer, loss_func) first.")

    @staticmethod
    def _check_xy_type(x, y=None):
        for key, data in (('x', x), ('y', y)):
            if key == 'y' and data is None:
                continue
            if not isinstance(data, np.ndarray) or not np.issubdtype(data.dtype, np.floating):
                kind = data.dtype if isinstance(data, np.ndarray) else type(data).__name__
                raise TypeError(f"{key}: {kind} is not a floating point numpy array.")

    def train(self, x, y, epochs, batch_size=1, initial_epoch=1, test=None, verbose=True):
        """
        Train the model.

        Args:
            x: Training inputs
            y: Training targets
            epochs: Number of the last epoch to run
            batch_size: Samples per training step
            initial_epoch: Epoch to start counting from
            test: Optional (x_test, y_test) evaluated after every epoch
            verbose: Print epoch headers and a progress bar

        Returns:
            False if training stopped early on a non-finite loss, otherwise True.
        """
        self._check_setup()
        self._check_xy_type(x, y)
        iterator = Iterator(x, y)
        num_train_datas = x.shape[0]
        for epoch in range(initial_epoch, epochs + 1):
            self._call_callbacks('before_epoch', epoch)
            if verbose:
                print(f"[ epoch {epoch}/{epochs} ]")
            for x_batch, y_batch, index in iterator.foreach(batch_size):
                loss_value = self.train_on_batch(x_batch, y_batch)
                if not np.isfinite(loss_value):
                    logger.warning("Stopped training at epoch %d: loss is %s", epoch, loss_value)
                    if verbose:
                        print(f"\nloss is {loss_value}")
                    return False
                num_trained_datas = min((index + 1) * batch_size, num_train_datas)
                if verbose:
                    print(self._progress_bar(num_trained_datas, num_train_datas, loss_value), end='', flush=True)
            if test is not None:
                acc, test_loss = self.accuracy(test[0], test[1], batch_size=batch_size)
                if verbose:
                    print(f"  accuracy: {acc}, test loss: {test_loss:.8f}", end='')
            if verbose:
                print()
            self._call_callbacks('after_epoch', epoch)
        return True

    fit = train

    @staticmethod
    def _progress_bar(num_trained_datas, num_train_datas, loss_value, width=40):
        done = num_trained_datas * width // num_train_datas
        bar = ''.join('=' if i < done else '>' if i == done else '_' for i in range(width))
        return f"\r{bar}  {num_trained_datas}/{num_train_datas} loss: {loss_value:.8f}"

    def train_on_batch(self, x, y):
        """
        Run one training step on a batch.

        Returns:
            The loss value of the batch, regularizer penalties included.
        """
        self._check_setup()
        self._check_xy_type(x, y)
        self._call_callbacks('before_train_on_batch')
        out = self.forward(x, training=True)
        layers = self.layers
        loss_value = self.loss_func.loss(out, y, layers)
        dy = self.loss_func.backward(out, y)
        self.backward(dy)
        self.loss_func.regularizers_backward(layers)
        self.optimizer.update(layers)
        self._call_callbacks('after_train_on_batch', loss_value)
        return loss_value

    def accuracy(self, x, y, batch_size=100):
        """
        Evaluate the model on test data.

        Returns:
            (accuracy, mean loss over batches)
        """
        self._check_xy_type(x, y)
        num_datas = x.shape[0]
        batch_size = min(batch_size, num_datas)
        iterator = Iterator(x, y, random=False)
        total_correct = 0
        sum_loss = 0.0
        max_steps = iterator.num_steps(batch_size)
        for x_batch, y_batch, _ in iterator.foreach(batch_size):
            correct, loss_value = self.test_on_batch(x_batch, y_batch)
            total_correct += correct
            sum_loss += loss_value
        return total_correct / num_datas, sum_loss / max_steps

    def test_on_batch(self, x, y):
        """Return (number of correct predictions, loss value) for a batch."""
        if self.loss_func is None:
            raise ConfigurationError("The model has no loss function. Call setup(optimizer, loss_func) first.")
        self._call_callbacks('before_test_on_batch')
        out = self.forward(x, training=False)
        correct = self._evaluate(out, y)
        loss_value = self.loss_func.loss(out, y, self.layers)
        self._call_callbacks('after_test_on_batch', loss_value)
        return correct, loss_value

    def _evaluate(self, y, t):
        if y.shape[1:] == (1,):
            # outputs split at 0; targets of a sigmoid loss split at 0.5, others at 0
            threshold = 0.5 if isinstance(self.loss_func, SigmoidCrossEntropy) else 0
            hits = ((y[:, 0] < 0) & (t[:, 0] < threshold)) | ((y[:, 0] >= 0) & (t[:, 0] >= threshold))
            return int(hits.sum())
        return int((y.argmax(axis=1) == t.argmax(axis=1)).sum())

    def predict(self, x, use_loss_activation=False):
        """
        Run an inference forward pass.

        Args:
            x: Input batch
            use_loss_activation: Apply the loss's output activation (softmax
                or sigmoid) to turn logits into probabilities
        """
        self._check_xy_type(x)
        y = self.forward(x, training=False)
        if use_loss_activation:
            if self.loss_func is None:
                raise ConfigurationError("The model has no loss function to take the activation from.")
            if hasattr(self.loss_func, 'activation'):
                y = self.loss_func.activation(y)
        return y

    def predict1(self, x, use_loss_activation=False):
        """Predict a single sample without a batch axis."""
        self._check_xy_type(x)
        return self.predict(x[np.newaxis], use_loss_activation=use_loss_activation)[0]

    def forward(self, x, training=False):
        """Run call() on x, record the resulting graph and return the output array."""
        y = self.call(Tensor(x, training=training))
        if not isinstance(y, Tensor) or y.graph is None:
            raise DNNError(f"{type(self).__name__}.call did not return a Tensor produced by a layer.")
        self.graph = y.graph
        self.last_link = y.link
        self._layers_cache = None
        if not self.built:
            self.built = True
            self._input_shape = tuple(x.shape[1:])
            logger.debug("built %s for input shape %s", type(self).__name__, self._input_shape)
        name_layers(self.layers)
        return y.value

    def backward(self, dy):
        """
        Backpropagate dy through the graph of the last forward pass.

        Returns:
            The gradient with respect to the model input.
        """
        if not self.built:
            raise ConfigurationError("This model is not built. Run a forward pass first.")
        input_grads = self.graph.backward(self.last_link, dy)
        return input_grads[0] if len(input_grads) == 1 else input_grads

    def build(self, input_shape):
        """Build the model by running a zero batch of input_shape through it."""
        if self.built:
            return
        self.forward(np.zeros((1, *input_shape), dtype=np.float32), training=False)

    @property
    def input_shape(self):
        return self._input_shape

    @property
    def layers(self):
        """All layers of the last forward pass, ordered input to output."""
        if not self.built:
            raise ConfigurationError("This model is not built. You need build this model using predict or train.")
        if self._layers_cache is None:
            self._layers_cache = self.graph.layers(self.last_link)
        return self._layers_cache

    @property
    def has_param_layers(self):
        return [layer for layer in self.layers if isinstance(layer, HasParamLayer)]

    def get_layer(self, key, layer_class=None):
        """
        Look up a layer.

        Args:
            key: Layer name, or index into layers
            layer_class: If given, index among layers of this class only
        """
        if isinstance(key, str):
            for layer in self.layers:
                if layer.name == key:
                    return layer
            raise DNNError(f"No layer named '{key}'.")
        layers = self.layers
        if layer_class is not None:
            layers = [layer for layer in layers if isinstance(layer, layer_class)]
        return layers[key]

    def add_callback(self, event, callback):
        if event not in self._callbacks:
            raise UnknownEventError(f"Unknown event {event}.")
        self._callbacks[event].append(callback)

    def clear_callbacks(self, event):
        if event not in self._callbacks:
            raise UnknownEventError(f"Unknown event {event}.")
        self._callbacks[event] = []

    def _call_callbacks(self, event, *args):
        for callback in self._callbacks[event]:
            callback(*args)

    def to_hash(self):
        """Architecture hash; None for models that cannot describe themselves."""
        return None

    def save(self, file_name, include_optimizer=True):
        """Save parameters, loss and (optionally) optimizer state to file_name."""
        PickleSaver(self, include_optimizer=include_optimizer).save(file_name)

    def copy(self):
        return copy.deepcopy(self)


class Sequential(Model):
    """
    Model that feeds its input through a stack of layers (or models) in order.

    Args:
        stack: Initial list of layers
    """

    def __init__(self, stack=None):
        super().__init__()
        self.stack = []
        for layer in stack or []:
            self.add(layer)

    @staticmethod
    def _check_layer(layer):
        if not isinstance(layer, (Layer, Model)):
            raise TypeError(f"layer: {type(layer).__name__} is not an instance of Layer or Model.")

    def add(self, layer):
        """Append a layer and return the model."""
        self._check_layer(layer)
        self.stack.append(layer)
        return self

    __lshift__ = add

    def remove(self, layer):
        """Remove a layer; return True if it was in the stack."""
        self._check_layer(layer)
        for i, l in enumerate(self.stack):
            if l is layer:
                del self.stack[i]
                return True
        return False

    def call(self, x):
        for layer in self.stack:
            x = layer(x)
        return x

    def to_hash(self):
        return {'class': type(self).__name__, 'stack': [layer.to_hash() for layer in self.stack]}

    def load_hash(self, hash):
        self.__init__([utils.from_hash(layer_hash) for layer_hash in hash['stack']])

    @classmethod
    def from_hash(cls, hash):
        model = utils.from_hash(hash)
        if not isinstance(model, cls):
            raise DNNError(f"{type(model).__name__} is not an instance of {cls.__name__}.")
        return model
