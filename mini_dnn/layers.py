"""
Layer base classes and the core layers: input, dense, flatten, reshape,
dropout and batch normalization.

A layer is built lazily the first time it is called. Calling a layer on a
Tensor runs its forward pass and records one link in the tensor's graph;
the graph later drives backward in reverse order.
"""
import numpy as np

from .errors import DNNError, ShapeError
from .initializers import Initializer, RandomNormal, Zeros
from .regularizers import Regularizer
from .tensor import Graph, Param, Tensor
from . import utils


class Layer:
    """
    Base class for all layers.

    Subclasses implement forward(x) and backward(dy); layers whose output
    depends on the learning phase set ``uses_learning_phase`` and accept
    ``forward(x, training=False)`` instead.
    """

    uses_learning_phase = False

    def __init__(self):
        self.built = False
        self.input_shape = None
        self.name = None

    def call(self, input_tensor):
        """Run forward on input_tensor and record the invocation in its graph."""
        if not isinstance(input_tensor, Tensor):
            input_tensor = Tensor(input_tensor)
        x = input_tensor.value
        self.build(x.shape[1:])
        graph = Graph.resolve(input_tensor)
        link = graph.add_link(self, input_tensor.link)
        if self.uses_learning_phase:
            y = self.forward(x, training=input_tensor.training)
        else:
            y = self.forward(x)
        return Tensor(y, graph, link, input_tensor.training)

    __call__ = call

    def build(self, input_shape):
        """
        Record input_shape and allocate whatever depends on it.

        Runs once per layer; later calls must pass the same shape.
        """
        input_shape = tuple(int(d) for d in input_shape)
        if self.built:
            if input_shape != self.input_shape:
                raise ShapeError(f"{type(self).__name__} was built for input shape {self.input_shape}, "
                                 f"but got {input_shape}.")
            return
        self.input_shape = input_shape
        self._build(input_shape)
        self.built = True

    def _build(self, input_shape):
        pass

    def forward(self, x):
        """Forward pass - to be implemented by subclasses"""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'forward'")

    def backward(self, dy):
        """Backward pass - to be implemented by subclasses"""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'backward'")

    @property
    def output_shape(self):
        """Shape of forward's output for one sample (pass-through by default)."""
        return self.input_shape

    def to_hash(self, merge_hash=None):
        hash = {'class': type(self).__name__}
        if merge_hash:
            hash.update(merge_hash)
        return hash

    def load_hash(self, hash):
        self.__init__(**utils.hash_kwargs(hash))

    @classmethod
    def from_hash(cls, hash):
        layer = utils.from_hash(hash)
        if layer is not None and not isinstance(layer, cls):
            raise DNNError(f"{type(layer).__name__} is not an instance of {cls.__name__}.")
        return layer

    def clean(self):
        """Drop parameters and caches, keeping what is needed to rebuild the layer."""
        hash = self.to_hash()
        self.__dict__.clear()
        self.load_hash(hash)

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name}, input_shape={self.input_shape})"


class HasParamLayer(Layer):
    """
    Base class for layers that own learnable parameters.

    Setting ``trainable`` to False keeps the optimizer from updating them.
    """

    def __init__(self):
        super().__init__()
        self.trainable = True

    def get_params(self):
        """Mapping of parameter key to Param - to be implemented by subclasses"""
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'get_params'")

    @property
    def regularizers(self):
        return []


class InputLayer(Layer):
    """
    Entry point of a model; checks the shape of incoming data.

    Args:
        shape: Shape of one sample (int or sequence)
    """

    def __init__(self, shape):
        super().__init__()
        self.shape = (shape,) if isinstance(shape, (int, np.integer)) else tuple(shape)

    def call(self, input_tensor):
        if not isinstance(input_tensor, Tensor):
            input_tensor = Tensor(input_tensor)
        x = input_tensor.value
        if x.shape[1:] != self.shape:
            raise ShapeError(f"The shape of x does not match the input shape. "
                             f"Input shape is {self.shape}, but x shape is {x.shape[1:]}.")
        return super().call(input_tensor)

    __call__ = call

    def forward(self, x):
        return x

    def backward(self, dy):
        return dy

    def to_hash(self):
        return super().to_hash({'shape': list(self.shape)})


class Connection(HasParamLayer):
    """
    Base class of layers holding a weight and an optional bias.

    Args:
        weight_initializer: Initializer for the weight (default RandomNormal)
        bias_initializer: Initializer for the bias (default Zeros)
        weight_regularizer: Regularizer bound to the weight
        bias_regularizer: Regularizer bound to the bias
        use_bias: Whether to include a bias term
    """

    def __init__(self, weight_initializer=None, bias_initializer=None,
                 weight_regularizer=None, bias_regularizer=None, use_bias=True):
        super().__init__()
        self.weight_initializer = weight_initializer or RandomNormal()
        self.bias_initializer = bias_initializer or Zeros()
        if not isinstance(self.weight_initializer, Initializer):
            raise TypeError(f"weight_initializer: {type(weight_initializer).__name__} is not an Initializer.")
        if not isinstance(self.bias_initializer, Initializer):
            raise TypeError(f"bias_initializer: {type(bias_initializer).__name__} is not an Initializer.")
        self.weight_regularizer = weight_regularizer
        self.bias_regularizer = bias_regularizer
        self.use_bias = use_bias
        self.weight = Param()
        self.bias = Param() if use_bias else None
        if weight_regularizer is not None:
            self._bind_regularizer(weight_regularizer, self.weight)
        if bias_regularizer is not None:
            if not use_bias:
                raise DNNError("bias_regularizer requires use_bias=True.")
            self._bind_regularizer(bias_regularizer, self.bias)

    @staticmethod
    def _bind_regularizer(regularizer, param):
        if not isinstance(regularizer, Regularizer):
            raise TypeError(f"{type(regularizer).__name__} is not a Regularizer.")
        regularizer.param = param

    def get_params(self):
        params = {'weight': self.weight}
        if self.use_bias:
            params['bias'] = self.bias
        return params

    @property
    def regularizers(self):
        return [r for r in (self.weight_regularizer, self.bias_regularizer) if r is not None]

    def _init_params(self):
        self.weight_initializer.init_param(self, self.weight)
        if self.use_bias:
            self.bias_initializer.init_param(self, self.bias)

    def to_hash(self, merge_hash):
        hash = {
            'weight_initializer': self.weight_initializer.to_hash(),
            'bias_initializer': self.bias_initializer.to_hash(),
            'weight_regularizer': self.weight_regularizer.to_hash() if self.weight_regularizer else None,
            'bias_regularizer': self.bias_regularizer.to_hash() if self.bias_regularizer else None,
            'use_bias': self.use_bias,
        }
        hash.update(merge_hash)
        return super().to_hash(hash)

    def load_hash(self, hash):
        kwargs = utils.hash_kwargs(hash)
        kwargs['weight_initializer'] = Initializer.from_hash(kwargs['weight_initializer'])
        kwargs['bias_initializer'] = Initializer.from_hash(kwargs['bias_initializer'])
        kwargs['weight_regularizer'] = Regularizer.from_hash(kwargs['weight_regularizer'])
        kwargs['bias_regularizer'] = Regularizer.from_hash(kwargs['bias_regularizer'])
        self.__init__(**kwargs)


class Dense(Connection):
    """
    Fully connected layer: y = xW + b

    Args:
        num_nodes: Number of output features
        **kwargs: See Connection
    """

    def __init__(self, num_nodes, **kwargs):
        super().__init__(**kwargs)
        self.num_nodes = num_nodes
        self._x = None

    def _build(self, input_shape):
        if len(input_shape) != 1:
            raise ShapeError(f"Input shape is {input_shape}. But Dense input shape must be one dimensional.")
        num_prev_nodes = input_shape[0]
        self.weight.data = np.zeros((num_prev_nodes, self.num_nodes), dtype=np.float32)
        if self.use_bias:
            self.bias.data = np.zeros(self.num_nodes, dtype=np.float32)
        self._init_params()

    @property
    def fan_in(self):
        return self.input_shape[0]

    def forward(self, x):
        self._x = x
        y = x @ self.weight.data
        if self.use_bias:
            y = y + self.bias.data
        return y

    def backward(self, dy):
        self.weight.add_grad(self._x.T @ dy)
        if self.use_bias:
            self.bias.add_grad(dy.sum(axis=0))
        return dy @ self.weight.data.T

    @property
    def output_shape(self):
        return (self.num_nodes,)

    def to_hash(self):
        return super().to_hash({'num_nodes': self.num_nodes})


class Flatten(Layer):
    """Flatten all dimensions except the batch dimension"""

    def forward(self, x):
        self._x_shape = x.shape
        return x.reshape(x.shape[0], -1)

    def backward(self, dy):
        return dy.reshape(self._x_shape)

    @property
    def output_shape(self):
        return (int(np.prod(self.input_shape)),)


class Reshape(Layer):
    """
    Reshape each sample.

    Args:
        shape: Target shape of one sample
    """

    def __init__(self, shape):
        super().__init__()
        self.shape = tuple(shape)
        self._x_shape = None

    def _build(self, input_shape):
        if int(np.prod(input_shape)) != int(np.prod(self.shape)):
            raise ShapeError(f"Cannot reshape {input_shape} into {self.shape}.")

    def forward(self, x):
        self._x_shape = x.shape
        return x.reshape((x.shape[0],) + self.shape)

    def backward(self, dy):
        return dy.reshape(self._x_shape)

    @property
    def output_shape(self):
        return self.shape

    def to_hash(self):
        return super().to_hash({'shape': list(self.shape)})


class Dropout(Layer):
    """
    Dropout layer for regularization.

    One Bernoulli mask is drawn per training forward pass from a random
    stream seeded at construction.

    Args:
        dropout_ratio: Probability of dropping a unit
        seed: Seed of the mask stream
        use_scale: If True, inference scales by (1 - dropout_ratio); otherwise
            training scales kept units by 1 / (1 - dropout_ratio)
    """

    uses_learning_phase = True

    def __init__(self, dropout_ratio=0.5, seed=None, use_scale=True):
        super().__init__()
        self.dropout_ratio = dropout_ratio
        self.seed = seed
        self.use_scale = use_scale
        self._rng = np.random.default_rng(seed)
        self._mask = None

    def forward(self, x, training=False):
        if training:
            self._mask = self._rng.random(x.shape) < self.dropout_ratio
            y = np.where(self._mask, 0, x)
            if not self.use_scale:
                y = y / (1 - self.dropout_ratio)
            return y
        self._mask = None
        if self.use_scale:
            return x * (1 - self.dropout_ratio)
        return x

    def backward(self, dy):
        if self._mask is None:
            return dy * (1 - self.dropout_ratio) if self.use_scale else dy
        dx = np.where(self._mask, 0, dy)
        if not self.use_scale:
            dx = dx / (1 - self.dropout_ratio)
        return dx

    def to_hash(self):
        return super().to_hash({'dropout_ratio': self.dropout_ratio, 'seed': self.seed,
                                'use_scale': self.use_scale})


class BatchNormalization(HasParamLayer):
    """
    Batch normalization over the batch axis.

    Training passes normalize with the batch statistics and fold them into
    the running estimates; inference passes use the running estimates.

    Args:
        momentum: Weight of the old running statistics in the moving average
        eps: Small constant for numerical stability
    """

    uses_learning_phase = True

    def __init__(self, momentum=0.9, eps=1e-7):
        super().__init__()
        self.momentum = momentum
        self.eps = eps
        self.gamma = Param()
        self.beta = Param()
        self.running_mean = Param()
        self.running_var = Param()

    def _build(self, input_shape):
        self.gamma.data = np.ones(input_shape, dtype=np.float32)
        self.beta.data = np.zeros(input_shape, dtype=np.float32)
        self.running_mean.data = np.zeros(input_shape, dtype=np.float32)
        self.running_var.data = np.ones(input_shape, dtype=np.float32)

    def get_params(self):
        return {'gamma': self.gamma, 'beta': self.beta,
                'running_mean': self.running_mean, 'running_var': self.running_var}

    def forward(self, x, training=False):
        if training:
            mean = x.mean(axis=0)
            self._xc = x - mean
            var = (self._xc ** 2).mean(axis=0)
            self._std = np.sqrt(var + self.eps)
            xn = self._xc / self._std
            self._xn = xn
            m = self.momentum
            self.running_mean.data = (m * self.running_mean.data + (1 - m) * mean).astype(self.running_mean.data.dtype)
            self.running_var.data = (m * self.running_var.data + (1 - m) * var).astype(self.running_var.data.dtype)
        else:
            xc = x - self.running_mean.data
            xn = xc / np.sqrt(self.running_var.data + self.eps)
        return self.gamma.data * xn + self.beta.data

    def backward(self, dy):
        batch_size = dy.shape[0]
        self.beta.add_grad(dy.sum(axis=0))
        self.gamma.add_grad((self._xn * dy).sum(axis=0))
        dxn = self.gamma.data * dy
        dxc = dxn / self._std
        dstd = -((dxn * self._xc) / (self._std ** 2)).sum(axis=0)
        dvar = 0.5 * dstd / self._std
        dxc = dxc + (2.0 / batch_size) * self._xc * dvar
        dmean = dxc.sum(axis=0)
        return dxc - dmean / batch_size

    def to_hash(self):
        return super().to_hash({'momentum': self.momentum, 'eps': self.eps})
