"""
mini_dnn: A small Keras-like neural network library.

Layers run their forward pass eagerly while recording a graph of links;
models walk that graph backward to accumulate parameter gradients, and
optimizers consume them. Built from scratch on NumPy.
"""

from .errors import DNNError, ShapeError, ConfigurationError, UnknownEventError, UnknownTypeError
from .tensor import Param, Tensor, Graph
from . import functional as F
from . import initializers
from . import regularizers
from . import layers
from . import activations
from . import cnn_layers
from . import merge_layers
from . import losses
from . import optim
from . import schedulers
from . import savers
from .iterator import Iterator
from .models import Model, Sequential
from .utils import to_categorical

__version__ = '0.1.0'
__all__ = [
    'DNNError', 'ShapeError', 'ConfigurationError', 'UnknownEventError', 'UnknownTypeError',
    'Param', 'Tensor', 'Graph', 'F',
    'initializers', 'regularizers', 'layers', 'activations', 'cnn_layers', 'merge_layers',
    'losses', 'optim', 'schedulers', 'savers',
    'Iterator', 'Model', 'Sequential', 'to_categorical',
]
