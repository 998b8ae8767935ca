"""
Saving and loading trained models.

A saved record holds the model's architecture hash (when it has one), its
input shape, every named parameter array, the loss hash and optionally the
optimizer hash with its per-parameter status. Parameters are matched back
by name, so a record can be loaded into any model that builds the same
names.
"""
import base64
import json
import logging
import pickle
import zlib

import numpy as np

from .errors import DNNError, ShapeError
from .losses import Loss
from .optim import Optimizer

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class Saver:
    """
    Base class of savers.

    Args:
        model: Built model to save
        include_optimizer: Also store the optimizer and its status
    """

    def __init__(self, model, include_optimizer=True):
        self.model = model
        self.include_optimizer = include_optimizer

    def save(self, file_name):
        bin = self.dump_bin()
        with open(file_name, 'wb') as f:
            f.write(bin)
        logger.info("saved %s to %s", type(self.model).__name__, file_name)

    def dump_bin(self):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'dump_bin'")

    def get_all_params_data(self):
        return {param.name: param.data
                for layer in self.model.has_param_layers
                for param in layer.get_params().values()}

    def to_record(self):
        model = self.model
        if not model.built:
            raise DNNError("This model is not built. Run a forward pass before saving.")
        record = {
            'version': FORMAT_VERSION,
            'class': type(model).__name__,
            'hash': model.to_hash(),
            'input_shape': list(model.input_shape),
            'params': self.get_all_params_data(),
            'loss': model.loss_func.to_hash() if model.loss_func is not None else None,
            'optimizer': None,
        }
        if self.include_optimizer and model.optimizer is not None:
            record['optimizer'] = model.optimizer.dump()
        return record


class Loader:
    """
    Base class of loaders.

    Args:
        model: Model to load into. An empty Sequential is rebuilt from the
            saved architecture.
    """

    def __init__(self, model):
        self.model = model

    def load(self, file_name):
        with open(file_name, 'rb') as f:
            bin = f.read()
        self.load_bin(bin)
        logger.info("loaded %s from %s", type(self.model).__name__, file_name)

    def load_bin(self, bin):
        raise NotImplementedError(f"Class '{type(self).__name__}' has to implement method 'load_bin'")

    def set_all_params_data(self, params_data):
        all_params = {param.name: param
                      for layer in self.model.has_param_layers
                      for param in layer.get_params().values()}
        for name, data in params_data.items():
            if name not in all_params:
                raise DNNError(f"The model has no parameter named '{name}'.")
            param = all_params[name]
            data = np.asarray(data)
            if param.shape != data.shape:
                raise ShapeError(f"Parameter '{name}' has shape {param.shape}, but the saved data has shape "
                                 f"{data.shape}.")
            param.data = data.copy()

    def from_record(self, record):
        if record.get('version') != FORMAT_VERSION:
            raise DNNError(f"Unsupported save format version {record.get('version')}.")
        model = self.model
        if getattr(model, 'stack', None) == [] and record.get('hash') is not None:
            model.load_hash(record['hash'])
        if record.get('optimizer') is not None:
            model.setup(Optimizer.load(record['optimizer']), Loss.from_hash(record['loss']))
        elif record.get('loss') is not None and model.loss_func is None:
            model.loss_func = Loss.from_hash(record['loss'])
        if not model.built:
            model.build(tuple(record['input_shape']))
        self.set_all_params_data(record['params'])


class PickleSaver(Saver):
    """Binary form: the record pickled and zlib-compressed."""

    def dump_bin(self):
        return zlib.compress(pickle.dumps(self.to_record(), protocol=pickle.HIGHEST_PROTOCOL))


class PickleLoader(Loader):
    def load_bin(self, bin):
        self.from_record(pickle.loads(zlib.decompress(bin)))


def _encode_ndarray(obj):
    if isinstance(obj, np.ndarray):
        return {'__ndarray__': base64.b64encode(np.ascontiguousarray(obj).tobytes()).decode('ascii'),
                'dtype': obj.dtype.str,
                'shape': list(obj.shape)}
    if isinstance(obj, np.generic):
        return obj.item()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _decode_ndarray(dct):
    if '__ndarray__' in dct:
        data = base64.b64decode(dct['__ndarray__'])
        return np.frombuffer(data, dtype=np.dtype(dct['dtype'])).reshape(dct['shape']).copy()
    return dct


class JSONSaver(Saver):
    """Text form: JSON with arrays stored as base64 blobs."""

    def dump_bin(self):
        return json.dumps(self.to_record(), default=_encode_ndarray).encode('utf-8')


class JSONLoader(Loader):
    def load_bin(self, bin):
        if isinstance(bin, bytes):
            bin = bin.decode('utf-8')
        self.from_record(json.loads(bin, object_hook=_decode_ndarray))
