"""
Convolution and pooling layers for channels-last images
(batch, height, width, channels).

Convolution and pooling use the im2col method: the input is tiled into
receptive-field rows so each layer reduces to one matrix operation, and
col2im sums the overlapping gradient contributions back on backward.
"""
import numpy as np

from .layers import Connection, Layer
from .errors import ShapeError
from . import functional as F


def _check_image_shape(layer, input_shape):
    if len(input_shape) != 3:
        raise ShapeError(f"Input shape is {input_shape}. But {type(layer).__name__} input shape "
                         f"must be (height, width, channels).")


class Conv2D(Connection):
    """
    2D convolution layer.

    Args:
        num_filters: Number of output channels
        filter_size: Size of the convolution kernel (int or (h, w))
        strides: Stride of the convolution (int or (h, w))
        padding: If True, pad so the output keeps the input's spatial size
        **kwargs: See Connection
    """

    def __init__(self, num_filters, filter_size, strides=1, padding=False, **kwargs):
        super().__init__(**kwargs)
        self.num_filters = num_filters
        self.filter_size = F.to_pair(filter_size)
        self.strides = F.to_pair(strides)
        self.padding = padding

    def _build(self, input_shape):
        _check_image_shape(self, input_shape)
        prev_h, prev_w, num_prev_filters = input_shape
        fil_h, fil_w = self.filter_size
        if self.padding:
            self._pad = F.same_padding_size(prev_h, prev_w, fil_h, fil_w, self.strides)
            self._out_size = (prev_h, prev_w)
        else:
            self._pad = (0, 0)
            self._out_size = F.out_size(prev_h, prev_w, fil_h, fil_w, self.strides)
        if min(self._out_size) < 1:
            raise ShapeError(f"Filter {self.filter_size} does not fit input shape {input_shape}.")
        self.weight.data = np.zeros((fil_h * fil_w * num_prev_filters, self.num_filters), dtype=np.float32)
        if self.use_bias:
            self.bias.data = np.zeros(self.num_filters, dtype=np.float32)
        self._init_params()

    @property
    def fan_in(self):
        return self.weight.data.shape[0]

    def forward(self, x):
        if self.padding:
            x = F.zero_padding(x, self._pad)
        self._x_shape = x.shape
        self._col = F.im2col(x, *self._out_size, *self.filter_size, self.strides)
        y = self._col @ self.weight.data
        if self.use_bias:
            y = y + self.bias.data
        return y.reshape(x.shape[0], *self._out_size, self.num_filters)

    def backward(self, dy):
        dy = dy.reshape(-1, self.num_filters)
        self.weight.add_grad(self._col.T @ dy)
        if self.use_bias:
            self.bias.add_grad(dy.sum(axis=0))
        dcol = dy @ self.weight.data.T
        dx = F.col2im(dcol, self._x_shape, *self._out_size, *self.filter_size, self.strides)
        return F.strip_padding(dx, self._pad) if self.padding else dx

    @property
    def output_shape(self):
        return (*self._out_size, self.num_filters)

    def to_hash(self):
        return super().to_hash({'num_filters': self.num_filters,
                                'filter_size': list(self.filter_size),
                                'strides': list(self.strides),
                                'padding': self.padding})


class Pool2D(Layer):
    """
    Base class of 2D pooling layers.

    Args:
        pool_size: Size of the pooling window (int or (h, w))
        strides: Stride of the window (default: same as pool_size)
        padding: If True, pad so the output keeps the input's spatial size
    """

    def __init__(self, pool_size, strides=None, padding=False):
        super().__init__()
        self.pool_size = F.to_pair(pool_size)
        self.strides = F.to_pair(strides) if strides is not None else self.pool_size
        self.padding = padding

    def _build(self, input_shape):
        _check_image_shape(self, input_shape)
        prev_h, prev_w, self._num_channels = input_shape
        if self.padding:
            self._pad = F.same_padding_size(prev_h, prev_w, *self.pool_size, self.strides)
            self._out_size = (prev_h, prev_w)
        else:
            self._pad = (0, 0)
            self._out_size = F.out_size(prev_h, prev_w, *self.pool_size, self.strides)
        if min(self._out_size) < 1:
            raise ShapeError(f"Pool size {self.pool_size} does not fit input shape {input_shape}.")

    def forward(self, x):
        """Return one row per (sample, output pixel, channel) holding its window."""
        if self.padding:
            x = F.zero_padding(x, self._pad)
        self._x_shape = x.shape
        col = F.im2col(x, *self._out_size, *self.pool_size, self.strides)
        pool_area = self.pool_size[0] * self.pool_size[1]
        col = col.reshape(-1, pool_area, self._num_channels).transpose(0, 2, 1)
        return col.reshape(-1, pool_area)

    def backward(self, dcol):
        pool_area = self.pool_size[0] * self.pool_size[1]
        dcol = dcol.reshape(-1, self._num_channels, pool_area).transpose(0, 2, 1)
        dcol = dcol.reshape(-1, pool_area * self._num_channels)
        dx = F.col2im(dcol, self._x_shape, *self._out_size, *self.pool_size, self.strides)
        return F.strip_padding(dx, self._pad) if self.padding else dx

    @property
    def output_shape(self):
        return (*self._out_size, self._num_channels)

    def to_hash(self):
        return super().to_hash({'pool_size': list(self.pool_size),
                                'strides': list(self.strides),
                                'padding': self.padding})


class MaxPool2D(Pool2D):
    """2D max pooling layer."""

    def forward(self, x):
        col = super().forward(x)
        self._max_index = col.argmax(axis=1)
        return col.max(axis=1).reshape(x.shape[0], *self._out_size, self._num_channels)

    def backward(self, dy):
        pool_area = self.pool_size[0] * self.pool_size[1]
        dmax = np.zeros((dy.size, pool_area), dtype=dy.dtype)
        dmax[np.arange(dy.size), self._max_index] = dy.ravel()
        return super().backward(dmax)


class AvgPool2D(Pool2D):
    """2D average pooling layer."""

    def forward(self, x):
        col = super().forward(x)
        return col.mean(axis=1).reshape(x.shape[0], *self._out_size, self._num_channels)

    def backward(self, dy):
        pool_area = self.pool_size[0] * self.pool_size[1]
        davg = np.repeat(dy.reshape(-1, 1) / pool_area, pool_area, axis=1)
        return super().backward(davg)


class UnPool2D(Layer):
    """
    Spread each pixel over an unpool_size block, top-left corner only.

    Args:
        unpool_size: Upscaling factor (int or (h, w))
    """

    def __init__(self, unpool_size):
        super().__init__()
        self.unpool_size = F.to_pair(unpool_size)

    def _build(self, input_shape):
        _check_image_shape(self, input_shape)
        prev_h, prev_w, self._num_channels = input_shape
        unpool_h, unpool_w = self.unpool_size
        self._out_size = (prev_h * unpool_h, prev_w * unpool_w)

    def forward(self, x):
        batch_size, h, w, channels = x.shape
        unpool_h, unpool_w = self.unpool_size
        x2 = np.zeros((batch_size, h, unpool_h, w, unpool_w, channels), dtype=x.dtype)
        x2[:, :, 0, :, 0, :] = x
        return x2.reshape(batch_size, *self._out_size, channels)

    def backward(self, dy):
        _, h, w, channels = (dy.shape[0],) + self.input_shape
        unpool_h, unpool_w = self.unpool_size
        dy = dy.reshape(dy.shape[0], h, unpool_h, w, unpool_w, channels)
        return dy[:, :, 0, :, 0, :].copy()

    @property
    def output_shape(self):
        return (*self._out_size, self._num_channels)

    def to_hash(self):
        return super().to_hash({'unpool_size': list(self.unpool_size)})
