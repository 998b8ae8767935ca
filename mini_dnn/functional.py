"""
Stateless numpy helpers shared by layers and losses: activations and the
image/column transforms used by convolution and pooling.

Images are channels-last: (batch, height, width, channels).
"""
import numpy as np


# ============================================================================
# Activation Functions
# ============================================================================

def sigmoid(x):
    """Sigmoid activation: 1 / (1 + exp(-x))"""
    # For numerical stability
    e = np.exp(-np.abs(x))
    return np.where(x >= 0, 1 / (1 + e), e / (1 + e))


def softmax(x, axis=1):
    """
    Softmax along the given axis.
    Numerically stable implementation.
    """
    exp_values = np.exp(x - x.max(axis=axis, keepdims=True))
    return exp_values / exp_values.sum(axis=axis, keepdims=True)


def softplus(x):
    """Softplus activation: log(1 + exp(x))"""
    return np.logaddexp(0, x)


# ============================================================================
# Convolution helpers
# ============================================================================

def to_pair(value):
    """Accept an int or a 2-sequence and return a (height, width) tuple."""
    if isinstance(value, (int, np.integer)):
        return (int(value), int(value))
    return tuple(int(v) for v in value)


def out_size(in_h, in_w, fil_h, fil_w, strides):
    """Spatial output size of a valid (unpadded) sliding window."""
    out_h = (in_h - fil_h) // strides[0] + 1
    out_w = (in_w - fil_w) // strides[1] + 1
    return out_h, out_w


def same_padding_size(in_h, in_w, fil_h, fil_w, strides):
    """Total padding per axis that makes the output as large as the input."""
    pad_h = (in_h - 1) * strides[0] + fil_h - in_h
    pad_w = (in_w - 1) * strides[1] + fil_w - in_w
    return pad_h, pad_w


def zero_padding(img, pad):
    """Pad height and width with zeros; the extra odd pixel goes after."""
    pad_h, pad_w = pad
    return np.pad(img, ((0, 0),
                        (pad_h // 2, pad_h - pad_h // 2),
                        (pad_w // 2, pad_w - pad_w // 2),
                        (0, 0)), mode='constant')


def strip_padding(img, pad):
    """Inverse of zero_padding: slice the original area back out."""
    pad_h, pad_w = pad
    h = img.shape[1] - pad_h
    w = img.shape[2] - pad_w
    return img[:, pad_h // 2:pad_h // 2 + h, pad_w // 2:pad_w // 2 + w, :]


def im2col(img, out_h, out_w, fil_h, fil_w, strides):
    """
    Tile img into receptive-field rows.

    Returns:
        Array of shape (batch * out_h * out_w, fil_h * fil_w * channels)
    """
    batch_size, _, _, channels = img.shape
    s_h, s_w = strides
    col = np.zeros((batch_size, fil_h, fil_w, out_h, out_w, channels), dtype=img.dtype)
    for i in range(fil_h):
        i_end = i + s_h * out_h
        for j in range(fil_w):
            j_end = j + s_w * out_w
            col[:, i, j] = img[:, i:i_end:s_h, j:j_end:s_w, :]
    col = col.transpose(0, 3, 4, 1, 2, 5)
    return col.reshape(batch_size * out_h * out_w, fil_h * fil_w * channels)


def col2im(col, img_shape, out_h, out_w, fil_h, fil_w, strides):
    """Inverse of im2col; overlapping contributions are summed."""
    batch_size, img_h, img_w, channels = img_shape
    s_h, s_w = strides
    col = col.reshape(batch_size, out_h, out_w, fil_h, fil_w, channels)
    col = col.transpose(0, 3, 4, 1, 2, 5)
    img = np.zeros((batch_size, img_h, img_w, channels), dtype=col.dtype)
    for i in range(fil_h):
        i_end = i + s_h * out_h
        for j in range(fil_w):
            j_end = j + s_w * out_w
            img[:, i:i_end:s_h, j:j_end:s_w, :] += col[:, i, j]
    return img
