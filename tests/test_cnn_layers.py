import numpy as np
import pytest

from mini_dnn.cnn_layers import AvgPool2D, Conv2D, MaxPool2D, UnPool2D
from mini_dnn.errors import ShapeError
from mini_dnn.layers import Layer
from mini_dnn.utils import numerical_grad


def naive_conv(x, weight, bias, strides):
    fil_h, fil_w, _, num_filters = weight.shape
    batch_size, in_h, in_w, _ = x.shape
    out_h = (in_h - fil_h) // strides + 1
    out_w = (in_w - fil_w) // strides + 1
    y = np.zeros((batch_size, out_h, out_w, num_filters))
    for i in range(out_h):
        for j in range(out_w):
            patch = x[:, i * strides:i * strides + fil_h, j * strides:j * strides + fil_w, :]
            y[:, i, j, :] = np.tensordot(patch, weight, axes=([1, 2, 3], [0, 1, 2])) + bias
    return y


def float64_conv(x, *args, **kwargs):
    conv = Conv2D(*args, **kwargs)
    conv.build(x.shape[1:])
    conv.weight.data = conv.weight.data.astype(np.float64)
    conv.bias.data = np.linspace(-0.1, 0.1, conv.num_filters)
    return conv


@pytest.mark.parametrize('strides', [1, 2])
def test_conv2d_matches_naive_convolution(rng, strides):
    x = rng.standard_normal((2, 5, 5, 3))
    conv = float64_conv(x, 4, 3, strides=strides)
    y = conv.forward(x)
    weight = conv.weight.data.reshape(3, 3, 3, 4)
    np.testing.assert_allclose(y, naive_conv(x, weight, conv.bias.data, strides), rtol=1e-10, atol=1e-12)


def test_conv2d_output_shape():
    x = np.zeros((2, 6, 7, 3))
    conv = Conv2D(4, (3, 2))
    assert conv(x).shape == (2, 4, 6, 4)
    assert conv.output_shape == (4, 6, 4)
    padded = Conv2D(5, 3, padding=True)
    assert padded(x).shape == (2, 6, 7, 5)
    assert padded.output_shape == (6, 7, 5)
    strided = Conv2D(2, 3, strides=2, padding=True)
    assert strided(x).shape == (2, 6, 7, 2)


def test_conv2d_rejects_flat_input():
    with pytest.raises(ShapeError):
        Conv2D(2, 3)(np.zeros((2, 10)))
    with pytest.raises(ShapeError):
        Conv2D(2, 5)(np.zeros((1, 3, 3, 1)))


@pytest.mark.parametrize('padding', [False, True])
def test_conv2d_input_grad(rng, padding):
    x = rng.standard_normal((2, 4, 4, 2))
    conv = float64_conv(x, 3, 3, padding=padding)
    y = conv.forward(x)
    dy = rng.standard_normal(y.shape)
    dx = conv.backward(dy)
    np.testing.assert_allclose(dx, numerical_grad(x, conv.forward, dy), rtol=1e-4, atol=1e-6)


def test_conv2d_weight_grad(rng):
    x = rng.standard_normal((2, 4, 4, 2))
    conv = float64_conv(x, 2, 2, strides=2)
    y = conv.forward(x)
    dy = rng.standard_normal(y.shape)
    conv.backward(dy)
    weight_grad = conv.weight.grad.copy()

    def forward_with_weight(w):
        conv.weight.data = w
        return conv.forward(x)

    expected = numerical_grad(conv.weight.data.copy(), forward_with_weight, dy)
    np.testing.assert_allclose(weight_grad, expected, rtol=1e-4, atol=1e-6)


def test_conv2d_fan_in():
    conv = Conv2D(8, 3)
    conv.build((5, 5, 4))
    assert conv.fan_in == 36


def test_max_pool(rng):
    x = rng.standard_normal((2, 4, 4, 3))
    pool = MaxPool2D(2)
    y = pool(x).value
    expected = x.reshape(2, 2, 2, 2, 2, 3).max(axis=(2, 4))
    np.testing.assert_array_equal(y, expected)
    assert pool.output_shape == (2, 2, 3)


def test_avg_pool(rng):
    x = rng.standard_normal((2, 4, 6, 3))
    pool = AvgPool2D(2)
    y = pool(x).value
    expected = x.reshape(2, 2, 2, 3, 2, 3).mean(axis=(2, 4))
    np.testing.assert_allclose(y, expected)


def test_max_pool_routes_gradient_to_max(rng):
    x = rng.standard_normal((1, 4, 4, 2))
    pool = MaxPool2D(2)
    pool.forward(x)
    dx = pool.backward(np.ones((1, 2, 2, 2)))
    assert dx.shape == x.shape
    assert np.count_nonzero(dx) == 8
    windows = x.reshape(1, 2, 2, 2, 2, 2)
    is_max = windows == windows.max(axis=(2, 4), keepdims=True)
    np.testing.assert_array_equal(dx.reshape(windows.shape) != 0, is_max)


@pytest.mark.parametrize('cls', [MaxPool2D, AvgPool2D])
@pytest.mark.parametrize('padding', [False, True])
def test_pool_input_grad(rng, cls, padding):
    x = rng.standard_normal((2, 5, 5, 2))
    pool = cls(2, strides=1, padding=padding)
    y = pool(x).value
    dy = rng.standard_normal(y.shape)
    dx = pool.backward(dy)
    np.testing.assert_allclose(dx, numerical_grad(x, pool.forward, dy), rtol=1e-4, atol=1e-6)


def test_pool_same_padding_keeps_size():
    pool = MaxPool2D(2, padding=True)
    assert pool(np.zeros((1, 3, 3, 1))).shape == (1, 3, 3, 1)
    assert pool.output_shape == (3, 3, 1)


def test_unpool(rng):
    x = rng.standard_normal((2, 2, 3, 1))
    unpool = UnPool2D(2)
    y = unpool(x).value
    assert y.shape == (2, 4, 6, 1)
    assert unpool.output_shape == (4, 6, 1)
    np.testing.assert_array_equal(y[:, ::2, ::2, :], x)
    assert np.count_nonzero(y) == np.count_nonzero(x)
    dy = rng.standard_normal(y.shape)
    np.testing.assert_array_equal(unpool.backward(dy), dy[:, ::2, ::2, :])


def test_cnn_hash_round_trip():
    conv = Conv2D(4, (3, 2), strides=2, padding=True)
    restored = Layer.from_hash(conv.to_hash())
    assert restored.filter_size == (3, 2)
    assert restored.strides == (2, 2)
    assert restored.padding
    pool = Layer.from_hash(MaxPool2D(3, strides=1).to_hash())
    assert isinstance(pool, MaxPool2D)
    assert pool.pool_size == (3, 3)
    assert pool.strides == (1, 1)
