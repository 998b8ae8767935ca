import numpy as np
import pytest

from mini_dnn import functional as F


def test_sigmoid_is_stable():
    y = F.sigmoid(np.array([-1000.0, 0.0, 1000.0]))
    np.testing.assert_allclose(y, [0.0, 0.5, 1.0])
    assert np.isfinite(y).all()


def test_softmax_rows_sum_to_one():
    y = F.softmax(np.array([[1000.0, 1000.0], [0.0, np.log(3.0)]]))
    np.testing.assert_allclose(y, [[0.5, 0.5], [0.25, 0.75]])


def test_softplus():
    np.testing.assert_allclose(F.softplus(np.array([0.0, 800.0])), [np.log(2.0), 800.0])


def test_same_padding_size():
    assert F.same_padding_size(5, 5, 3, 3, (1, 1)) == (2, 2)
    assert F.same_padding_size(4, 6, 2, 3, (2, 1)) == (4, 2)


def test_padding_round_trip(rng):
    img = rng.standard_normal((2, 3, 4, 2))
    padded = F.zero_padding(img, (3, 2))
    assert padded.shape == (2, 6, 6, 2)
    assert not padded[:, 0].any()
    assert not padded[:, -2:].any()
    np.testing.assert_array_equal(F.strip_padding(padded, (3, 2)), img)


@pytest.mark.parametrize('strides', [(1, 1), (2, 1), (2, 2)])
def test_col2im_is_adjoint_of_im2col(rng, strides):
    img = rng.standard_normal((2, 6, 5, 3))
    out_h, out_w = F.out_size(6, 5, 3, 2, strides)
    col = F.im2col(img, out_h, out_w, 3, 2, strides)
    assert col.shape == (2 * out_h * out_w, 3 * 2 * 3)
    other = rng.standard_normal(col.shape)
    back = F.col2im(other, img.shape, out_h, out_w, 3, 2, strides)
    assert (col * other).sum() == pytest.approx((img * back).sum())


def test_im2col_rows_hold_receptive_fields(rng):
    img = rng.standard_normal((1, 4, 4, 2))
    col = F.im2col(img, 2, 2, 2, 2, (2, 2))
    np.testing.assert_array_equal(col[1], img[0, 0:2, 2:4, :].ravel())
