import numpy as np

from mini_dnn.iterator import Iterator


def sequence(n):
    return np.arange(n, dtype=np.float32).reshape(n, 1)


def test_next_batch_wraps_remainder():
    x = sequence(10)
    iterator = Iterator(x, x, random=False)
    x_batch, y_batch = iterator.next_batch(7)
    np.testing.assert_array_equal(x_batch.ravel(), np.arange(7))
    x_batch, y_batch = iterator.next_batch(7)
    np.testing.assert_array_equal(x_batch.ravel(), [7, 8, 9])
    assert y_batch.shape == (3, 1)
    x_batch, _ = iterator.next_batch(7)
    np.testing.assert_array_equal(x_batch.ravel(), np.arange(7))


def test_random_batches_shape():
    iterator = Iterator(np.zeros((10, 10)), np.zeros((10, 10)))
    iterator.next_batch(7)
    x_batch, y_batch = iterator.next_batch(7)
    assert x_batch.shape == (3, 10)
    assert y_batch.shape == (3, 10)


def test_random_round_covers_every_sample():
    x = sequence(10)
    iterator = Iterator(x, x * 2, seed=0)
    seen = []
    for x_batch, y_batch, _ in iterator.foreach(4):
        np.testing.assert_array_equal(y_batch, x_batch * 2)
        seen.extend(x_batch.ravel())
    assert sorted(seen) == list(range(10))


def test_seeded_shuffle_is_reproducible():
    x = sequence(20)
    first = Iterator(x, x, seed=3).next_batch(5)[0]
    second = Iterator(x, x, seed=3).next_batch(5)[0]
    np.testing.assert_array_equal(first, second)


def test_list_datas():
    x = sequence(10)
    iterator = Iterator([x, x], [x, x], random=False)
    x_batch, y_batch = iterator.next_batch(3)
    np.testing.assert_array_equal(x_batch[0].ravel(), [0, 1, 2])
    np.testing.assert_array_equal(y_batch[1].ravel(), [0, 1, 2])


def test_foreach_steps():
    x = sequence(10)
    iterator = Iterator(x, x, random=False)
    indexes = [index for _, _, index in iterator.foreach(3)]
    assert indexes == [0, 1, 2, 3]
    round_down = Iterator(x, x, random=False, last_round_down=True)
    assert len(list(round_down.foreach(3))) == 3


def test_foreach_resets_afterwards():
    x = sequence(10)
    iterator = Iterator(x, x, random=False, last_round_down=True)
    list(iterator.foreach(3))
    x_batch, _ = iterator.next_batch(3)
    np.testing.assert_array_equal(x_batch.ravel(), [0, 1, 2])


def test_reset():
    x = sequence(5)
    iterator = Iterator(x, x, random=False)
    iterator.next_batch(2)
    iterator.reset()
    np.testing.assert_array_equal(iterator.next_batch(2)[0].ravel(), [0, 1])
