"""
Mini-batch cursor over paired x/y datasets.
"""
import math

import numpy as np


class Iterator:
    """
    Hands out mini-batches of (x, y), reshuffling each round when random.

    Args:
        x_datas: Input array, or list of input arrays sharing the first axis
        y_datas: Target array, or list of target arrays sharing the first axis
        random: Visit samples in a shuffled order
        last_round_down: Make foreach skip the final partial batch
        seed: Seed of the shuffling stream
    """

    def __init__(self, x_datas, y_datas, random=True, last_round_down=False, seed=None):
        self.x_datas = x_datas
        self.y_datas = y_datas
        self.random = random
        self.last_round_down = last_round_down
        first = x_datas[0] if isinstance(x_datas, (list, tuple)) else x_datas
        self.num_datas = first.shape[0]
        self._rng = np.random.default_rng(seed)
        self.reset()

    def reset(self):
        """Start a new round over all samples."""
        self._indexes = np.arange(self.num_datas)
        if self.random:
            self._rng.shuffle(self._indexes)

    @staticmethod
    def _take(datas, indexes):
        if isinstance(datas, (list, tuple)):
            return [data[indexes] for data in datas]
        return datas[indexes]

    def next_batch(self, batch_size):
        """
        Return the next (x_batch, y_batch).

        When the remaining samples fit in one batch they are all returned
        and the iterator starts a new round.
        """
        if len(self._indexes) <= batch_size:
            batch_indexes = self._indexes
            self.reset()
        else:
            batch_indexes = self._indexes[:batch_size]
            self._indexes = self._indexes[batch_size:]
        return self._take(self.x_datas, batch_indexes), self._take(self.y_datas, batch_indexes)

    def num_steps(self, batch_size):
        if self.last_round_down:
            return self.num_datas // batch_size
        return math.ceil(self.num_datas / batch_size)

    def foreach(self, batch_size):
        """Yield (x_batch, y_batch, index) for one round, then reset."""
        for index in range(self.num_steps(batch_size)):
            x_batch, y_batch = self.next_batch(batch_size)
            yield x_batch, y_batch, index
        self.reset()
