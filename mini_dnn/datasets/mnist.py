"""
MNIST handwritten digits.

The gzip IDX files are downloaded once into ``$MINI_DNN_DATA_DIR/mnist``
(default ``~/.mini_dnn/datasets/mnist``) and decoded into uint8 arrays.
"""
import gzip
import logging
import os
import struct
import urllib.request

import numpy as np

from ..errors import DNNError

logger = logging.getLogger(__name__)

URL_BASE = "https://ossci-datasets.s3.amazonaws.com/mnist/"

TRAIN_IMAGES_FILE_NAME = "train-images-idx3-ubyte.gz"
TRAIN_LABELS_FILE_NAME = "train-labels-idx1-ubyte.gz"
TEST_IMAGES_FILE_NAME = "t10k-images-idx3-ubyte.gz"
TEST_LABELS_FILE_NAME = "t10k-labels-idx1-ubyte.gz"

IMAGES_MAGIC = 2051
LABELS_MAGIC = 2049


class MNISTLoadError(DNNError):
    """An MNIST file is missing or is not a valid IDX file."""


def mnist_dir():
    data_dir = os.environ.get('MINI_DNN_DATA_DIR', os.path.join(os.path.expanduser('~'), '.mini_dnn', 'datasets'))
    return os.path.join(data_dir, 'mnist')


def get_file_path(file_name):
    return os.path.join(mnist_dir(), file_name)


def downloads():
    """Fetch every MNIST file that is not cached yet."""
    os.makedirs(mnist_dir(), exist_ok=True)
    for file_name in (TRAIN_IMAGES_FILE_NAME, TRAIN_LABELS_FILE_NAME,
                      TEST_IMAGES_FILE_NAME, TEST_LABELS_FILE_NAME):
        file_path = get_file_path(file_name)
        if os.path.exists(file_path):
            continue
        url = URL_BASE + file_name
        logger.info("downloading %s", url)
        # only complete files land at file_path
        tmp_path = file_path + '.part'
        urllib.request.urlretrieve(url, tmp_path)
        os.replace(tmp_path, file_path)


def load_train():
    """Return (images, labels) of the 60000 training samples."""
    downloads()
    return _load(TRAIN_IMAGES_FILE_NAME, TRAIN_LABELS_FILE_NAME)


def load_test():
    """Return (images, labels) of the 10000 test samples."""
    downloads()
    return _load(TEST_IMAGES_FILE_NAME, TEST_LABELS_FILE_NAME)


def _load(images_file_name, labels_file_name):
    images_file_path = get_file_path(images_file_name)
    labels_file_path = get_file_path(labels_file_name)
    for file_path in (images_file_path, labels_file_path):
        if not os.path.exists(file_path):
            raise MNISTLoadError(f'file "{file_path}" is not found.')
    images = load_images(images_file_path)
    labels = load_labels(labels_file_path)
    if images.shape[0] != labels.shape[0]:
        raise MNISTLoadError(f"{images.shape[0]} images but {labels.shape[0]} labels.")
    return images, labels


def load_images(file_path):
    """Decode an IDX image file into an array of shape (n, rows, cols, 1)."""
    with gzip.open(file_path, 'rb') as f:
        magic, num_images = struct.unpack('>II', f.read(8))
        if magic != IMAGES_MAGIC:
            raise MNISTLoadError(f'"{file_path}" has magic number {magic}, expected {IMAGES_MAGIC}.')
        rows, cols = struct.unpack('>II', f.read(8))
        data = f.read()
    if len(data) != num_images * rows * cols:
        raise MNISTLoadError(f'"{file_path}" is truncated.')
    return np.frombuffer(data, dtype=np.uint8).reshape(num_images, rows, cols, 1)


def load_labels(file_path):
    """Decode an IDX label file into an array of shape (n,)."""
    with gzip.open(file_path, 'rb') as f:
        magic, num_labels = struct.unpack('>II', f.read(8))
        if magic != LABELS_MAGIC:
            raise MNISTLoadError(f'"{file_path}" has magic number {magic}, expected {LABELS_MAGIC}.')
        data = f.read()
    if len(data) != num_labels:
        raise MNISTLoadError(f'"{file_path}" is truncated.')
    return np.frombuffer(data, dtype=np.uint8)
