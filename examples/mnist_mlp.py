"""
Train a multi-layer perceptron on MNIST.

    python examples/mnist_mlp.py --epochs 5 --batch-size 128 --save mnist_mlp.bin
"""
import argparse
import logging

import numpy as np

from mini_dnn import Sequential, to_categorical
from mini_dnn.activations import ReLU
from mini_dnn.datasets import mnist
from mini_dnn.initializers import He
from mini_dnn.layers import BatchNormalization, Dense, Dropout, Flatten, InputLayer
from mini_dnn.losses import SoftmaxCrossEntropy
from mini_dnn.optim import Adam
from mini_dnn.schedulers import StepLR


def parse_args():
    parser = argparse.ArgumentParser(description="Train an MLP on MNIST with mini_dnn.")
    parser.add_argument('--epochs', type=int, default=10)
    parser.add_argument('--batch-size', type=int, default=128)
    parser.add_argument('--hidden', type=int, default=256, help="Units per hidden layer")
    parser.add_argument('--dropout', type=float, default=0.2)
    parser.add_argument('--lr', type=float, default=0.001)
    parser.add_argument('--lr-step', type=int, default=0, help="Decay lr by 10x every N epochs (0 disables)")
    parser.add_argument('--save', default=None, help="File to save the trained model to")
    parser.add_argument('--quiet', action='store_true')
    return parser.parse_args()


def load_data():
    x_train, y_train = mnist.load_train()
    x_test, y_test = mnist.load_test()
    x_train = x_train.astype(np.float32) / 255
    x_test = x_test.astype(np.float32) / 255
    return x_train, to_categorical(y_train, 10), x_test, to_categorical(y_test, 10)


def build_model(hidden, dropout):
    model = Sequential([InputLayer((28, 28, 1)), Flatten()])
    for _ in range(2):
        model.add(Dense(hidden, weight_initializer=He()))
        model.add(BatchNormalization())
        model.add(ReLU())
        model.add(Dropout(dropout))
    model.add(Dense(10))
    return model


def main():
    args = parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO,
                        format='%(asctime)s %(name)s %(levelname)s %(message)s')

    x_train, y_train, x_test, y_test = load_data()
    model = build_model(args.hidden, args.dropout)
    optimizer = Adam(alpha=args.lr)
    model.setup(optimizer, SoftmaxCrossEntropy())
    if args.lr_step > 0:
        scheduler = StepLR(optimizer, step_size=args.lr_step)
        model.add_callback('after_epoch', lambda epoch: scheduler.step())

    completed = model.train(x_train, y_train, args.epochs, batch_size=args.batch_size,
                            test=(x_test, y_test), verbose=not args.quiet)
    if not completed:
        return 1

    acc, test_loss = model.accuracy(x_test, y_test)
    print(f"test accuracy: {acc:.4f}, test loss: {test_loss:.6f}")
    if args.save:
        model.save(args.save)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
