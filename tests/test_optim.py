import numpy as np
import pytest

from mini_dnn.errors import ConfigurationError, DNNError
from mini_dnn.layers import HasParamLayer
from mini_dnn.losses import MeanSquaredError
from mini_dnn.optim import (SGD, AdaBound, AdaDelta, AdaGrad, Adam, Nesterov, Optimizer, RMSProp,
                            RMSPropGraves)
from mini_dnn.tensor import Param

OPTIMIZERS = [SGD, Nesterov, AdaGrad, RMSProp, RMSPropGraves, AdaDelta, Adam, AdaBound]


class ParamLayer(HasParamLayer):
    def __init__(self, *datas):
        super().__init__()
        self.params = {}
        for i, data in enumerate(datas):
            param = Param(np.array(data, dtype=np.float64))
            param.name = f"ParamLayer_0__p{i}"
            self.params[f"p{i}"] = param

    def get_params(self):
        return self.params


def quadratic_step(optimizer, layer):
    """Accumulate the gradient of 0.5 * |w|^2 and update."""
    for param in layer.get_params().values():
        param.add_grad(param.data.copy())
    optimizer.update([layer])


def test_sgd_step():
    layer = ParamLayer([1.0, -2.0])
    param = layer.params['p0']
    param.add_grad(np.array([0.5, 1.0]))
    SGD(lr=0.1).update([layer])
    np.testing.assert_allclose(param.data, [0.95, -2.1])
    assert not param.has_grad


def test_sgd_momentum():
    layer = ParamLayer([0.0])
    param = layer.params['p0']
    optimizer = SGD(lr=0.1, momentum=0.9)
    for _ in range(2):
        param.add_grad(np.array([1.0]))
        optimizer.update([layer])
    # v1 = 0.1, v2 = 0.1 + 0.9 * 0.1
    np.testing.assert_allclose(param.data, [-0.1 - 0.19])
    np.testing.assert_allclose(optimizer.v[param.name], [0.19])


def test_adam_first_step_moves_by_alpha():
    layer = ParamLayer([1.0, -1.0])
    param = layer.params['p0']
    param.add_grad(np.array([2.0, -3.0]))
    Adam(alpha=0.01).update([layer])
    np.testing.assert_allclose(param.data, [0.99, -0.99], rtol=1e-3)


@pytest.mark.parametrize('cls', OPTIMIZERS)
def test_optimizers_minimize_quadratic(cls):
    layer = ParamLayer([1.0, -2.0, 3.0])
    param = layer.params['p0']
    start = np.abs(param.data).sum()
    optimizer = cls()
    for _ in range(50):
        quadratic_step(optimizer, layer)
    assert np.abs(param.data).sum() < start
    assert param.data.dtype == np.float64


@pytest.mark.parametrize('cls', OPTIMIZERS)
def test_params_without_grad_are_left_alone(cls):
    layer = ParamLayer([1.0, 2.0], [3.0, 4.0])
    idle = layer.params['p1']
    optimizer = cls()
    for _ in range(3):
        layer.params['p0'].add_grad(np.array([0.1, 0.1]))
        optimizer.update([layer])
    np.testing.assert_array_equal(idle.data, [3.0, 4.0])
    for key in optimizer.status_keys:
        state = getattr(optimizer, key)
        if isinstance(state, dict):
            assert idle.name not in state


def test_untrainable_layers_are_skipped():
    layer = ParamLayer([1.0])
    layer.trainable = False
    layer.params['p0'].add_grad(np.array([1.0]))
    SGD(lr=1.0).update([layer])
    np.testing.assert_array_equal(layer.params['p0'].data, [1.0])
    assert not layer.params['p0'].has_grad


def test_frozen_grads_are_discarded():
    layer = ParamLayer([1.0, -1.0])
    param = layer.params['p0']
    optimizer = SGD(lr=0.1, momentum=0.9)
    layer.trainable = False
    for _ in range(5):
        param.add_grad(np.array([1.0, 1.0]))
        optimizer.update([layer])
        assert not param.has_grad
    np.testing.assert_array_equal(param.data, [1.0, -1.0])
    assert param.name not in optimizer.v

    layer.trainable = True
    param.add_grad(np.array([1.0, 1.0]))
    optimizer.update([layer])
    np.testing.assert_allclose(param.data, [0.9, -1.1])


def test_update_requires_named_params():
    layer = ParamLayer([1.0])
    layer.params['p0'].name = None
    layer.params['p0'].add_grad(np.array([1.0]))
    with pytest.raises(ConfigurationError):
        SGD().update([layer])


def test_clip_norm():
    layer = ParamLayer([0.0], [0.0], [0.0])
    layer.params['p0'].add_grad(np.array([3.0]))
    layer.params['p1'].add_grad(np.array([4.0]))
    SGD(lr=1.0, clip_norm=1.0).update([layer])
    np.testing.assert_allclose(layer.params['p0'].data, [-0.6], rtol=1e-6)
    np.testing.assert_allclose(layer.params['p1'].data, [-0.8], rtol=1e-6)
    np.testing.assert_array_equal(layer.params['p2'].data, [0.0])


def test_clip_norm_leaves_small_grads():
    layer = ParamLayer([0.0])
    layer.params['p0'].add_grad(np.array([0.5]))
    SGD(lr=1.0, clip_norm=1.0).update([layer])
    np.testing.assert_allclose(layer.params['p0'].data, [-0.5])


def test_adam_lr_alias():
    adam = Adam(alpha=0.01)
    assert adam.lr == 0.01
    adam.lr = 0.5
    assert adam.alpha == 0.5


def test_dump_and_load_status():
    layer = ParamLayer([1.0, 2.0])
    optimizer = SGD(lr=0.1, momentum=0.9)
    quadratic_step(optimizer, layer)
    dumped = optimizer.dump()
    restored = Optimizer.load(dumped)
    assert isinstance(restored, SGD)
    assert restored.to_hash() == optimizer.to_hash()
    np.testing.assert_array_equal(restored.v['ParamLayer_0__p0'], optimizer.v['ParamLayer_0__p0'])
    assert restored.v['ParamLayer_0__p0'] is not optimizer.v['ParamLayer_0__p0']
    assert optimizer.dump(require_status=False)['status'] is None


def test_loaded_optimizer_continues_identically():
    layer1 = ParamLayer([1.0, -2.0])
    layer2 = ParamLayer([1.0, -2.0])
    optimizer = Adam(alpha=0.1, amsgrad=True)
    for _ in range(3):
        quadratic_step(optimizer, layer1)
    layer2.params['p0'].data = layer1.params['p0'].data.copy()
    restored = Optimizer.load(optimizer.dump())
    assert restored.t == 3
    quadratic_step(optimizer, layer1)
    quadratic_step(restored, layer2)
    np.testing.assert_array_equal(layer1.params['p0'].data, layer2.params['p0'].data)


def test_optimizer_hash_round_trip():
    optimizer = AdaBound(alpha=0.002, final_lr=0.2, gamma=0.01, amsgrad=True, clip_norm=5.0)
    restored = Optimizer.from_hash(optimizer.to_hash())
    assert isinstance(restored, AdaBound)
    assert restored.to_hash() == optimizer.to_hash()
    with pytest.raises(DNNError):
        Optimizer.from_hash(MeanSquaredError().to_hash())


def test_load_status_rejects_unknown_keys():
    with pytest.raises(DNNError):
        SGD().load_status({'m': {}})
