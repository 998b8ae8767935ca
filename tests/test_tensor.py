import numpy as np
import pytest

from mini_dnn.activations import ReLU
from mini_dnn.errors import DNNError
from mini_dnn.layers import Dense, InputLayer
from mini_dnn.merge_layers import Add
from mini_dnn.models import Sequential
from mini_dnn.tensor import Graph, Param, Tensor, name_layers


def test_param_grad_accumulates():
    param = Param(np.zeros(3))
    assert not param.has_grad
    param.add_grad(np.array([1.0, 2.0, 3.0]))
    param.add_grad(np.array([1.0, 1.0, 1.0]))
    np.testing.assert_array_equal(param.grad, [2.0, 3.0, 4.0])
    param.zero_grad()
    assert not param.has_grad
    assert param.grad == 0


def test_param_add_grad_does_not_alias():
    param = Param(np.zeros(2))
    grad = np.ones(2)
    param.add_grad(grad)
    param.add_grad(grad)
    np.testing.assert_array_equal(grad, [1.0, 1.0])


def test_layer_call_records_links():
    x = np.ones((2, 4), dtype=np.float32)
    h = InputLayer(4)(x)
    y = ReLU()(h)
    assert isinstance(y, Tensor)
    assert y.graph is h.graph
    assert len(y.graph) == 2
    assert y.graph[y.link].prevs == (h.link,)
    assert y.graph[h.link].prevs == (None,)


def test_training_flag_travels_with_tensor():
    y = ReLU()(Tensor(np.ones((1, 2)), training=True))
    assert y.training
    assert not ReLU()(np.ones((1, 2))).training


def test_backward_sums_gradients_of_shared_link():
    x = np.array([[1.0, 2.0, 3.0]])
    h = InputLayer(3)(x)
    y = Add()(ReLU()(h), ReLU()(h))
    grads = y.graph.backward(y.link, np.ones((1, 3)))
    assert len(grads) == 1
    np.testing.assert_array_equal(grads[0], [[2.0, 2.0, 2.0]])


def test_backward_runs_each_link_once():
    calls = []

    class Counting(ReLU):
        def backward(self, dy):
            calls.append(1)
            return super().backward(dy)

    h = InputLayer(2)(np.ones((1, 2)))
    shared = Counting()(h)
    y = Add()(ReLU()(shared), ReLU()(shared))
    y.graph.backward(y.link, np.ones((1, 2)))
    assert len(calls) == 1


def test_layers_order_and_dedupe():
    inp = InputLayer(3)
    left, right, add = ReLU(), ReLU(), Add()
    h = inp(np.ones((1, 3)))
    y = add(left(h), right(h))
    assert y.graph.layers(y.link) == [inp, right, left, add]


def test_resolve_rejects_different_graphs():
    a = ReLU()(np.ones((1, 2)))
    b = ReLU()(np.ones((1, 2)))
    with pytest.raises(DNNError):
        Graph.resolve(a, b)
    with pytest.raises(DNNError):
        Add()(a, b)


def test_resolve_creates_graph_for_raw_inputs():
    graph = Graph.resolve(Tensor(np.ones(1)))
    assert isinstance(graph, Graph)
    assert len(graph) == 0


def test_name_layers():
    dense0, relu, dense1 = Dense(3), ReLU(), Dense(2)
    h = dense0(np.ones((1, 4), dtype=np.float32))
    y = dense1(relu(h))
    layers = y.graph.layers(y.link)
    name_layers(layers)
    assert [layer.name for layer in layers] == ['Dense_0', 'ReLU_0', 'Dense_1']
    assert dense1.weight.name == 'Dense_1__weight'
    assert dense0.bias.name == 'Dense_0__bias'


def test_name_layers_never_renames():
    dense = Dense(3)
    dense(np.ones((1, 4), dtype=np.float32))
    dense.name = 'encoder'
    name_layers([ReLU(), dense])
    name_layers([dense])
    assert dense.name == 'encoder'
    assert dense.weight.name == 'encoder__weight'


def test_name_layers_skips_names_in_use():
    dense = Dense(3)
    dense.name = 'Dense_0'
    fresh = Dense(2)
    name_layers([fresh, dense])
    assert fresh.name == 'Dense_1'
    assert dense.name == 'Dense_0'


def test_names_stay_unique_after_stack_edits():
    d0, d1 = Dense(4), Dense(3)
    model = Sequential([InputLayer(3), d0, d1])
    model.predict(np.ones((1, 3), dtype=np.float32))
    assert (d0.name, d1.name) == ('Dense_0', 'Dense_1')

    model.remove(d0)
    model.stack[0] = InputLayer(4)
    model.add(Dense(2))
    model.predict(np.ones((1, 4), dtype=np.float32))
    names = [param.name for layer in model.has_param_layers for param in layer.get_params().values()]
    assert len(names) == 4
    assert len(set(names)) == 4
    assert d1.name == 'Dense_1'


def test_layer_used_twice_in_one_graph_is_rejected():
    relu = ReLU()
    h = InputLayer(2)(np.array([[-1.0, 2.0]]))
    y = relu(h)
    with pytest.raises(DNNError):
        relu(y)
    np.testing.assert_array_equal(relu.backward(np.ones((1, 2))), [[0.0, 1.0]])

    add = Add()
    with pytest.raises(DNNError):
        add(add(h, h), h)


def test_layer_reused_across_graphs():
    relu = ReLU()
    relu(np.ones((1, 2)))
    y = relu(np.ones((1, 2)))
    assert len(y.graph) == 1
