"""
Parameters, tensors and the link graph used for backpropagation.

Every layer invocation appends one Link to a Graph while the forward pass
runs eagerly. A Tensor carries the forward value together with the handle
of the link that produced it, so the backward pass can walk the recorded
graph from the last link towards the inputs.
"""
import logging

import numpy as np

from .errors import DNNError

logger = logging.getLogger(__name__)


class Param:
    """
    A learnable array and its accumulated gradient.

    The gradient starts as the zero sentinel ``0`` and becomes an array the
    first time backward accumulates into it. Optimizers reset it back to
    the sentinel after each update.

    Args:
        data: Initial array (allocated by the owning layer at build time)
    """

    def __init__(self, data=None):
        self.data = data
        self.grad = 0
        self.name = None

    @property
    def has_grad(self):
        """True once a gradient has been accumulated since the last reset."""
        return isinstance(self.grad, np.ndarray)

    def add_grad(self, grad):
        """Accumulate grad into this parameter."""
        grad = np.asarray(grad)
        if self.has_grad:
            self.grad = self.grad + grad
        else:
            self.grad = grad.copy()

    def zero_grad(self):
        """Reset the gradient to the zero sentinel."""
        self.grad = 0

    @property
    def shape(self):
        return None if self.data is None else self.data.shape

    def __repr__(self):
        return f"Param(name={self.name}, shape={self.shape})"


class Tensor:
    """
    A forward value bundled with its place in the computation graph.

    Args:
        value: numpy array produced by the forward pass
        graph: Graph the producing link lives in (None for a raw input)
        link: Handle of the producing link inside graph (None for a raw input)
        training: Learning phase of the forward pass that produced the value
    """

    def __init__(self, value, graph=None, link=None, training=False):
        self.value = value
        self.graph = graph
        self.link = link
        self.training = training

    @property
    def shape(self):
        return self.value.shape

    def __repr__(self):
        return f"Tensor(shape={self.value.shape}, link={self.link}, training={self.training})"


class Link:
    """One layer invocation: the layer plus the handles of its parent links."""

    __slots__ = ('layer', 'prevs')

    def __init__(self, layer, prevs):
        self.layer = layer
        self.prevs = tuple(prevs)

    @property
    def is_merge(self):
        return len(self.prevs) == 2

    def __repr__(self):
        return f"Link(layer={type(self.layer).__name__}, prevs={self.prevs})"


class Graph:
    """
    Arena of links recorded during one forward pass.

    Links are addressed by integer handles that are handed out in forward
    order, so a descending walk over handles visits every link after all of
    the links that consume its output.
    """

    def __init__(self):
        self.links = []

    def __len__(self):
        return len(self.links)

    def __getitem__(self, handle):
        return self.links[handle]

    def add_link(self, layer, *prevs):
        """
        Record an invocation of layer fed by the given parent handles.

        A layer caches the values of its last forward for backward, so it
        may appear at most once per graph.
        """
        if any(link.layer is layer for link in self.links):
            raise DNNError(f"{type(layer).__name__} is already used in this graph. "
                           f"Create a separate layer for each invocation.")
        self.links.append(Link(layer, prevs))
        return len(self.links) - 1

    @staticmethod
    def resolve(*tensors):
        """Return the graph shared by tensors, creating one for raw inputs."""
        graphs = []
        for tensor in tensors:
            if tensor.graph is not None and not any(tensor.graph is g for g in graphs):
                graphs.append(tensor.graph)
        if len(graphs) > 1:
            raise DNNError("Cannot combine tensors recorded in different graphs.")
        return graphs[0] if graphs else Graph()

    def backward(self, last_link, dy):
        """
        Backpropagate dy from last_link through every reachable link.

        Upstream gradients reaching the same link along different paths are
        summed before that link's layer runs its backward, so each layer
        invocation is differentiated exactly once.

        Returns:
            List of gradients that reached raw (unlinked) inputs, in the order
            they were reached.
        """
        pending = {last_link: dy}
        input_grads = []
        for handle in range(last_link, -1, -1):
            if handle not in pending:
                continue
            grad = pending.pop(handle)
            link = self.links[handle]
            if link.is_merge:
                dxs = link.layer.backward(grad)
            else:
                dxs = (link.layer.backward(grad),)
            for prev, dx in zip(link.prevs, dxs):
                if prev is None:
                    input_grads.append(dx)
                elif prev in pending:
                    pending[prev] = pending[prev] + dx
                else:
                    pending[prev] = dx
        return input_grads

    def layers(self, last_link):
        """
        Unique layers reachable from last_link, ordered input to output.

        Depth-first from the last link, visiting the first parent's branch
        before the second's; every visited layer is put in front of the
        accumulator and repeats keep their first occurrence.
        """
        visited = []
        stack = [last_link]
        while stack:
            handle = stack.pop()
            if handle is None:
                continue
            link = self.links[handle]
            visited.append(link.layer)
            # Push in reverse so the first parent is expanded first
            stack.extend(reversed(link.prevs))
        ordered = []
        seen = set()
        for layer in reversed(visited):
            if id(layer) not in seen:
                seen.add(id(layer))
                ordered.append(layer)
        return ordered


def name_layers(layers):
    """
    Give every layer and its parameters a stable name.

    Layers become ``<ClassName>_<index>`` with the lowest index of the class
    not yet held by another layer in layers, counted in layer order;
    parameters become ``<layer_name>__<param_key>``.
    Entities that already have a name keep it.
    """
    taken = {layer.name for layer in layers if layer.name is not None}
    next_index = {}
    for layer in layers:
        if layer.name is None:
            class_name = type(layer).__name__
            index = next_index.get(class_name, 0)
            while f"{class_name}_{index}" in taken:
                index += 1
            layer.name = f"{class_name}_{index}"
            taken.add(layer.name)
            next_index[class_name] = index + 1
            logger.debug("named layer %s", layer.name)
        if hasattr(layer, 'get_params'):
            for key, param in layer.get_params().items():
                if param.name is None:
                    param.name = f"{layer.name}__{key}"
