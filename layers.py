"""
Layer Graph Nodes
=================

A ResNet is assembled as a tree of small tagged nodes before any PyTorch
module exists. Each node knows how to materialize itself into the matching
``torch.nn`` module (``build``) and how to describe its structure
(``signature``) so two assembled graphs can be compared without touching
weights.

Node kinds:
- convolution, normalization, activation, identity
- merge (element-wise sum of exactly two branches)
- sequential (ordered group of nodes)
- pooling, global_average_pool, flatten, linear (stem and classification head)
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import torch.nn as nn
from torch import Tensor


class AddMerge(nn.Module):
    """Feed the same input through every branch and sum the results"""

    def __init__(self, branches: List[nn.Module]) -> None:
        super().__init__()
        self.branches = nn.ModuleList(branches)

    def forward(self, x: Tensor) -> Tensor:
        out = self.branches[0](x)
        for branch in self.branches[1:]:
            out = out + branch(x)
        return out


class Node:
    """Base class for every layer graph node"""

    kind: str = 'node'

    def build(self) -> nn.Module:
        raise NotImplementedError

    def signature(self) -> Tuple:
        return (self.kind,)

    def children(self) -> List['Node']:
        return []

    def walk(self) -> Iterator['Node']:
        """Yield this node and all of its descendants, depth first"""
        yield self
        for child in self.children():
            yield from child.walk()


@dataclass(eq=False)
class Convolution(Node):
    in_channels: int
    out_channels: int
    kernel_width: int = 3
    kernel_height: int = 3
    stride_width: int = 1
    stride_height: int = 1
    pad_width: int = 0
    pad_height: int = 0
    input_width: int = 0
    input_height: int = 0
    output_width: int = 0
    output_height: int = 0
    groups: int = 1

    kind = 'convolution'

    def build(self) -> nn.Module:
        # torch orders every 2d argument as (height, width)
        return nn.Conv2d(
            self.in_channels, self.out_channels,
            kernel_size=(self.kernel_height, self.kernel_width),
            stride=(self.stride_height, self.stride_width),
            padding=(self.pad_height, self.pad_width),
            groups=self.groups, bias=False,
        )

    def signature(self) -> Tuple:
        return (
            self.kind, self.in_channels, self.out_channels,
            (self.kernel_width, self.kernel_height),
            (self.stride_width, self.stride_height),
            (self.pad_width, self.pad_height),
            (self.input_width, self.input_height),
            (self.output_width, self.output_height),
            self.groups,
        )


@dataclass(eq=False)
class Normalization(Node):
    num_features: int
    eps: float = 1e-5

    kind = 'normalization'

    def build(self) -> nn.Module:
        return nn.BatchNorm2d(self.num_features, eps=self.eps)

    def signature(self) -> Tuple:
        return (self.kind, self.num_features, self.eps)


ACTIVATIONS = {
    'relu': lambda: nn.ReLU(inplace=True),
    'log_softmax': lambda: nn.LogSoftmax(dim=1),
}


@dataclass(eq=False)
class Activation(Node):
    function: str = 'relu'

    kind = 'activation'

    def __post_init__(self) -> None:
        if self.function not in ACTIVATIONS:
            raise ValueError(
                f"Unknown activation {self.function}. Available activations: {list(ACTIVATIONS)}"
            )

    def build(self) -> nn.Module:
        return ACTIVATIONS[self.function]()

    def signature(self) -> Tuple:
        return (self.kind, self.function)


@dataclass(eq=False)
class Identity(Node):
    kind = 'identity'

    def build(self) -> nn.Module:
        return nn.Identity()


@dataclass(eq=False)
class Sequential(Node):
    """Ordered group of nodes, materialized as ``nn.Sequential``"""

    layers: List[Node] = field(default_factory=list)
    name: Optional[str] = None

    kind = 'sequential'

    def add(self, node: Node) -> Node:
        self.layers.append(node)
        return node

    def children(self) -> List[Node]:
        return list(self.layers)

    def build(self) -> nn.Module:
        return nn.Sequential(*[layer.build() for layer in self.layers])

    def signature(self) -> Tuple:
        return (self.kind,) + tuple(layer.signature() for layer in self.layers)

    def __len__(self) -> int:
        return len(self.layers)


@dataclass(eq=False)
class Merge(Node):
    """Residual junction: main path plus shortcut, summed element-wise"""

    branches: List[Node] = field(default_factory=list)

    kind = 'merge'

    def add(self, node: Node) -> Node:
        if len(self.branches) == 2:
            raise ValueError("Merge takes exactly two branches")
        self.branches.append(node)
        return node

    def children(self) -> List[Node]:
        return list(self.branches)

    def build(self) -> nn.Module:
        if len(self.branches) != 2:
            raise ValueError(f"Merge needs two branches, got {len(self.branches)}")
        return AddMerge([branch.build() for branch in self.branches])

    def signature(self) -> Tuple:
        return (self.kind,) + tuple(branch.signature() for branch in self.branches)


@dataclass(eq=False)
class Pooling(Node):
    kernel_width: int = 3
    kernel_height: int = 3
    stride_width: int = 2
    stride_height: int = 2
    pad_width: int = 1
    pad_height: int = 1

    kind = 'pooling'

    def build(self) -> nn.Module:
        return nn.MaxPool2d(
            kernel_size=(self.kernel_height, self.kernel_width),
            stride=(self.stride_height, self.stride_width),
            padding=(self.pad_height, self.pad_width),
        )

    def signature(self) -> Tuple:
        return (
            self.kind,
            (self.kernel_width, self.kernel_height),
            (self.stride_width, self.stride_height),
            (self.pad_width, self.pad_height),
        )


@dataclass(eq=False)
class GlobalAveragePool(Node):
    kind = 'global_average_pool'

    def build(self) -> nn.Module:
        return nn.AdaptiveAvgPool2d((1, 1))


@dataclass(eq=False)
class Flatten(Node):
    kind = 'flatten'

    def build(self) -> nn.Module:
        return nn.Flatten(1)


@dataclass(eq=False)
class Linear(Node):
    in_features: int
    out_features: int

    kind = 'linear'

    def build(self) -> nn.Module:
        return nn.Linear(self.in_features, self.out_features)

    def signature(self) -> Tuple:
        return (self.kind, self.in_features, self.out_features)
