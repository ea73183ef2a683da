"""
ResNet Topology Builder
=======================

Assembles the layer graph of a ResNet (18/34/50/101/152) as a tree of
``layers`` nodes, tracking the tensor shape as blocks are appended so every
convolution is sized for the input it will actually see.

The shape travels explicitly as a ``ShapeState`` passed into each block
builder, so a single convolution block can be emitted and checked in
isolation.
"""

import logging
from collections import namedtuple
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Optional, Tuple

from errors import InvalidConfigurationError, ShapeUnderflowError, UnsupportedVersionError
from layers import (
    Activation, Convolution, Flatten, GlobalAveragePool, Identity, Linear, Merge,
    Normalization, Pooling, Sequential,
)

logger = logging.getLogger(__name__)


BASIC_BLOCK = 'basicblock'
BOTTLENECK = 'bottleneck'

EXPANSION = MappingProxyType({
    BASIC_BLOCK: 1,
    BOTTLENECK: 4,
})

# version -> (block kind, blocks per stage)
RESNET_CONFIG = MappingProxyType({
    18: (BASIC_BLOCK, (2, 2, 2, 2)),
    34: (BASIC_BLOCK, (3, 4, 6, 3)),
    50: (BOTTLENECK, (3, 4, 6, 3)),
    101: (BOTTLENECK, (3, 4, 23, 3)),
    152: (BOTTLENECK, (3, 8, 36, 3)),
})

STAGE_WIDTHS = (64, 128, 256, 512)
STAGE_STRIDES = (1, 2, 2, 2)

# Output activation appended after the classifier for each output-layer policy
OUTPUT_ACTIVATIONS = MappingProxyType({
    'cross_entropy': None,
    'negative_log_likelihood': 'log_softmax',
})

BlockRecord = namedtuple(
    'BlockRecord', ['stage', 'index', 'kind', 'in_size', 'out_size', 'stride', 'down_sample']
)


@dataclass
class ShapeState:
    """Running (channels, width, height) of the tensor flowing through the graph"""
    channels: int
    width: int
    height: int

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.channels, self.width, self.height)


def conv_out_size(size: int, kernel: int, stride: int, padding: int) -> int:
    """
    Return the convolution output size along one dimension.

    Args:
        size: Size of the input (row or column).
        kernel: Size of the filter along the same dimension.
        stride: Stride along the same dimension.
        padding: Padding on one side.
    """
    if stride < 1:
        raise ValueError(f"Stride must be positive, got {stride}")
    if size + 2 * padding < kernel:
        raise ShapeUnderflowError(size, kernel, stride, padding)
    return (size - kernel + 2 * padding) // stride + 1


def convolution_block(
    base_layer,
    shape: ShapeState,
    in_size: int,
    out_size: int,
    stride_width: int = 1,
    stride_height: int = 1,
    kernel_width: int = 3,
    kernel_height: int = 3,
    pad_width: int = 1,
    pad_height: int = 1,
    down_sample: bool = False,
    down_sample_input_width: int = 0,
    down_sample_input_height: int = 0,
    groups: int = 1,
) -> Sequential:
    """
    Append a (convolution, batch norm) pair to ``base_layer`` and advance ``shape``.

    A down-sample (projection shortcut) convolution reads the block input, not
    whatever the main path has advanced ``shape`` to, so the caller hands the
    snapshot taken at block entry via ``down_sample_input_width/height``.
    """
    if down_sample:
        logger.debug("DownSample (")
        shape.width = down_sample_input_width
        shape.height = down_sample_input_height

    output_width = conv_out_size(shape.width, kernel_width, stride_width, pad_width)
    output_height = conv_out_size(shape.height, kernel_height, stride_height, pad_height)

    block = Sequential()
    block.add(Convolution(
        in_size, out_size,
        kernel_width=kernel_width, kernel_height=kernel_height,
        stride_width=stride_width, stride_height=stride_height,
        pad_width=pad_width, pad_height=pad_height,
        input_width=shape.width, input_height=shape.height,
        output_width=output_width, output_height=output_height,
        groups=groups,
    ))
    logger.debug(
        "Convolution: (%d, %d, %d) ---> (%d, %d, %d)",
        in_size, shape.width, shape.height, out_size, output_width, output_height,
    )

    shape.channels = out_size
    shape.width = output_width
    shape.height = output_height

    block.add(Normalization(out_size, 1e-5))
    logger.debug("BatchNorm: (%d) ---> (%d)", out_size, out_size)
    base_layer.add(block)
    if down_sample:
        logger.debug(")")
    return block


def relu_layer(base_layer) -> None:
    base_layer.add(Activation('relu'))
    logger.debug("Relu")


class ResNetBuilder:
    """
    Builds the layer graph for one ResNet variant.

    A builder is single use: shape tracking and the stage bookkeeping live on
    the instance, so every network needs its own builder.
    """

    def __init__(
        self,
        input_channels: int = 3,
        input_width: int = 224,
        input_height: int = 224,
        include_top: bool = True,
        pre_trained: bool = False,
        num_classes: int = 1000,
        version: int = 18,
        base_width: int = 64,
        groups: int = 1,
        output_layer: str = 'cross_entropy',
    ) -> None:
        if version not in RESNET_CONFIG:
            raise UnsupportedVersionError(version, RESNET_CONFIG.keys())
        if pre_trained and not include_top:
            raise InvalidConfigurationError(
                "pre_trained requires include_top: pre-trained weights contain the classification head"
            )
        if include_top and num_classes < 1:
            raise InvalidConfigurationError(f"num_classes must be positive, got {num_classes}")
        if output_layer not in OUTPUT_ACTIVATIONS:
            raise InvalidConfigurationError(
                f"Unknown output layer {output_layer}. Available output layers: {list(OUTPUT_ACTIVATIONS)}"
            )
        if groups < 1 or base_width < 1:
            raise InvalidConfigurationError("groups and base_width must be positive")

        block, num_blocks = RESNET_CONFIG[version]
        if block == BASIC_BLOCK and (groups != 1 or base_width != 64):
            raise InvalidConfigurationError("BasicBlock only supports groups=1 and base_width=64")

        self.version = version
        self.input_channels = input_channels
        self.input_width = input_width
        self.input_height = input_height
        self.include_top = include_top
        self.pre_trained = pre_trained
        self.num_classes = num_classes
        self.base_width = base_width
        self.groups = groups
        self.output_layer = output_layer
        self.builder_block = block
        self.num_block_array = num_blocks

        self.shape = ShapeState(input_channels, input_width, input_height)
        self.down_sample_in_size = 64
        self.down_sample_input_width = input_width
        self.down_sample_input_height = input_height

        self.records: List[BlockRecord] = []
        self.network = Sequential(name=f"resnet{version}")
        self.feature_shape: Optional[Tuple[int, int, int]] = None
        self._stage = 0
        self._built = False

    @classmethod
    def from_input_shape(cls, input_shape: Tuple[int, int, int], **kwargs) -> 'ResNetBuilder':
        """Create a builder from a channels-first (channels, height, width) tuple"""
        channels, height, width = input_shape
        return cls(input_channels=channels, input_width=width, input_height=height, **kwargs)

    @property
    def expansion(self) -> int:
        return EXPANSION[self.builder_block]

    def _snapshot(self) -> None:
        self.down_sample_input_width = self.shape.width
        self.down_sample_input_height = self.shape.height

    def _stage_index(self) -> int:
        return sum(1 for record in self.records if record.stage == self._stage)

    def _record(self, kind: str, in_size: int, out_size: int, stride: int, down_sample: bool) -> None:
        self.records.append(
            BlockRecord(self._stage, self._stage_index(), kind, in_size, out_size, stride, down_sample)
        )

    def basic_block(
        self,
        in_size: int,
        out_size: int,
        stride_width: int = 1,
        stride_height: int = 1,
        down_sample: bool = False,
    ) -> Sequential:
        """
        Append one BasicBlock (ResNet 18 and 34).

        Main path is conv3x3 -> ReLU -> conv3x3; the shortcut is either a 1x1
        projection or an identity. Both are summed and passed through ReLU.
        """
        self._snapshot()

        basic_block = Sequential(name=f"layer{self._stage + 1}.{self._stage_index()}")
        res_block = Merge()
        sequential_block = Sequential()
        convolution_block(sequential_block, self.shape, in_size, out_size, stride_width, stride_height)
        relu_layer(sequential_block)
        convolution_block(sequential_block, self.shape, out_size, out_size)
        res_block.add(sequential_block)

        if down_sample:
            convolution_block(
                res_block, self.shape, in_size, out_size, stride_width, stride_height,
                1, 1, 0, 0, True, self.down_sample_input_width, self.down_sample_input_height,
            )
        else:
            logger.debug("IdentityLayer")
            res_block.add(Identity())

        basic_block.add(res_block)
        relu_layer(basic_block)
        self.network.add(basic_block)
        self._record(BASIC_BLOCK, in_size, out_size, stride_width, down_sample)
        return basic_block

    def bottleneck(
        self,
        in_size: int,
        out_size: int,
        stride_width: int = 1,
        stride_height: int = 1,
        down_sample: bool = False,
    ) -> Sequential:
        """
        Append one BottleNeck block (ResNet 50, 101 and 152).

        Main path is conv1x1 -> ReLU -> conv3x3 -> ReLU -> conv1x1 with the last
        convolution widening to ``out_size * 4``; the stride sits on the 3x3.
        """
        self._snapshot()

        expanded = out_size * EXPANSION[BOTTLENECK]
        width = int((self.base_width / 64.0) * out_size) * self.groups

        bottle_neck = Sequential(name=f"layer{self._stage + 1}.{self._stage_index()}")
        res_block = Merge()
        sequential_block = Sequential()
        convolution_block(sequential_block, self.shape, in_size, width, 1, 1, 1, 1, 0, 0)
        relu_layer(sequential_block)
        convolution_block(
            sequential_block, self.shape, width, width, stride_width, stride_height, groups=self.groups,
        )
        relu_layer(sequential_block)
        convolution_block(sequential_block, self.shape, width, expanded, 1, 1, 1, 1, 0, 0)
        res_block.add(sequential_block)

        if down_sample:
            convolution_block(
                res_block, self.shape, in_size, expanded, stride_width, stride_height,
                1, 1, 0, 0, True, self.down_sample_input_width, self.down_sample_input_height,
            )
        else:
            logger.debug("IdentityLayer")
            res_block.add(Identity())

        bottle_neck.add(res_block)
        relu_layer(bottle_neck)
        self.network.add(bottle_neck)
        self._record(BOTTLENECK, in_size, expanded, stride_width, down_sample)
        return bottle_neck

    def make_layer(self, block: str, out_size: int, num_blocks: int, stride: int = 1) -> None:
        """
        Append one stage of ``num_blocks`` residual blocks.

        Only the first block may change resolution or channel count; the rest
        keep both and use identity shortcuts.
        """
        if block not in EXPANSION:
            raise ValueError(f"Unknown block {block}. Available blocks: {list(EXPANSION)}")
        if num_blocks < 1:
            raise ValueError(f"A stage needs at least one block, got {num_blocks}")

        add_block = self.basic_block if block == BASIC_BLOCK else self.bottleneck
        expanded = out_size * EXPANSION[block]
        down_sample = stride != 1 or self.down_sample_in_size != expanded

        # BasicBlock takes its output width as-is, BottleNeck expands it itself
        block_out = expanded if block == BASIC_BLOCK else out_size
        add_block(self.down_sample_in_size, block_out, stride, stride, down_sample)
        self.down_sample_in_size = expanded
        for _ in range(1, num_blocks):
            add_block(self.down_sample_in_size, block_out)

    def _stem(self) -> None:
        convolution_block(self.network, self.shape, self.input_channels, 64, 2, 2, 7, 7, 3, 3)
        relu_layer(self.network)
        self.network.add(Pooling(3, 3, 2, 2, 1, 1))
        self.shape.width = conv_out_size(self.shape.width, 3, 2, 1)
        self.shape.height = conv_out_size(self.shape.height, 3, 2, 1)
        logger.debug("MaxPooling: ---> (64, %d, %d)", self.shape.width, self.shape.height)

    def _head(self) -> None:
        self.network.add(GlobalAveragePool())
        self.network.add(Flatten())
        self.network.add(Linear(512 * self.expansion, self.num_classes))
        logger.debug("Linear: (%d) ---> (%d)", 512 * self.expansion, self.num_classes)
        activation = OUTPUT_ACTIVATIONS[self.output_layer]
        if activation is not None:
            self.network.add(Activation(activation))

    def build(self) -> Sequential:
        """Assemble the full network graph and return its root node"""
        if self._built:
            raise RuntimeError("ResNetBuilder instances build exactly one network")
        self._built = True

        logger.debug(
            "Building ResNet%d for input (%d, %d, %d)",
            self.version, self.input_channels, self.input_width, self.input_height,
        )
        self._stem()

        for stage, (width, num_blocks, stride) in enumerate(
                zip(STAGE_WIDTHS, self.num_block_array, STAGE_STRIDES)):
            self._stage = stage
            self.make_layer(self.builder_block, width, num_blocks, stride)

        self.feature_shape = self.shape.as_tuple()
        if self.include_top:
            self._head()

        logger.info(
            "ResNet%d assembled: %d blocks, features %s",
            self.version, len(self.records), self.feature_shape,
        )
        return self.network

    def stage_block_counts(self) -> List[int]:
        """Number of residual blocks emitted per stage"""
        counts = [0] * len(STAGE_WIDTHS)
        for record in self.records:
            counts[record.stage] += 1
        return counts
