"""
ResNet Models with PyTorch
==========================

The ``ResNet`` container turns a layer graph assembled by ``ResNetBuilder``
into a ready ``nn.Module``, with a pluggable output-layer policy (final
activation and matching loss) and weight-initialization policy.

Features:
- ResNet-18, ResNet-34, ResNet-50, ResNet-101, ResNet-152 architectures
- Output layer policies: cross entropy on logits, NLL on log-probabilities
- Initialization policies: Kaiming, Xavier, uniform random
- Weight archive save/load and pre-trained loading
"""

from typing import Any, Callable, Dict, Tuple

import torch.nn as nn
from torch import Tensor

from builder import ResNetBuilder
from errors import InvalidConfigurationError
from layers import AddMerge
import weights


def kaiming_initialization(model: nn.Module) -> None:
    for m in model.modules():
        if isinstance(m, nn.Conv2d):
            nn.init.kaiming_normal_(m.weight, mode='fan_out', nonlinearity='relu')
        elif isinstance(m, (nn.BatchNorm2d, nn.GroupNorm)):
            nn.init.constant_(m.weight, 1)
            nn.init.constant_(m.bias, 0)


def xavier_initialization(model: nn.Module) -> None:
    for m in model.modules():
        if isinstance(m, (nn.Conv2d, nn.Linear)):
            nn.init.xavier_uniform_(m.weight)
            if m.bias is not None:
                nn.init.constant_(m.bias, 0)
        elif isinstance(m, (nn.BatchNorm2d, nn.GroupNorm)):
            nn.init.constant_(m.weight, 1)
            nn.init.constant_(m.bias, 0)


def random_initialization(model: nn.Module, lower: float = -1.0, upper: float = 1.0) -> None:
    """Uniform random weights in [lower, upper] for every convolution and linear layer"""
    for m in model.modules():
        if isinstance(m, (nn.Conv2d, nn.Linear)):
            nn.init.uniform_(m.weight, lower, upper)
            if m.bias is not None:
                nn.init.uniform_(m.bias, lower, upper)
        elif isinstance(m, (nn.BatchNorm2d, nn.GroupNorm)):
            nn.init.constant_(m.weight, 1)
            nn.init.constant_(m.bias, 0)


INITIALIZATIONS: Dict[str, Callable[[nn.Module], None]] = {
    'kaiming': kaiming_initialization,
    'xavier': xavier_initialization,
    'random': random_initialization,
}

# Loss matching the activation the builder appends for each output layer
OUTPUT_LAYERS: Dict[str, Callable[[], nn.Module]] = {
    'cross_entropy': nn.CrossEntropyLoss,
    'negative_log_likelihood': nn.NLLLoss,
}


class ResNet(nn.Module):
    """ResNet assembled from a layer graph"""

    def __init__(
        self,
        input_channels: int = 3,
        input_width: int = 224,
        input_height: int = 224,
        include_top: bool = True,
        pre_trained: bool = False,
        num_classes: int = 1000,
        version: int = 18,
        output_layer: str = 'cross_entropy',
        initialization: str = 'kaiming',
        zero_init_residual: bool = False,
        base_width: int = 64,
        groups: int = 1,
        weights_dir: str = './weights/resnet',
    ) -> None:
        super().__init__()

        if initialization not in INITIALIZATIONS:
            raise InvalidConfigurationError(
                f"Unknown initialization {initialization}. Available initializations: {list(INITIALIZATIONS)}"
            )

        builder = ResNetBuilder(
            input_channels=input_channels,
            input_width=input_width,
            input_height=input_height,
            include_top=include_top,
            pre_trained=pre_trained,
            num_classes=num_classes,
            version=version,
            base_width=base_width,
            groups=groups,
            output_layer=output_layer,
        )
        self.graph = builder.build()
        self.records = list(builder.records)
        self.feature_shape = builder.feature_shape

        self.version = version
        self.include_top = include_top
        self.num_classes = num_classes
        self.output_layer = output_layer
        self.input_shape = (input_channels, input_height, input_width)

        self.model = self.graph.build()
        self.criterion = OUTPUT_LAYERS[output_layer]()

        INITIALIZATIONS[initialization](self.model)

        # Zero-initialize the last BN in each residual branch,
        # so that the residual branch starts with zeros, and each residual block behaves like an identity.
        # This improves the model by 0.2~0.3% according to https://arxiv.org/abs/1706.02677
        if zero_init_residual:
            for m in self.model.modules():
                if isinstance(m, AddMerge):
                    nn.init.constant_(m.branches[0][-1][1].weight, 0)

        if pre_trained:
            self.load_model(weights.pretrained_path(weights_dir, version))

    @classmethod
    def from_input_shape(cls, input_shape: Tuple[int, int, int], **kwargs: Any) -> 'ResNet':
        """Create a model from a channels-first (channels, height, width) tuple"""
        channels, height, width = input_shape
        return cls(input_channels=channels, input_width=width, input_height=height, **kwargs)

    @classmethod
    def from_config(cls, model_config: Any) -> 'ResNet':
        """Create a model from a ``config.ModelConfig``"""
        return cls(
            input_channels=model_config.input_channels,
            input_width=model_config.input_width,
            input_height=model_config.input_height,
            include_top=model_config.include_top,
            pre_trained=model_config.pre_trained,
            num_classes=model_config.num_classes,
            version=model_config.version,
            output_layer=model_config.output_layer,
            initialization=model_config.initialization,
            zero_init_residual=model_config.zero_init_residual,
            base_width=model_config.base_width,
            groups=model_config.groups,
            weights_dir=model_config.weights_dir,
        )

    def get_model(self) -> nn.Sequential:
        return self.model

    def load_model(self, file_path: str) -> None:
        """Load weights stored under the "ResNet" key of an archive"""
        weights.load_model(self, file_path)

    def save_model(self, file_path: str) -> None:
        """Save weights under the "ResNet" key of an archive"""
        weights.save_model(self, file_path)

    def forward(self, x: Tensor) -> Tensor:
        return self.model(x)


def resnet18(num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """ResNet-18 model"""
    return ResNet(version=18, num_classes=num_classes, **kwargs)


def resnet34(num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """ResNet-34 model"""
    return ResNet(version=34, num_classes=num_classes, **kwargs)


def resnet50(num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """ResNet-50 model"""
    return ResNet(version=50, num_classes=num_classes, **kwargs)


def resnet101(num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """ResNet-101 model"""
    return ResNet(version=101, num_classes=num_classes, **kwargs)


def resnet152(num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """ResNet-152 model"""
    return ResNet(version=152, num_classes=num_classes, **kwargs)


# Model registry for easy access
MODEL_REGISTRY = {
    'resnet18': resnet18,
    'resnet34': resnet34,
    'resnet50': resnet50,
    'resnet101': resnet101,
    'resnet152': resnet152,
}


def create_model(model_name: str, num_classes: int = 1000, **kwargs: Any) -> ResNet:
    """Create a ResNet model by name"""
    if model_name not in MODEL_REGISTRY:
        raise ValueError(f"Model {model_name} not found. Available models: {list(MODEL_REGISTRY.keys())}")

    return MODEL_REGISTRY[model_name](num_classes=num_classes, **kwargs)


def count_parameters(model: nn.Module, trainable_only: bool = False) -> int:
    return sum(p.numel() for p in model.parameters() if p.requires_grad or not trainable_only)
