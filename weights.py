"""
Weight Archives
===============

Networks are saved as a dictionary holding the full state dict under a single
"ResNet" key. Loading needs the in-memory topology to match the one that wrote
the archive; a mismatch surfaces as PyTorch's own ``load_state_dict`` error.

Weights published with torchvision can be mapped onto the same topology,
since both order their parameters stem, stages (main path then shortcut),
classifier.
"""

import logging
import os
from collections import OrderedDict
from typing import Dict, Optional

import torch
import torch.nn as nn
import torchvision

logger = logging.getLogger(__name__)

ARCHIVE_KEY = 'ResNet'


def pretrained_path(weights_dir: str, version: int) -> str:
    """Location of the pre-trained archive for a ResNet version"""
    return os.path.join(weights_dir, f'resnet{version}.pth')


def save_model(model: nn.Module, file_path: str) -> None:
    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    torch.save({ARCHIVE_KEY: model.state_dict()}, file_path)
    logger.info(f"💾 Weights saved: {file_path}")


def load_model(model: nn.Module, file_path: str, map_location: str = 'cpu') -> nn.Module:
    archive = torch.load(file_path, map_location=map_location)
    if ARCHIVE_KEY not in archive:
        raise KeyError(f"Archive {file_path} has no '{ARCHIVE_KEY}' entry")

    model.load_state_dict(archive[ARCHIVE_KEY])
    logger.info(f"📥 Weights loaded: {file_path}")
    return model


def convert_torchvision_state_dict(
    state_dict: Dict[str, torch.Tensor],
    model: nn.Module,
) -> Dict[str, torch.Tensor]:
    """
    Rename a torchvision ResNet state dict to the keys of ``model``.

    Entries are paired by position; every pair must agree on shape. The
    classifier (``fc.*``) is dropped when ``model`` was built without one.
    """
    include_top = getattr(model, 'include_top', True)
    source = [(key, value) for key, value in state_dict.items()
              if include_top or not key.startswith('fc.')]
    target = model.state_dict()

    if len(source) != len(target):
        raise ValueError(
            f"State dict has {len(source)} entries but the model expects {len(target)}"
        )

    converted = OrderedDict()
    for (source_key, value), (target_key, expected) in zip(source, target.items()):
        if value.shape != expected.shape:
            raise ValueError(
                f"Shape mismatch: {source_key} {tuple(value.shape)} vs "
                f"{target_key} {tuple(expected.shape)}"
            )
        converted[target_key] = value

    return converted


def load_torchvision_weights(model: nn.Module, weights: Optional[str] = 'DEFAULT') -> nn.Module:
    """
    Copy the weights of the matching torchvision ResNet into ``model``.

    ``weights`` is passed straight to the torchvision constructor; ``None``
    gives a randomly initialized source network sized for ``model``.
    """
    version = model.version
    kwargs = {}
    if weights is None and getattr(model, 'include_top', True):
        kwargs['num_classes'] = model.num_classes

    source = getattr(torchvision.models, f'resnet{version}')(weights=weights, **kwargs)
    model.load_state_dict(convert_torchvision_state_dict(source.state_dict(), model))
    logger.info(f"📥 torchvision resnet{version} weights loaded ({weights})")
    return model
