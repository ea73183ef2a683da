"""
ResNet Summary Script
=====================

Builds a ResNet from command line arguments (or a configuration file) and
prints its stage layout, feature shape and parameter counts.

    resnet-summary --version 50 --input-shape 3 224 224
    resnet-summary --config configs/resnet50_features.yaml
"""

import logging
import sys
from typing import List, Optional

import torch

from config import create_config_from_args
from errors import ResNetError
from logger import model_info, setup_experiment_logging, setup_logging, stage_summary
from resnet import ResNet

logger = logging.getLogger(__name__)


def summarize(model: ResNet) -> None:
    info = model_info(model)

    print(f"🧠 ResNet-{model.version}")
    print("=" * 50)
    print(f"Input shape: {model.input_shape}")
    for row in stage_summary(model.records):
        print(
            f"Stage {row['stage']}: {row['blocks']:2d} x {row['block']:<10} "
            f"{row['in_channels']:4d} -> {row['out_channels']:4d}  stride {row['stride']}"
        )
    print(f"Feature shape: {model.feature_shape}")
    if model.include_top:
        with torch.no_grad():
            output = model(torch.zeros(1, *model.input_shape))
        print(f"Output shape: {tuple(output.shape)}")
    print(f"📈 Parameters: {info['total_parameters']:,}")
    print(f"💾 Model size: {info['model_size_mb']:.2f} MB")


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = create_config_from_args(argv)
    except ResNetError as e:
        setup_logging()
        logger.error(f"❌ Invalid configuration: {e}")
        return 1
    setup_logging(config.logging.log_level, config.logging.log_file)

    try:
        model = ResNet.from_config(config.model)
    except ResNetError as e:
        logger.error(f"❌ Could not build {config.model_name}: {e}")
        return 1
    model.eval()

    if config.logging.experiment_name:
        experiment = setup_experiment_logging(
            config.logging.experiment_name,
            config.to_dict(),
            log_dir=config.logging.log_dir,
            use_tensorboard=config.logging.use_tensorboard,
            log_level=config.logging.log_level,
        )
        experiment.log_model_info(model)
        experiment.log_architecture(model)
        experiment.log_graph(model)
        experiment.close()

    summarize(model)
    return 0


if __name__ == "__main__":
    sys.exit(main())
