"""
Logging and Model Reporting
===========================

Logging setup plus a per-experiment logger that records:
- Configuration
- Parameter counts and feature shape
- The stage/block layout of an assembled ResNet
- The model graph in TensorBoard (when installed)
"""

import json
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

import numpy as np
import torch

try:
    from torch.utils.tensorboard import SummaryWriter
    TENSORBOARD_AVAILABLE = True
except ImportError:
    TENSORBOARD_AVAILABLE = False


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger with a console handler and an optional file handler"""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper()))
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def stage_summary(records) -> List[Dict[str, Any]]:
    """Collapse per-block records into one row per stage"""
    stages: Dict[int, Dict[str, Any]] = {}
    for record in records:
        row = stages.setdefault(record.stage, {
            'stage': record.stage + 1,
            'block': record.kind,
            'blocks': 0,
            'in_channels': record.in_size,
            'out_channels': record.out_size,
            'stride': record.stride,
            'down_sample': record.down_sample,
        })
        row['blocks'] += 1
        row['out_channels'] = record.out_size
    return [stages[stage] for stage in sorted(stages)]


def model_info(model: torch.nn.Module) -> Dict[str, Any]:
    total_params = sum(p.numel() for p in model.parameters())
    trainable_params = sum(p.numel() for p in model.parameters() if p.requires_grad)

    info = {
        'total_parameters': total_params,
        'trainable_parameters': trainable_params,
        'model_size_mb': total_params * 4 / (1024 * 1024)  # Assuming float32
    }
    feature_shape = getattr(model, 'feature_shape', None)
    if feature_shape is not None:
        info['feature_shape'] = list(feature_shape)
        info['feature_size'] = int(np.prod(feature_shape))
    return info


class ModelLogger:
    """Per-experiment logger for assembled models"""

    def __init__(
        self,
        experiment_name: str,
        log_dir: str = "./logs",
        use_tensorboard: bool = False,
        log_level: str = "INFO"
    ):
        self.experiment_name = experiment_name
        self.log_dir = Path(log_dir)
        self.use_tensorboard = use_tensorboard and TENSORBOARD_AVAILABLE

        self.experiment_dir = self.log_dir / experiment_name
        self.experiment_dir.mkdir(parents=True, exist_ok=True)

        self.setup_logging(log_level)

        if self.use_tensorboard:
            self.tb_writer = SummaryWriter(log_dir=str(self.experiment_dir / "tensorboard"))
        else:
            self.tb_writer = None

        self.logger.info(f"🚀 Experiment '{experiment_name}' started")
        self.logger.info(f"📁 Log directory: {self.experiment_dir}")
        self.logger.info(f"📊 TensorBoard: {'✅' if self.use_tensorboard else '❌'}")

    def setup_logging(self, log_level: str):
        """Setup file and console logging"""
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        self.logger = logging.getLogger(self.experiment_name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.propagate = False

        # Clear existing handlers
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        file_handler = logging.FileHandler(self.experiment_dir / "experiment.log", mode='w')
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

    def log_config(self, config: Dict[str, Any]):
        """Log experiment configuration"""
        config_path = self.experiment_dir / "config.json"
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=2)

        self.logger.info("📋 Configuration logged")

    def log_model_info(self, model: torch.nn.Module) -> Dict[str, Any]:
        """Log parameter counts and feature shape"""
        info = model_info(model)

        self.logger.info("🧠 Model Info:")
        self.logger.info(f"   Total parameters: {info['total_parameters']:,}")
        self.logger.info(f"   Trainable parameters: {info['trainable_parameters']:,}")
        self.logger.info(f"   Model size: {info['model_size_mb']:.2f} MB")
        if 'feature_shape' in info:
            self.logger.info(f"   Feature shape: {tuple(info['feature_shape'])}")
        return info

    def log_architecture(self, model: torch.nn.Module) -> List[Dict[str, Any]]:
        """Log the stage layout and write it to architecture.json"""
        stages = stage_summary(model.records)

        self.logger.info(f"🏗️ ResNet-{model.version} stages:")
        for row in stages:
            self.logger.info(
                f"   Stage {row['stage']}: {row['blocks']} x {row['block']}, "
                f"{row['in_channels']} -> {row['out_channels']} channels, "
                f"stride {row['stride']}, projection {'yes' if row['down_sample'] else 'no'}"
            )

        with open(self.experiment_dir / "architecture.json", 'w') as f:
            json.dump(stages, f, indent=2)
        return stages

    def log_graph(self, model: torch.nn.Module):
        """Write the model graph to TensorBoard"""
        if self.tb_writer is None:
            return
        dummy_input = torch.zeros(1, *model.input_shape)
        self.tb_writer.add_graph(model.get_model(), dummy_input)
        self.logger.info("🕸️ Model graph written to TensorBoard")

    def close(self):
        """Close all logging resources"""
        if self.tb_writer:
            self.tb_writer.close()

        self.logger.info("✅ Experiment logging completed")
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()


def setup_experiment_logging(
    experiment_name: str,
    config: Dict[str, Any],
    log_dir: str = "./logs",
    use_tensorboard: bool = False,
    log_level: str = "INFO"
) -> ModelLogger:
    """Setup experiment logging with configuration"""

    logger = ModelLogger(
        experiment_name=experiment_name,
        log_dir=log_dir,
        use_tensorboard=use_tensorboard,
        log_level=log_level
    )

    logger.log_config(config)

    return logger
