"""
Configuration Management System
==============================

Dataclass configuration for building ResNet models, with YAML/JSON
persistence and command line overrides.
"""

import os
import yaml
import json
import argparse
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, asdict, field
from pathlib import Path
import logging

from builder import OUTPUT_ACTIVATIONS, RESNET_CONFIG
from errors import InvalidConfigurationError, UnsupportedVersionError
from resnet import INITIALIZATIONS

logger = logging.getLogger(__name__)


@dataclass
class ModelConfig:
    """Model configuration parameters"""
    version: int = 18
    input_channels: int = 3
    input_width: int = 224
    input_height: int = 224
    include_top: bool = True
    pre_trained: bool = False
    num_classes: int = 1000
    output_layer: str = 'cross_entropy'
    initialization: str = 'kaiming'
    zero_init_residual: bool = False
    base_width: int = 64
    groups: int = 1
    weights_dir: str = './weights/resnet'


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    experiment_name: Optional[str] = None
    log_dir: str = './logs'
    use_tensorboard: bool = False


@dataclass
class Config:
    """Main configuration class"""
    model: ModelConfig = field(default_factory=ModelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Post-initialization validation"""
        self.validate()

    def validate(self):
        """Validate configuration parameters"""
        if self.model.version not in RESNET_CONFIG:
            raise UnsupportedVersionError(self.model.version, RESNET_CONFIG.keys())

        if self.model.pre_trained and not self.model.include_top:
            raise InvalidConfigurationError("pre_trained requires include_top")

        if self.model.output_layer not in OUTPUT_ACTIVATIONS:
            raise InvalidConfigurationError(
                f"Invalid output layer: {self.model.output_layer}. Valid options: {list(OUTPUT_ACTIVATIONS)}"
            )

        if self.model.initialization not in INITIALIZATIONS:
            raise InvalidConfigurationError(
                f"Invalid initialization: {self.model.initialization}. Valid options: {list(INITIALIZATIONS)}"
            )

        for name in ('input_channels', 'input_width', 'input_height'):
            if getattr(self.model, name) < 1:
                raise InvalidConfigurationError(f"{name} must be positive")

        # Log level validation
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.logging.log_level.upper() not in valid_log_levels:
            raise ValueError(f"Invalid log level: {self.logging.log_level}. Valid options: {valid_log_levels}")

    @property
    def model_name(self) -> str:
        return f'resnet{self.model.version}'

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    def save(self, path: str):
        """Save configuration to file"""
        config_dict = self.to_dict()

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if path.endswith('.yaml') or path.endswith('.yml'):
            with open(path, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)
        elif path.endswith('.json'):
            with open(path, 'w') as f:
                json.dump(config_dict, f, indent=2)
        else:
            raise ValueError("Unsupported file format. Use .yaml, .yml, or .json")

    @classmethod
    def load(cls, path: str) -> 'Config':
        """Load configuration from file"""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Configuration file not found: {path}")

        if path.endswith('.yaml') or path.endswith('.yml'):
            with open(path, 'r') as f:
                config_dict = yaml.safe_load(f)
        elif path.endswith('.json'):
            with open(path, 'r') as f:
                config_dict = json.load(f)
        else:
            raise ValueError("Unsupported file format. Use .yaml, .yml, or .json")

        return cls.from_dict(config_dict or {})

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'Config':
        """Create configuration from dictionary"""
        return cls(
            model=ModelConfig(**config_dict.get('model', {})),
            logging=LoggingConfig(**config_dict.get('logging', {}))
        )

    def update(self, updates: Dict[str, Any]):
        """Update configuration with new values and re-validate"""
        for section, values in updates.items():
            if hasattr(self, section):
                section_obj = getattr(self, section)
                for key, value in values.items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)
                    else:
                        logger.warning(f"Unknown parameter: {section}.{key}")
            else:
                logger.warning(f"Unknown section: {section}")
        self.validate()


class ConfigManager:
    """Keeps track of the active configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.config = None

        if config_path:
            self.load_config(config_path)

    def load_config(self, path: str):
        """Load configuration from file"""
        self.config = Config.load(path)
        self.config_path = path
        return self.config

    def create_default_config(self) -> Config:
        """Create default configuration"""
        self.config = Config()
        return self.config

    def create_experiment_config(self, experiment_name: str, **overrides) -> Config:
        """Create configuration for a specific experiment"""
        config = self.create_default_config()

        config.logging.experiment_name = experiment_name
        config.logging.log_dir = f'./experiments/{experiment_name}'

        if overrides:
            config.update(overrides)

        return config

    def save_config(self, path: Optional[str] = None):
        """Save current configuration"""
        if self.config is None:
            raise ValueError("No configuration loaded")

        save_path = path or self.config_path
        if save_path is None:
            raise ValueError("No save path specified")

        self.config.save(save_path)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='ResNet model configuration')

    # Model arguments
    parser.add_argument('--version', type=int, default=18,
                       choices=sorted(RESNET_CONFIG),
                       help='ResNet depth')
    parser.add_argument('--input-shape', type=int, nargs=3, default=[3, 224, 224],
                       metavar=('CHANNELS', 'HEIGHT', 'WIDTH'),
                       help='Channels-first input shape')
    parser.add_argument('--num-classes', type=int, default=1000,
                       help='Number of output classes')
    parser.add_argument('--no-top', action='store_true',
                       help='Build without the classification head')
    parser.add_argument('--pre-trained', action='store_true',
                       help='Load pre-trained weights from --weights-dir')
    parser.add_argument('--weights-dir', type=str, default='./weights/resnet',
                       help='Directory holding resnet<version>.pth archives')
    parser.add_argument('--output-layer', type=str, default='cross_entropy',
                       choices=list(OUTPUT_ACTIVATIONS),
                       help='Output layer policy')
    parser.add_argument('--initialization', type=str, default='kaiming',
                       choices=list(INITIALIZATIONS),
                       help='Weight initialization policy')

    # Logging arguments
    parser.add_argument('--log-level', type=str, default='INFO',
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                       help='Logging level')
    parser.add_argument('--log-file', type=str, default=None,
                       help='Also write logs to this file')

    # Configuration file
    parser.add_argument('--config', type=str, default=None,
                       help='Path to configuration file')
    return parser


def create_config_from_args(argv: Optional[List[str]] = None) -> Config:
    """Create configuration from command line arguments"""
    args = build_arg_parser().parse_args(argv)

    # Load from config file if provided
    if args.config:
        return Config.load(args.config)

    channels, height, width = args.input_shape
    return Config(
        model=ModelConfig(
            version=args.version,
            input_channels=channels,
            input_width=width,
            input_height=height,
            include_top=not args.no_top,
            pre_trained=args.pre_trained,
            num_classes=args.num_classes,
            output_layer=args.output_layer,
            initialization=args.initialization,
            weights_dir=args.weights_dir,
        ),
        logging=LoggingConfig(
            log_level=args.log_level,
            log_file=args.log_file,
        )
    )


def create_sample_configs(configs_dir: str = './configs'):
    """Write one sample configuration per supported version"""
    configs_dir = Path(configs_dir)
    configs_dir.mkdir(parents=True, exist_ok=True)

    for version in RESNET_CONFIG:
        config = Config(
            model=ModelConfig(version=version),
            logging=LoggingConfig(experiment_name=f'resnet{version}')
        )
        config.save(str(configs_dir / f'resnet{version}.yaml'))

    # Headless feature extractor for small images
    features_config = Config(
        model=ModelConfig(version=50, input_width=64, input_height=64, include_top=False),
        logging=LoggingConfig(experiment_name='resnet50_features')
    )
    features_config.save(str(configs_dir / 'resnet50_features.yaml'))

    logger.info(f"✅ Sample configurations created in {configs_dir}")
    return configs_dir
