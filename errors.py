"""
Error Types for the ResNet Builder
==================================

Every failure raised while assembling a network is one of these. They fire
before or during construction; a build that raised is discarded and has to be
repeated from scratch with a fixed configuration.
"""


class ResNetError(Exception):
    """Base class for all builder errors"""


class UnsupportedVersionError(ResNetError, ValueError):
    """Requested depth is not one of the supported ResNet versions"""

    def __init__(self, version, supported=None):
        self.version = version
        self.supported = sorted(supported) if supported is not None else []
        super().__init__(
            f"ResNet version {version} is not supported. Available versions: {self.supported}"
        )


class InvalidConfigurationError(ResNetError, ValueError):
    """Builder arguments contradict each other"""


class ShapeUnderflowError(ResNetError, ValueError):
    """A convolution would produce a non-positive spatial size"""

    def __init__(self, size: int, kernel: int, stride: int, padding: int):
        self.size = size
        self.kernel = kernel
        self.stride = stride
        self.padding = padding
        super().__init__(
            f"Input size {size} with padding {padding} is smaller than kernel {kernel} "
            f"(stride {stride})"
        )
