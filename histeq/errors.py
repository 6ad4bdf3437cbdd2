class HistEqError(Exception):
    """Base class for every failure raised by the equalization pipeline."""


class ConfigurationError(HistEqError, ValueError):
    pass


class EmptyImageError(HistEqError, ValueError):
    pass


class DeviceResourceError(HistEqError, RuntimeError):
    """Device missing, allocation failure or driver error during a run."""

    def __init__(self, message, platform_message=None):
        if platform_message:
            message = f"{message}: {platform_message}"
        super().__init__(message)
        self.platform_message = platform_message


class KernelBuildError(HistEqError, RuntimeError):
    """A kernel failed to compile. `log` holds the full compiler diagnostic."""

    def __init__(self, kernel_name, log):
        super().__init__(f"Failed to build kernel '{kernel_name}':\n{log}")
        self.kernel_name = kernel_name
        self.log = log
