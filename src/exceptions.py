"""
Error taxonomy for device discovery, validation and provisioning
"""

from typing import Optional


class DeployerError(Exception):
    """Base class for all deployment workflow errors"""


class ConnectivityError(DeployerError):
    """Transport or HTTP probe failed"""


class IdentityMismatchError(DeployerError):
    """Host is reachable but does not carry the expected firmware signature"""


class ProtocolError(DeployerError):
    """Serial read/write failure during provisioning or monitoring"""

    def __init__(self, message: str, session=None):
        super().__init__(message)
        self.session = session


class ToolchainError(DeployerError):
    """External compiler/uploader returned non-zero"""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class StageTimeoutError(DeployerError, TimeoutError):
    """A stage exceeded its wall-clock budget"""


class ConfigurationError(DeployerError, ValueError):
    """Invalid configuration or missing local asset"""
