"""
Serial provisioning of device assets
"""

from .assets import AssetManager
from .models import UploadSession, UploadState
from .monitor import SerialMonitor
from .serial_link import SerialPortManager
from .serial_provisioner import (
    CONFIG_DEVICE_PATH,
    HTML_DEVICE_PATH,
    SerialProvisioner,
    iter_chunks,
    upload_handler_sketch,
)

__all__ = [
    'AssetManager',
    'UploadSession',
    'UploadState',
    'SerialMonitor',
    'SerialPortManager',
    'SerialProvisioner',
    'CONFIG_DEVICE_PATH',
    'HTML_DEVICE_PATH',
    'iter_chunks',
    'upload_handler_sketch',
]
