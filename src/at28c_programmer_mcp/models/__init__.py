"""Data models for device types, memory images and transfers."""

from .device import DeviceType, DEVICE_TYPES, get_device_type
from .image import VerifyReport, load_image, save_image
from .transfer import CancelToken, LoggingProgress, TransferResult, TransferStatus
