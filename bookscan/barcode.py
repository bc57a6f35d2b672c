"""
Camera capture and barcode decoding for the capture detector.

Frames come from OpenCV, symbols are decoded with zxing-cpp (which, unlike
zbar, also reads Aztec codes).
"""
import os
import platform
from typing import List
import logging

import cv2
import zxingcpp

from bookscan.detector import CameraUnavailableError, CaptureDetector

logger = logging.getLogger(__name__)

SCAN_FORMATS = (
    zxingcpp.BarcodeFormat.QRCode
    | zxingcpp.BarcodeFormat.EAN8
    | zxingcpp.BarcodeFormat.EAN13
    | zxingcpp.BarcodeFormat.PDF417
    | zxingcpp.BarcodeFormat.Code128
    | zxingcpp.BarcodeFormat.UPCE
    | zxingcpp.BarcodeFormat.Aztec
)


def decode_frame(frame) -> List[str]:
    """Decoded texts found in a BGR frame, in reading order."""
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    results = zxingcpp.read_barcodes(gray, formats=SCAN_FORMATS)
    return [result.text.strip() for result in results if result.text and result.text.strip()]


def camera_permitted(index: int = 0) -> bool:
    """
    Whether the current user may open the camera.

    Only Linux exposes this up front (device node permissions); elsewhere
    the answer is assumed to be yes.
    """
    if platform.system().lower() != "linux":
        return True
    device = f"/dev/video{index}"
    if not os.path.exists(device):
        return True
    return os.access(device, os.R_OK)


def open_camera(index: int = 0, width: int = 640, height: int = 480):
    """
    Open a capture device.

    Raises:
        CameraUnavailableError: If the device cannot be opened
    """
    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        capture.release()
        raise CameraUnavailableError(f"Could not open camera {index}")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    logger.info(f"Opened camera {index}")
    return capture


def camera_detector(index: int = 0, cooldown: float = 1.0, dispatch=None) -> CaptureDetector:
    """Build a detector reading from camera ``index``."""
    kwargs = {"dispatch": dispatch} if dispatch is not None else {}
    return CaptureDetector(
        camera_factory=lambda: open_camera(index),
        decoder=decode_frame,
        cooldown=cooldown,
        authorize=lambda: camera_permitted(index),
        **kwargs
    )
