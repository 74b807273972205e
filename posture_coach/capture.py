"""Frame sources: the local camera and base64 frames posted by the browser."""

import base64
import binascii
import logging
from typing import Optional, Union

import cv2
import numpy as np

from posture_coach.exceptions import CaptureInitializationError, InvalidPayloadError

logger = logging.getLogger("CameraSource")


class CameraSource:
    """Reads BGR frames from a local camera or video file with OpenCV."""

    def __init__(self, source: Union[int, str] = 0):
        self.source = source
        self.cap = None

    def acquire(self) -> 'CameraSource':
        """Open the device.

        Raises:
            CaptureInitializationError: The source cannot be opened
        """
        if self.cap is not None:
            return self
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise CaptureInitializationError(f"Failed to open video source: {self.source}")
        self.cap = cap
        logger.info("Opened video source %s", self.source)
        return self

    def read(self) -> Optional[np.ndarray]:
        """Grab the next frame, or None when the source has nothing to give."""
        if self.cap is None:
            return None
        ret, frame = self.cap.read()
        return frame if ret else None

    def release(self) -> None:
        """Stop the device; safe to call more than once."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info("Released video source %s", self.source)


def decode_frame(data_url: str) -> np.ndarray:
    """Decode a base64 image (optionally a ``data:`` URL) into a BGR frame.

    Raises:
        InvalidPayloadError: The string is not a decodable image
    """
    if not isinstance(data_url, str) or not data_url:
        raise InvalidPayloadError('image must be a non-empty base64 string')

    frame_data = data_url.split(',', 1)[1] if data_url.startswith('data:') else data_url
    try:
        img_bytes = base64.b64decode(frame_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayloadError('image is not valid base64') from e

    frame = cv2.imdecode(np.frombuffer(img_bytes, np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise InvalidPayloadError('image could not be decoded')
    return frame


def to_rgb(frame: np.ndarray) -> np.ndarray:
    """OpenCV BGR -> RGB, as the pose models expect."""
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
