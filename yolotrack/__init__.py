"""YOLOv8 output decoding, NMS post-processing, Kalman-filter tracking and drawing helpers."""

__version__ = "0.1.0"