[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "yolotrack"
version = "0.1.0"
description = "YOLOv8 output decoding, non-maximum suppression and Kalman-filter object tracking with line-crossing counts"
requires-python = ">=3.10"
keywords = ["yolov8", "object detection", "tracking", "kalman filter", "nms", "quantization"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["yolotrack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
