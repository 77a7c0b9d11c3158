[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stereoslam"
version = "0.1.0"
description = "Geometry building blocks for feature-based visual SLAM: frames, two-view initialization, tracking overlay data, dataset loaders and plane detection."
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["slam", "visual-odometry", "computer-vision", "epipolar-geometry", "homography", "triangulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["stereoslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
