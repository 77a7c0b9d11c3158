"""Geometry building blocks for feature-based visual SLAM: frames, two-view
initialization, tracking overlay data, dataset loaders and plane detection."""

__version__ = "0.1.0"