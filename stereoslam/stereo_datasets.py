"""Readers for stereo dataset sequences (EuRoC and KITTI layouts)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .datasets import PathLike, _content_lines, _parse_time

_EUROC_TIME_SCALE = 1e9


@dataclass
class StereoSequence:
    """Left and right image files of a stereo sequence with their timestamps."""

    left: list[str] = field(default_factory=list)
    right: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.left)

    def __iter__(self) -> Iterator[tuple[str, str, float]]:
        return iter(zip(self.left, self.right, self.timestamps))


def load_euroc_stereo(
    left_path: PathLike, right_path: PathLike, times_path: PathLike
) -> StereoSequence:
    """Read a EuRoC timestamp list naming left and right images, times in nanoseconds."""
    sequence = StereoSequence()
    for number, text in _content_lines(times_path):
        sequence.left.append(f"{left_path}/{text}.png")
        sequence.right.append(f"{right_path}/{text}.png")
        token = text.split()[0]
        sequence.timestamps.append(_parse_time(token, times_path, number) / _EUROC_TIME_SCALE)
    return sequence


def load_kitti_stereo(sequence_path: PathLike) -> StereoSequence:
    """Read a KITTI sequence: ``times.txt`` with ``image_0`` and ``image_1`` folders."""
    times_file = f"{sequence_path}/times.txt"
    sequence = StereoSequence()
    for number, text in _content_lines(times_file):
        sequence.timestamps.append(_parse_time(text.split()[0], times_file, number))
    left_prefix = f"{sequence_path}/image_0/"
    right_prefix = f"{sequence_path}/image_1/"
    count = len(sequence.timestamps)
    sequence.left = [f"{left_prefix}{i:06d}.png" for i in range(count)]
    sequence.right = [f"{right_prefix}{i:06d}.png" for i in range(count)]
    return sequence


def check_stereo_sequence(sequence: StereoSequence) -> int:
    """Check a stereo sequence is usable and return its number of image pairs."""
    if not sequence.left or not sequence.right:
        raise ValueError("no images in provided path")
    if len(sequence.left) != len(sequence.right):
        raise ValueError("different number of left and right images")
    return len(sequence.left)