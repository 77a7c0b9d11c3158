"""Readers for monocular and RGB-D dataset sequences, and timing helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence as SequenceType, Union

PathLike = Union[str, Path]

_TUM_HEADER_LINES = 3
_EUROC_TIME_SCALE = 1e9


@dataclass
class Sequence:
    """Image files of a sequence with their timestamps, and depth files for RGB-D."""

    images: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)
    depths: Optional[list[str]] = None

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[tuple[str, float]]:
        return iter(zip(self.images, self.timestamps))


@dataclass(frozen=True)
class TimingStats:
    """Summary of per-frame tracking times in seconds."""

    median: float
    mean: float
    total: float


def _content_lines(path: PathLike, skip: int = 0) -> Iterator[tuple[int, str]]:
    """Non-empty lines of a text file with their 1-based line numbers."""
    with open(path, encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if number <= skip:
                continue
            text = line.strip()
            if text:
                yield number, text


def _parse_time(token: str, path: PathLike, number: int) -> float:
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"{path}:{number}: bad timestamp {token!r}") from None


def _fields(text: str, count: int, path: PathLike, number: int) -> list[str]:
    parts = text.split()
    if len(parts) < count:
        raise ValueError(f"{path}:{number}: expected {count} fields, got {len(parts)}")
    return parts


def load_euroc_mono(image_path: PathLike, times_path: PathLike) -> Sequence:
    """Read a EuRoC timestamp list; each line names an image and gives nanoseconds."""
    sequence = Sequence()
    for number, text in _content_lines(times_path):
        sequence.images.append(f"{image_path}/{text}.png")
        token = text.split()[0]
        sequence.timestamps.append(_parse_time(token, times_path, number) / _EUROC_TIME_SCALE)
    return sequence


def load_kitti_mono(sequence_path: PathLike) -> Sequence:
    """Read a KITTI sequence: ``times.txt`` and images ``image_0/NNNNNN.png``."""
    times_file = f"{sequence_path}/times.txt"
    sequence = Sequence()
    for number, text in _content_lines(times_file):
        sequence.timestamps.append(_parse_time(text.split()[0], times_file, number))
    prefix = f"{sequence_path}/image_0/"
    sequence.images = [f"{prefix}{i:06d}.png" for i in range(len(sequence.timestamps))]
    return sequence


def load_tum_mono(rgb_file: PathLike) -> Sequence:
    """Read a TUM ``rgb.txt``: three header lines, then ``timestamp filename``."""
    sequence = Sequence()
    for number, text in _content_lines(rgb_file, skip=_TUM_HEADER_LINES):
        stamp, name = _fields(text, 2, rgb_file, number)[:2]
        sequence.timestamps.append(_parse_time(stamp, rgb_file, number))
        sequence.images.append(name)
    return sequence


def load_tum_rgbd(association_file: PathLike) -> Sequence:
    """Read a TUM association file: ``t_rgb rgb_file t_depth depth_file`` per line."""
    sequence = Sequence(depths=[])
    for number, text in _content_lines(association_file):
        stamp, rgb, _, depth = _fields(text, 4, association_file, number)[:4]
        sequence.timestamps.append(_parse_time(stamp, association_file, number))
        sequence.images.append(rgb)
        sequence.depths.append(depth)
    return sequence


def frame_wait_time(timestamps: SequenceType[float], index: int) -> float:
    """Time until the next frame is due; the last frame reuses the previous gap."""
    count = len(timestamps)
    if not 0 <= index < count:
        raise IndexError(f"frame index {index} out of range for {count} frames")
    if index < count - 1:
        return timestamps[index + 1] - timestamps[index]
    if index > 0:
        return timestamps[index] - timestamps[index - 1]
    return 0.0


def tracking_time_stats(times: SequenceType[float]) -> TimingStats:
    """Median (upper middle element), mean and total of tracking times."""
    ordered = sorted(times)
    if not ordered:
        raise ValueError("no tracking times to summarise")
    total = float(sum(ordered))
    return TimingStats(
        median=float(ordered[len(ordered) // 2]),
        mean=total / len(ordered),
        total=total,
    )