# stereoslam

Geometry building blocks for feature-based visual SLAM, written on top of
NumPy.

## What is in it

- `stereoslam.frame`: `KeyPoint` and `Frame`.
  - `undistort_points(points, K, dist_coef)` removes radial and tangential
    lens distortion. The coefficients are k1, k2, p1, p2 and an optional k3.
  - `Frame` takes keypoints that were already detected, along with their
    descriptors. It undistorts the keypoints, computes the image bounds and
    assigns the features to a 64×48 grid.
  - `Frame.get_features_in_area(x, y, r, min_level, max_level)` returns the
    indices of the keypoints inside a square. You can limit the search to a
    range of pyramid levels.
  - `Frame.compute_stereo_from_rgbd(depth)` reads the depth of each keypoint
    from a registered depth image.
  - `Frame.set_pose(Tcw)` and `Frame.unproject_stereo(i)` give the world
    point of a keypoint that has a depth.
- `stereoslam.epipolar`: two-view geometry.
  - `normalize` centres and scales keypoints.
  - `compute_h21` and `compute_f21` estimate a homography and a rank-2
    fundamental matrix with a direct linear transform.
  - `decompose_e` gives the two rotations and the unit translation of an
    essential matrix.
  - `triangulate` does linear triangulation.
  - `check_rt` tests one motion hypothesis. It triangulates the inlier
    matches and checks that each point lies in front of both cameras and
    has a small enough reprojection error. The result is an `RTCheck` with
    `n_good`, `points`, `good` and `parallax`.
- `stereoslam.initializer`: monocular map initialization.
  - `Initializer` runs RANSAC over both a homography and a fundamental
    matrix, using a seeded random generator.
  - It picks one of the two models by the ratio of their scores.
  - It then recovers the relative motion and the 3D points.
  - The result is a `Reconstruction` with `rotation`, `translation`,
    `points` and `triangulated`, or `None` when no motion stands out
    clearly.
- `stereoslam.frame_drawer`: data for the tracking overlay.
  - `TrackingState` lists the tracker states.
  - `status_text` builds the status line shown under a frame.
  - `FrameDrawer` holds the latest tracking result and is safe to share
    between threads. Call `update` to store a result. `snapshot` returns
    initialization match lines and tracked keypoint marks, and counts map
    and odometry matches. `text_info` builds the status line for the
    state drawn last.
- `stereoslam.datasets`: loaders and timing for monocular and RGB-D
  sequences.
  - `load_euroc_mono`, `load_kitti_mono`, `load_tum_mono` and
    `load_tum_rgbd` read a sequence into a `Sequence` of image names,
    timestamps and, for RGB-D, depth image names.
  - `frame_wait_time` gives the playback delay between frames.
  - `tracking_time_stats` summarises tracking times as a `TimingStats` with
    `median`, `mean` and `total`.
- `stereoslam.stereo_datasets`: loaders for stereo sequences.
  - `load_euroc_stereo` and `load_kitti_stereo` read a sequence into a
    `StereoSequence`.
  - `check_stereo_sequence` rejects a sequence that is empty or whose left
    and right image lists differ in length.
- `stereoslam.ar`: virtual planes for augmented reality.
  - `exp_so3` gives the rotation of an axis-angle vector.
  - `detect_plane` fits a plane to map points with RANSAC.
  - `Plane` holds the world-to-plane transform. `Plane.recompute` refits it
    to the plane's points, and `Plane.gl_matrix` returns it as 16
    column-major values.
  - `status_label` gives the label text and colour for a tracking status.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example: two-view initialization

```python
import numpy as np
from stereoslam.frame import Frame, KeyPoint
from stereoslam.initializer import Initializer

K = np.array([[500.0, 0, 320], [0, 500.0, 240], [0, 0, 1]])
dist = np.zeros(4)

# keys1/keys2: lists of KeyPoint; matches12[i] is the index in keys2 matched
# to keys1[i], or -1 (at least eight matches are needed)
reference = Frame(keys1, None, 0.0, K, dist, 0.0, 0.0, (640, 480))
current = Frame(keys2, None, 0.1, K, dist, 0.0, 0.0, (640, 480))

initializer = Initializer(reference, sigma=1.0, iterations=200)
result = initializer.initialize(current, matches12)
if result is not None:
    print(result.rotation, result.translation)
```

## Example: loading a sequence

```python
from stereoslam.datasets import frame_wait_time, load_kitti_mono

sequence = load_kitti_mono("/data/kitti/00")
for index, (image, stamp) in enumerate(sequence):
    wait = frame_wait_time(sequence.timestamps, index)
```

## What it does not do

This package is a library of geometric pieces. It does not include:

- a command-line program;
- feature detection or descriptor extraction;
- image reading;
- left-right stereo matching;
- tracking, mapping, loop closing or bundle adjustment;
- trajectory files;
- any rendering.

`FrameDrawer` and `status_label` produce drawing data and text only. The
dataset loaders return file names and timestamps, and leave reading the
images to the caller.