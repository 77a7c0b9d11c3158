import pytest

from stereoslam.datasets import (
    Sequence,
    TimingStats,
    frame_wait_time,
    load_euroc_mono,
    load_kitti_mono,
    load_tum_mono,
    load_tum_rgbd,
    tracking_time_stats,
)


def test_euroc_mono_names_and_scaling(tmp_path):
    times = tmp_path / "times.txt"
    times.write_text("1403636579763555584\n\n1403636579813555456\n")
    seq = load_euroc_mono("cam0/data", times)
    assert seq.images == [
        "cam0/data/1403636579763555584.png",
        "cam0/data/1403636579813555456.png",
    ]
    assert len(seq.timestamps) == 2
    gap = seq.timestamps[1] - seq.timestamps[0]
    assert gap == pytest.approx((1403636579813555456 - 1403636579763555584) * 1e-9, rel=1e-3)
    assert seq.depths is None


def test_euroc_mono_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_euroc_mono("imgs", tmp_path / "absent.txt")


def test_euroc_mono_bad_timestamp(tmp_path):
    times = tmp_path / "times.txt"
    times.write_text("notanumber\n")
    with pytest.raises(ValueError):
        load_euroc_mono("imgs", times)


def test_kitti_mono_sequence(tmp_path):
    (tmp_path / "times.txt").write_text("0.000000e+00\n1.036224e-01\n2.072447e-01\n")
    seq = load_kitti_mono(tmp_path)
    assert len(seq) == 3
    assert seq.timestamps[0] == 0.0
    assert seq.timestamps[1] == pytest.approx(1.036224e-01)
    assert seq.images[0] == f"{tmp_path}/image_0/000000.png"
    assert seq.images[2] == f"{tmp_path}/image_0/000002.png"


def test_tum_mono_skips_header(tmp_path):
    rgb = tmp_path / "rgb.txt"
    rgb.write_text(
        "# color images\n"
        "# file: 'rgbd_dataset'\n"
        "# timestamp filename\n"
        "1305031102.175304 rgb/1305031102.175304.png\n"
        "1305031102.211214 rgb/1305031102.211214.png\n"
    )
    seq = load_tum_mono(rgb)
    assert seq.images == ["rgb/1305031102.175304.png", "rgb/1305031102.211214.png"]
    assert seq.timestamps == [1305031102.175304, 1305031102.211214]
    assert list(seq) == list(zip(seq.images, seq.timestamps))


def test_tum_mono_header_only(tmp_path):
    rgb = tmp_path / "rgb.txt"
    rgb.write_text("1.0 a.png\n2.0 b.png\n3.0 c.png\n")
    seq = load_tum_mono(rgb)
    assert len(seq) == 0


def test_tum_rgbd_associations(tmp_path):
    assoc = tmp_path / "associations.txt"
    assoc.write_text(
        "1305031102.175304 rgb/1305031102.175304.png 1305031102.160407 depth/1305031102.160407.png\n"
        "1305031102.211214 rgb/1305031102.211214.png 1305031102.226738 depth/1305031102.226738.png\n"
    )
    seq = load_tum_rgbd(assoc)
    assert seq.images == ["rgb/1305031102.175304.png", "rgb/1305031102.211214.png"]
    assert seq.depths == ["depth/1305031102.160407.png", "depth/1305031102.226738.png"]
    assert seq.timestamps == [1305031102.175304, 1305031102.211214]
    assert len(seq.depths) == len(seq.images)


def test_tum_rgbd_short_line(tmp_path):
    assoc = tmp_path / "associations.txt"
    assoc.write_text("1.0 rgb/a.png\n")
    with pytest.raises(ValueError):
        load_tum_rgbd(assoc)


def test_wait_time_single_frame_is_zero():
    assert frame_wait_time([5.0], 0) == 0.0


def test_wait_time_last_reuses_previous_gap():
    stamps = [1.0, 1.5, 3.0, 3.25]
    assert frame_wait_time(stamps, 3) == frame_wait_time(stamps, 2)


def test_wait_times_telescope():
    stamps = [0.5, 0.75, 1.5, 4.0, 4.125]
    waits = [frame_wait_time(stamps, i) for i in range(len(stamps) - 1)]
    assert sum(waits) == pytest.approx(stamps[-1] - stamps[0])
    assert all(w > 0 for w in waits)


def test_wait_time_out_of_range():
    with pytest.raises(IndexError):
        frame_wait_time([1.0, 2.0], 2)


def test_tracking_stats_median_is_upper_middle():
    stats = tracking_time_stats([0.4, 0.1, 0.3, 0.2])
    assert stats.median == 0.3
    assert stats.mean * 4 == pytest.approx(stats.total)
    assert isinstance(stats, TimingStats)


def test_tracking_stats_odd_count():
    times = [0.3, 0.1, 0.2]
    stats = tracking_time_stats(times)
    assert stats.median == 0.2
    assert stats.total == pytest.approx(sum(times))
    assert min(times) <= stats.mean <= max(times)


def test_tracking_stats_empty():
    with pytest.raises(ValueError):
        tracking_time_stats([])


def test_sequence_len_matches_images():
    seq = Sequence(images=["a.png", "b.png"], timestamps=[1.0, 2.0])
    assert len(seq) == 2
    assert list(seq) == [("a.png", 1.0), ("b.png", 2.0)]