"""Dataset orchestration against the in-memory backend.

Covers split sizing, background frames, file layout, resume, cancellation
and per-frame determinism.
"""

import math
import threading
from pathlib import Path

import numpy as np
import pytest
import yaml

from config import Config
from pool_scene.backend import NullBackend
from pool_scene.dataset import (
    SPLITS,
    DatasetGenerator,
    frame_rng,
    is_background_frame,
    plan_splits,
)
from pool_scene.errors import (
    CaptureError,
    GenerationCancelled,
    GenerationError,
    OutputDirectoryError,
)
from pool_scene.export import read_labels


def _config(tmp_path, total=10, **dataset):
    cfg = Config.for_smoketest()
    cfg.dataset.output_dir = str(tmp_path / "data")
    cfg.dataset.total_images = total
    for key, value in dataset.items():
        setattr(cfg.dataset, key, value)
    return cfg.validate()


def _run(cfg, backend=None, stop_event=None):
    backend = backend or NullBackend.from_config(cfg)
    summary = DatasetGenerator(cfg, backend, stop_event=stop_event).run()
    return backend, summary


def _files(root, split, kind):
    return sorted(p.name for p in (root / split / kind).iterdir())


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestSplitPlan:
    def test_small_dataset_all_train(self):
        plan = plan_splits(10, 0.7, 0.2)
        assert (plan.train, plan.valid, plan.test) == (10, 0, 0)

    def test_just_below_threshold(self):
        assert plan_splits(99, 0.7, 0.2).train == 99

    def test_hundred(self):
        plan = plan_splits(100, 0.7, 0.2)
        assert (plan.train, plan.valid, plan.test) == (70, 20, 10)

    @pytest.mark.parametrize("total", [100, 101, 333, 1000, 12345])
    @pytest.mark.parametrize("ratios", [(0.7, 0.2), (0.8, 0.1), (0.75, 0.15), (1.0, 0.0)])
    def test_sum_invariant(self, total, ratios):
        plan = plan_splits(total, *ratios)
        assert plan.total == total
        assert plan.train == math.floor(total * ratios[0])
        assert plan.test >= 0

    def test_custom_threshold(self):
        assert plan_splits(50, 0.5, 0.5, threshold=10).valid == 25


class TestFrameHelpers:
    def test_background_period(self):
        assert [i for i in range(70) if is_background_frame(i)] == [0, 30, 60]

    def test_frame_rng_depends_on_split(self):
        a = frame_rng(0, "train", 3).random()
        b = frame_rng(0, "valid", 3).random()
        c = frame_rng(0, "train", 3).random()
        assert a != b
        assert a == c


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerateTen:
    @pytest.fixture(scope="class")
    def run(self, tmp_path_factory):
        cfg = _config(tmp_path_factory.mktemp("ten"), total=10)
        backend, summary = _run(cfg)
        return cfg, backend, summary

    def test_layout(self, run):
        cfg, _, _ = run
        root = Path(cfg.dataset.output_dir)
        for split in SPLITS:
            assert (root / split / "images").is_dir()
            assert (root / split / "labels").is_dir()
        assert _files(root, "train", "images") == sorted(f"image_{i}.jpg" for i in range(10))
        assert _files(root, "train", "labels") == sorted(f"image_{i}.txt" for i in range(10))
        assert _files(root, "valid", "images") == []
        assert _files(root, "test", "images") == []

    def test_background_frame(self, run):
        cfg, backend, summary = run
        labels = Path(cfg.dataset.output_dir) / "train" / "labels"
        assert (labels / "image_0.txt").read_text() == ""
        assert backend.renders[0][0] is False
        assert all(visible for visible, _ in backend.renders[1:])
        assert backend.entities_visible is True
        assert summary.background == 1

    def test_labels_parse(self, run):
        cfg, _, _ = run
        labels = Path(cfg.dataset.output_dir) / "train" / "labels"
        n_lines = 0
        for path in labels.iterdir():
            for label in read_labels(path):
                assert 0 <= label.class_id <= 4
                coords = (label.x_center, label.y_center, label.width, label.height)
                assert all(0.0 <= v <= 1.0 for v in coords)
                n_lines += 1
        assert n_lines > 0

    def test_dynamics_reset_every_frame(self, run):
        _, backend, summary = run
        assert summary.written == 10
        assert backend.dynamics_resets == 10
        assert backend.applied == 10

    def test_descriptor(self, run):
        cfg, _, _ = run
        root = Path(cfg.dataset.output_dir)
        with open(root / "data.yaml") as f:
            data = yaml.safe_load(f)
        assert data["train"] == "train/images"
        assert data["val"] == "valid/images"
        assert data["nc"] == 5
        assert data["names"] == ["ball_0", "ball_1", "ball_2", "ball_3", "pocket"]
        assert Config.from_yaml(root / "config.yaml").to_dict() == cfg.to_dict()


def test_hundred_images_split(tmp_path):
    cfg = _config(tmp_path, total=100)
    backend, summary = _run(cfg)
    root = tmp_path / "data"
    counts = {split: len(_files(root, split, "images")) for split in SPLITS}
    assert counts == {"train": 70, "valid": 20, "test": 10}

    expected_background = sum(math.ceil(n / 30) for n in counts.values())
    assert summary.background == expected_background == 5
    assert sum(1 for visible, _ in backend.renders if not visible) == 5
    for split, n in counts.items():
        for i in range(0, n, 30):
            assert (root / split / "labels" / f"image_{i}.txt").read_text() == ""


def test_cleanup_removes_stale_files(tmp_path):
    cfg = _config(tmp_path, total=3)
    root = tmp_path / "data"
    (root / "train" / "images").mkdir(parents=True)
    stale = root / "train" / "images" / "image_99.jpg"
    stale.write_bytes(b"old")
    _run(cfg)
    assert not stale.exists()
    assert len(_files(root, "train", "images")) == 3


def test_output_path_is_a_file(tmp_path):
    cfg = _config(tmp_path, total=3)
    (tmp_path / "data").write_text("not a directory")
    with pytest.raises(OutputDirectoryError):
        _run(cfg)


class TestDeterminism:
    def test_same_seed_same_labels(self, tmp_path):
        a = _config(tmp_path / "a", total=6, seed=7)
        b = _config(tmp_path / "b", total=6, seed=7)
        _run(a)
        _run(b)
        for i in range(6):
            name = f"train/labels/image_{i}.txt"
            assert (tmp_path / "a" / "data" / name).read_text() == (
                tmp_path / "b" / "data" / name
            ).read_text()

    def test_different_seed_different_labels(self, tmp_path):
        a = _config(tmp_path / "a", total=6, seed=1)
        b = _config(tmp_path / "b", total=6, seed=2)
        _run(a)
        _run(b)
        texts_a = [(tmp_path / "a" / "data" / f"train/labels/image_{i}.txt").read_text() for i in range(1, 6)]
        texts_b = [(tmp_path / "b" / "data" / f"train/labels/image_{i}.txt").read_text() for i in range(1, 6)]
        assert texts_a != texts_b


class TestResume:
    def test_regenerates_only_missing(self, tmp_path):
        cfg = _config(tmp_path, total=10)
        _run(cfg)
        root = tmp_path / "data" / "train"
        originals = {p.name: p.read_bytes() for p in (root / "labels").iterdir()}
        (root / "images" / "image_3.jpg").unlink()
        (root / "labels" / "image_7.txt").unlink()

        cfg.dataset.resume = True
        backend, summary = _run(cfg)
        assert summary.written == 2
        assert summary.skipped == 8
        assert backend.applied == 2
        for name, content in originals.items():
            assert (root / "labels" / name).read_bytes() == content
        assert (root / "images" / "image_3.jpg").exists()

    def test_smaller_total_prunes_extra_frames(self, tmp_path):
        cfg = _config(tmp_path, total=10)
        _run(cfg)
        cfg.dataset.total_images = 6
        cfg.dataset.resume = True
        _, summary = _run(cfg)

        root = tmp_path / "data"
        assert summary.skipped == 6
        assert summary.written == 0
        assert _files(root, "train", "images") == sorted(f"image_{i}.jpg" for i in range(6))
        assert _files(root, "train", "labels") == sorted(f"image_{i}.txt" for i in range(6))


class TestCancellation:
    def test_stop_before_start(self, tmp_path):
        cfg = _config(tmp_path, total=5)
        stop = threading.Event()
        stop.set()
        backend = NullBackend.from_config(cfg)
        with pytest.raises(GenerationCancelled) as info:
            _run(cfg, backend, stop)
        assert (info.value.split, info.value.index) == ("train", 0)
        assert backend.renders == []
        assert backend.dynamics_resets == 1

    def test_stop_between_frames(self, tmp_path):
        cfg = _config(tmp_path, total=8)
        stop = threading.Event()

        class StoppingBackend(NullBackend):
            def render(self, state):
                if len(self.renders) == 2:
                    stop.set()
                return super().render(state)

        backend = StoppingBackend.from_config(cfg)
        with pytest.raises(GenerationCancelled) as info:
            _run(cfg, backend, stop)
        # The frame that saw the stop request still finishes
        assert info.value.index == 3
        assert len(_files(tmp_path / "data", "train", "images")) == 3


class TestFailures:
    def test_bad_frame_wrapped(self, tmp_path):
        cfg = _config(tmp_path, total=4)

        class BrokenBackend(NullBackend):
            def render(self, state):
                return np.zeros((2, 2, 3), dtype=np.uint8)

        with pytest.raises(GenerationError) as info:
            _run(cfg, BrokenBackend.from_config(cfg))
        assert info.value.split == "train"
        assert info.value.index == 0
        assert isinstance(info.value.__cause__, CaptureError)
        assert "--resume" in str(info.value)

    def test_missing_buffer_wrapped(self, tmp_path):
        cfg = _config(tmp_path, total=4)

        class EmptyBackend(NullBackend):
            def render(self, state):
                self.renders.append((self.entities_visible, state.skybox_index))
                return None

        backend = EmptyBackend.from_config(cfg)
        with pytest.raises(GenerationError) as info:
            _run(cfg, backend)
        assert isinstance(info.value.__cause__, CaptureError)
        # Visibility restored even though the frame failed
        assert backend.entities_visible is True
