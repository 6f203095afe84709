from pathlib import Path

import pytest

from localrembg.algorithms.base import BackendKind
from localrembg.cli import build_config, parse_args, run
from localrembg.compositing import CompositePolicy


def test_defaults_keep_soft_alpha_and_auto_backend(tmp_path):
    args = parse_args(["--input-dir", str(tmp_path), "--output-dir", str(tmp_path / "out")])

    config = build_config(args)

    assert config.force_backend is None
    assert config.composite_policy is CompositePolicy.SOFT
    assert config.allow_local_models is False
    assert config.weights_dir == Path("~/.cache/localrembg").expanduser()


def test_hard_threshold_and_forced_backend(tmp_path):
    args = parse_args(
        [
            "--input-dir", str(tmp_path),
            "--output-dir", str(tmp_path / "out"),
            "--backend", "portable",
            "--hard-threshold", "0.3",
            "--local-models-dir", str(tmp_path / "models"),
        ]
    )

    config = build_config(args)

    assert config.force_backend is BackendKind.PORTABLE_COMPUTE
    assert config.composite_policy is CompositePolicy.HARD
    assert config.hard_threshold == pytest.approx(0.3)
    assert config.allow_local_models is True
    assert config.local_models_dir == tmp_path / "models"


def test_missing_input_dir_exits(tmp_path):
    with pytest.raises(SystemExit):
        run(["--input-dir", str(tmp_path / "missing"), "--output-dir", str(tmp_path / "out")])
