import itertools

import pytest

from conftest import StubLoader
from localrembg.algorithms import MODNET, RMBG14
from localrembg.algorithms.base import BackendKind, RuntimeFlags
from localrembg.backend import BackendSelector, SelectionState
from localrembg.capabilities import PlatformProfile
from localrembg.errors import InitError

GPU = BackendKind.HIGH_PERF_GPU
PORTABLE = BackendKind.PORTABLE_COMPUTE


@pytest.mark.parametrize("has_gpu", [True, False])
def test_touch_apple_device_always_uses_portable(has_gpu):
    loader = StubLoader()
    profile = PlatformProfile(is_touch_apple_device=True, has_high_perf_gpu_api=has_gpu)

    handle = BackendSelector(profile, loader).select()

    assert handle.descriptor is RMBG14
    assert handle.backend_kind is PORTABLE
    assert [model_id for model_id, _ in loader.calls] == [RMBG14.id]


def test_touch_apple_carve_out_wins_over_forced_gpu():
    loader = StubLoader()
    profile = PlatformProfile(is_touch_apple_device=True, has_high_perf_gpu_api=True)

    handle = BackendSelector(profile, loader, force_backend=GPU).select()

    assert handle.backend_kind is PORTABLE
    assert len(loader.calls) == 1


def test_gpu_profile_loads_gpu_model():
    loader = StubLoader()
    selector = BackendSelector(PlatformProfile(has_high_perf_gpu_api=True), loader)

    handle = selector.select()

    assert handle.descriptor is MODNET
    assert handle.backend_kind is GPU
    assert handle.flags == RuntimeFlags(allow_local_models=False, proxy=False)
    assert selector.trace == [
        SelectionState.START,
        SelectionState.HIGH_PERF_GPU_LOAD,
        SelectionState.READY,
    ]


def test_gpu_load_failure_falls_back_to_portable():
    loader = StubLoader(fail={GPU})
    selector = BackendSelector(PlatformProfile(has_high_perf_gpu_api=True), loader)

    handle = selector.select()

    assert handle.descriptor is RMBG14
    assert handle.backend_kind is PORTABLE
    assert [model_id for model_id, _ in loader.calls] == [MODNET.id, RMBG14.id]
    assert selector.trace[-1] is SelectionState.READY
    assert SelectionState.FAILED not in selector.trace


def test_gpu_is_not_retried_after_failure():
    loader = StubLoader(fail={GPU})
    BackendSelector(PlatformProfile(has_high_perf_gpu_api=True), loader).select()

    assert sum(1 for model_id, _ in loader.calls if model_id == MODNET.id) == 1


def test_no_gpu_api_goes_straight_to_portable():
    loader = StubLoader()
    handle = BackendSelector(PlatformProfile(), loader).select()

    assert handle.backend_kind is PORTABLE
    assert len(loader.calls) == 1


def test_both_loads_failing_raises_init_error():
    loader = StubLoader(fail={GPU, PORTABLE})
    selector = BackendSelector(PlatformProfile(has_high_perf_gpu_api=True), loader)

    with pytest.raises(InitError) as excinfo:
        selector.select()

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert selector.trace[-1] is SelectionState.FAILED


@pytest.mark.parametrize(
    "touch_apple,has_gpu",
    list(itertools.product([True, False], repeat=2)),
)
def test_runtime_flags_match_backend_kind(touch_apple, has_gpu):
    loader = StubLoader(fail={GPU})
    profile = PlatformProfile(is_touch_apple_device=touch_apple, has_high_perf_gpu_api=has_gpu)

    handle = BackendSelector(profile, loader).select()

    for model_id, flags in loader.calls:
        assert flags.proxy is (model_id == RMBG14.id)
        assert flags.allow_local_models is False
    assert handle.flags.proxy is True


def test_forced_portable_skips_gpu():
    loader = StubLoader()
    profile = PlatformProfile(has_high_perf_gpu_api=True)

    handle = BackendSelector(profile, loader, force_backend=PORTABLE).select()

    assert handle.backend_kind is PORTABLE
    assert [model_id for model_id, _ in loader.calls] == [RMBG14.id]


def test_forced_gpu_tries_gpu_without_advertised_api():
    loader = StubLoader()

    handle = BackendSelector(PlatformProfile(), loader, force_backend=GPU).select()

    assert handle.backend_kind is GPU


def test_allow_local_models_is_passed_to_every_attempt():
    loader = StubLoader(fail={GPU})
    BackendSelector(
        PlatformProfile(has_high_perf_gpu_api=True),
        loader,
        allow_local_models=True,
    ).select()

    assert all(flags.allow_local_models for _, flags in loader.calls)
