"""Tests for the batch coordinator's scheduling and bookkeeping."""
from __future__ import annotations

import io
import threading
from typing import Dict, Iterator, List

import numpy as np
import pytest
from PIL import Image

from backdrop.compositing import composite
from backdrop.coordination import (
    BatchCoordinator,
    CoordinatorSettings,
    PassState,
    PreviewRegistry,
    UploadedFile,
)
from backdrop.errors import RenderContextError, SourceDecodeError

from conftest import ManualTimerFactory, RecordingCompositor, oversized_png, png_bytes

WAIT = 5.0


def _uploads(*colors) -> List[UploadedFile]:
    return [
        UploadedFile(name=f"img_{index}.png", mime_type="image/png", data=png_bytes(color))
        for index, color in enumerate(colors)
    ]


@pytest.fixture
def registry() -> PreviewRegistry:
    return PreviewRegistry()


@pytest.fixture
def make_coordinator(timers: ManualTimerFactory, registry: PreviewRegistry) -> Iterator:
    created: List[BatchCoordinator] = []

    def _make(compositor=composite, **settings_kwargs) -> BatchCoordinator:
        settings_kwargs.setdefault("export_spacing_ms", 0)
        coordinator = BatchCoordinator(
            CoordinatorSettings(**settings_kwargs),
            compositor=compositor,
            previews=registry,
            timer_factory=timers,
        )
        created.append(coordinator)
        return coordinator

    yield _make
    for coordinator in created:
        coordinator.close(timeout=WAIT)


def test_ingest_tracks_images_and_skips_rejects(make_coordinator, registry: PreviewRegistry) -> None:
    coordinator = make_coordinator()
    files = _uploads((255, 0, 0), (0, 0, 255))
    files.append(UploadedFile(name="notes.txt", mime_type="text/plain", data=b"hello"))
    files.append(UploadedFile(name="broken.png", mime_type="image/png", data=b"\x89PNG garbage"))

    ids = coordinator.ingest(files)
    assert coordinator.wait_idle(WAIT)

    assert len(ids) == 2
    assert len(coordinator) == 2
    for image_id in ids:
        image = coordinator.get(image_id)
        assert image.derived is not None
        assert image.current_opacity == 100
        assert image.background == "#ffffff"
        assert registry.is_live(image.source_preview)
        assert registry.is_live(image.derived_preview)
    assert len(registry) == 4
    assert [image.name for image in coordinator.images] == ["img_0.png", "img_1.png"]


def test_ingest_pass_only_targets_new_images(make_coordinator) -> None:
    coordinator = make_coordinator()
    (first,) = coordinator.ingest(_uploads((10, 10, 10)))
    assert coordinator.wait_idle(WAIT)
    (second,) = coordinator.ingest(_uploads((20, 20, 20)))
    assert coordinator.wait_idle(WAIT)

    assert [report.targets for report in coordinator.pass_reports] == [(first,), (second,)]
    assert coordinator.pass_reports[-1].reason == "ingest"


def test_rapid_opacity_changes_run_one_pass_with_final_value(make_coordinator, timers: ManualTimerFactory) -> None:
    compositor = RecordingCompositor()
    coordinator = make_coordinator(compositor=compositor)
    ids = coordinator.ingest(_uploads((255, 0, 0), (0, 255, 0)))
    assert coordinator.wait_idle(WAIT)
    passes_before = len(coordinator.pass_reports)
    calls_before = len(compositor.calls)

    for value in (95, 90, 85, 80, 75, 70, 65, 60, 55, 50):
        coordinator.set_opacity(value)

    assert coordinator.display_opacity == 50
    assert coordinator.opacity == 100
    assert coordinator.state is PassState.PENDING
    assert len(timers.timers) == 10
    assert len(timers.active) == 1
    assert timers.active[0].interval == pytest.approx(0.15)

    # A superseded timer firing late must not do anything.
    timers.timers[0].callback()
    assert coordinator.state is PassState.PENDING

    timers.active[0].fire()
    assert coordinator.wait_idle(WAIT)

    new_reports = coordinator.pass_reports[passes_before:]
    assert len(new_reports) == 1
    assert new_reports[0].parameters.opacity == 50
    assert compositor.calls[calls_before:] == [("#ffffff", 50), ("#ffffff", 50)]
    assert all(coordinator.get(image_id).current_opacity == 50 for image_id in ids)
    assert coordinator.state is PassState.IDLE


def test_background_change_during_pending_opacity_keeps_both(make_coordinator, timers: ManualTimerFactory) -> None:
    coordinator = make_coordinator()
    (image_id,) = coordinator.ingest(_uploads((200, 100, 0)))
    assert coordinator.wait_idle(WAIT)

    coordinator.set_opacity(40)
    assert coordinator.set_background_color("#00FF00") is True
    assert coordinator.background_color == "#00ff00"
    assert coordinator.wait_idle(WAIT, include_pending=False)

    image = coordinator.get(image_id)
    assert image.background == "#00ff00"
    assert image.current_opacity == 100
    assert coordinator.state is PassState.PENDING

    timers.active[0].fire()
    assert coordinator.wait_idle(WAIT)

    image = coordinator.get(image_id)
    assert (image.background, image.current_opacity) == ("#00ff00", 40)
    expected = composite(image.source, "#00ff00", 40)
    assert np.array_equal(image.derived.pixels, expected.pixels)


def test_invalid_background_is_a_no_op(make_coordinator) -> None:
    coordinator = make_coordinator(background_color="#101010")
    coordinator.ingest(_uploads((1, 2, 3)))
    assert coordinator.wait_idle(WAIT)
    passes = len(coordinator.pass_reports)

    assert coordinator.set_background_color("#fff") is False
    assert coordinator.set_background_color("not a color") is False
    assert coordinator.background_color == "#101010"
    assert len(coordinator.pass_reports) == passes


def test_set_opacity_clamps(make_coordinator) -> None:
    coordinator = make_coordinator()
    assert coordinator.set_opacity(250) == 100
    assert coordinator.set_opacity(-3) == 0
    assert coordinator.set_opacity("42.4") == 42
    assert coordinator.display_opacity == 42
    with pytest.raises(ValueError):
        coordinator.set_opacity("half")


def test_background_name_follows_background(make_coordinator) -> None:
    coordinator = make_coordinator()
    assert coordinator.background_name == "White"
    coordinator.set_background_color("ff0000")
    assert coordinator.background_name == "Red"


def test_remove_mid_pass_discards_that_result(make_coordinator, registry: PreviewRegistry) -> None:
    gate = threading.Event()
    compositor = RecordingCompositor(gate=gate)
    coordinator = make_coordinator(compositor=compositor)
    keep_id, drop_id = coordinator.ingest(_uploads((0, 0, 0), (255, 255, 255)))
    assert compositor.entered.wait(WAIT)
    assert coordinator.state is PassState.RUNNING

    dropped = coordinator.remove(drop_id)
    assert not registry.is_live(dropped.source_preview)
    gate.set()
    assert coordinator.wait_idle(WAIT)

    assert drop_id not in coordinator
    assert coordinator.get(keep_id).derived is not None
    report = coordinator.pass_reports[0]
    assert report.updated == (keep_id,)
    assert not report.discarded
    assert len(registry) == 2


def test_remove_releases_source_and_derived_previews(make_coordinator, registry: PreviewRegistry) -> None:
    coordinator = make_coordinator()
    (image_id,) = coordinator.ingest(_uploads((5, 6, 7)))
    assert coordinator.wait_idle(WAIT)
    image = coordinator.get(image_id)
    handles = (image.source_preview, image.derived_preview)

    coordinator.remove(image_id)
    assert len(registry) == 0
    assert registry.released_count == 2
    assert not any(registry.is_live(handle) for handle in handles)
    with pytest.raises(KeyError):
        coordinator.remove(image_id)


def test_replacing_output_releases_stale_preview(make_coordinator, registry: PreviewRegistry) -> None:
    coordinator = make_coordinator()
    (image_id,) = coordinator.ingest(_uploads((90, 90, 90)))
    assert coordinator.wait_idle(WAIT)
    stale = coordinator.get(image_id).derived_preview

    coordinator.set_background_color("#000080")
    assert coordinator.wait_idle(WAIT)

    fresh = coordinator.get(image_id).derived_preview
    assert fresh != stale
    assert not registry.is_live(stale)
    assert registry.is_live(fresh)
    assert len(registry) == 2


def test_superseded_pass_is_discarded_and_rerun(make_coordinator) -> None:
    gate = threading.Event()
    compositor = RecordingCompositor(gate=gate)
    coordinator = make_coordinator(compositor=compositor)
    ids = coordinator.ingest(_uploads((255, 0, 0), (0, 0, 255)))
    assert compositor.entered.wait(WAIT)

    for color in ("#111111", "#222222", "#333333"):
        assert coordinator.set_background_color(color)
    gate.set()
    assert coordinator.wait_idle(WAIT)

    first, follow_up = coordinator.pass_reports
    assert first.discarded and first.updated == ()
    assert follow_up.reason == "follow-up"
    assert follow_up.parameters.background_color == "#333333"
    assert set(follow_up.updated) == set(ids)
    assert all(coordinator.get(image_id).background == "#333333" for image_id in ids)


def test_ingest_while_running_is_picked_up_by_follow_up(make_coordinator) -> None:
    gate = threading.Event()
    compositor = RecordingCompositor(gate=gate)
    coordinator = make_coordinator(compositor=compositor)
    (first,) = coordinator.ingest(_uploads((1, 1, 1)))
    assert compositor.entered.wait(WAIT)
    (second,) = coordinator.ingest(_uploads((2, 2, 2)))
    gate.set()
    assert coordinator.wait_idle(WAIT)

    assert not coordinator.pass_reports[0].discarded
    assert coordinator.get(first).derived is not None
    assert coordinator.get(second).derived is not None
    assert len(coordinator.pass_reports) == 2


def test_decode_failure_only_skips_that_image(make_coordinator) -> None:
    bad_source = png_bytes((13, 13, 13))

    def _flaky(source: bytes, background: str, opacity: int):
        if source == bad_source:
            raise SourceDecodeError("cannot read")
        return composite(source, background, opacity)

    coordinator = make_coordinator(compositor=_flaky)
    good_id, bad_id = coordinator.ingest(
        [
            UploadedFile("good.png", "image/png", png_bytes((200, 0, 0))),
            UploadedFile("bad.png", "image/png", bad_source),
        ]
    )
    assert coordinator.wait_idle(WAIT)

    report = coordinator.pass_reports[0]
    assert report.failed == (bad_id,)
    assert report.failure_messages == {bad_id: "cannot read"}
    assert report.updated == (good_id,)
    assert not report.discarded
    assert coordinator.get(bad_id).derived is None
    assert coordinator.last_error is None


def test_render_failure_discards_the_whole_pass(make_coordinator) -> None:
    bad_source = png_bytes((14, 14, 14))

    def _broken(source: bytes, background: str, opacity: int):
        if source == bad_source:
            raise RenderContextError("no surface")
        return composite(source, background, opacity)

    coordinator = make_coordinator(compositor=_broken)
    ids = coordinator.ingest(
        [
            UploadedFile("fine.png", "image/png", png_bytes((0, 200, 0))),
            UploadedFile("doomed.png", "image/png", bad_source),
        ]
    )
    assert coordinator.wait_idle(WAIT)

    report = coordinator.pass_reports[0]
    assert report.discarded
    assert report.error == "no surface"
    assert isinstance(coordinator.last_error, RenderContextError)
    assert all(coordinator.get(image_id).derived is None for image_id in ids)


def test_export_all_names_and_spacing(timers: ManualTimerFactory, registry: PreviewRegistry) -> None:
    sleeps: List[float] = []
    bad_source = png_bytes((15, 15, 15))

    def _partial(source: bytes, background: str, opacity: int):
        if source == bad_source:
            raise SourceDecodeError("cannot read")
        return composite(source, background, opacity)

    coordinator = BatchCoordinator(
        CoordinatorSettings(background_color="#000000", opacity=50, export_spacing_ms=100),
        compositor=_partial,
        previews=registry,
        timer_factory=timers,
        sleep=sleeps.append,
    )
    try:
        coordinator.ingest(
            [
                UploadedFile("a.png", "image/png", png_bytes((200, 100, 0))),
                UploadedFile("skip.png", "image/png", bad_source),
                UploadedFile("b.jpg", "image/png", png_bytes((0, 0, 0, 0))),
            ]
        )
        assert coordinator.wait_idle(WAIT)

        saved: Dict[str, bytes] = {}
        exported = coordinator.export_all(lambda name, data: saved.__setitem__(name, data))
    finally:
        coordinator.close(timeout=WAIT)

    assert exported == ["processed-a.png", "processed-b.jpg"]
    assert sleeps == [pytest.approx(0.1)]
    with Image.open(io.BytesIO(saved["processed-a.png"])) as img:
        assert img.mode == "RGB"
        assert img.getpixel((0, 0)) == (100, 50, 0)


def test_export_single_image(make_coordinator) -> None:
    gate = threading.Event()
    compositor = RecordingCompositor(gate=gate)
    coordinator = make_coordinator(compositor=compositor)
    (image_id,) = coordinator.ingest(_uploads((3, 3, 3)))
    saved: List[str] = []

    assert compositor.entered.wait(WAIT)
    assert coordinator.export(image_id, lambda name, data: saved.append(name)) is False
    gate.set()
    assert coordinator.wait_idle(WAIT)
    assert coordinator.export(image_id, lambda name, data: saved.append(name)) is True
    assert saved == ["processed-img_0.png"]


def test_real_timer_debounce_settles_on_last_value(registry: PreviewRegistry) -> None:
    compositor = RecordingCompositor()
    with BatchCoordinator(
        CoordinatorSettings(debounce_ms=50, export_spacing_ms=0),
        compositor=compositor,
        previews=registry,
    ) as coordinator:
        (image_id,) = coordinator.ingest(_uploads((120, 60, 30)))
        assert coordinator.wait_idle(WAIT)
        for value in (10, 20, 30, 40, 33):
            coordinator.set_opacity(value)
        assert coordinator.wait_idle(WAIT)

        assert [report.parameters.opacity for report in coordinator.pass_reports] == [100, 33]
        assert coordinator.get(image_id).current_opacity == 33


def test_close_cancels_pending_debounce(make_coordinator, timers: ManualTimerFactory) -> None:
    coordinator = make_coordinator()
    coordinator.set_opacity(10)
    pending = timers.active[0]
    coordinator.close(timeout=WAIT)

    assert pending.cancelled
    assert coordinator.state is PassState.IDLE
    assert coordinator.opacity == 100


def test_oversized_upload_is_skipped_and_batch_continues(make_coordinator) -> None:
    coordinator = make_coordinator()
    accepted = coordinator.ingest(
        [
            UploadedFile("huge.png", "image/png", oversized_png()),
            UploadedFile("ok.png", "image/png", png_bytes((1, 2, 3))),
        ]
    )
    assert coordinator.wait_idle(WAIT)

    assert [coordinator.get(image_id).name for image_id in accepted] == ["ok.png"]
    assert coordinator.get(accepted[0]).derived is not None


def test_ingest_does_not_decode_pixels(make_coordinator, monkeypatch) -> None:
    from backdrop.compositing import compositor as compositor_module

    decoded: List[int] = []
    real_decode = compositor_module.decode_source

    def _counting_decode(source):
        decoded.append(1)
        return real_decode(source)

    monkeypatch.setattr(compositor_module, "decode_source", _counting_decode)
    gate = threading.Event()
    recording = RecordingCompositor(gate=gate)
    coordinator = make_coordinator(compositor=recording)
    coordinator.ingest([UploadedFile(f"img_{i}.png", "image/png", png_bytes((i, i, i))) for i in range(3)])

    assert decoded == []
    gate.set()
    assert coordinator.wait_idle(WAIT)
    assert len(decoded) == 3
