"""Batch coordinator that keeps flattened outputs in step with global parameters."""
from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import replace
import functools
import itertools
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
import uuid

from backdrop.classification import name_of
from backdrop.colors import normalize_hex_color
from backdrop.compositing import FlattenedImage, clamp_opacity, composite, validate_source
from backdrop.errors import InvalidColorError, RenderContextError, SourceDecodeError
from backdrop.utils.logging import format_duration, get_logger

from .config import CoordinatorSettings
from .models import GlobalParameters, PassJob, PassReport, PassState, TrackedImage, UploadedFile
from .previews import PreviewRegistry, PreviewStore

_LOGGER = get_logger(__name__)

Compositor = Callable[[bytes, str, int], FlattenedImage]
Saver = Callable[[str, bytes], Any]
TimerFactory = Callable[[float, Callable[[], None]], Any]


class BatchCoordinator:
    """Own the tracked images and global parameters and run recompute passes.

    At most one pass runs at a time. A pass request made while another pass
    is running is dropped; the coordinator remembers that something was
    dropped and starts a single full pass with the current parameters once
    the running pass settles. A pass whose parameters changed while it was
    running writes nothing back.

    Parameters
    ----------
    settings:
        Initial parameters and scheduling knobs.
    compositor:
        ``(source, background_hex, opacity) -> FlattenedImage``.
    previews:
        Store that hands out and releases preview handles.
    timer_factory:
        ``(seconds, callback) -> timer`` with ``start()`` and ``cancel()``;
        ``threading.Timer`` by default.
    sleep:
        Used to space out exports.
    executor:
        Pool used for per-image compositing. One is created (and owned) when
        omitted.
    """

    def __init__(
        self,
        settings: Optional[CoordinatorSettings] = None,
        compositor: Compositor = composite,
        previews: Optional[PreviewStore] = None,
        timer_factory: TimerFactory = threading.Timer,
        sleep: Callable[[float], None] = time.sleep,
        executor: Optional[Executor] = None,
    ) -> None:
        self._settings = settings or CoordinatorSettings()
        self._compositor = compositor
        self._previews = previews if previews is not None else PreviewRegistry()
        self._timer_factory = timer_factory
        self._sleep = sleep
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._settings.max_workers,
            thread_name_prefix="backdrop-composite",
        )

        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._images: Dict[str, TrackedImage] = {}
        self._params = GlobalParameters(
            background_color=self._settings.background_color,
            opacity=self._settings.opacity,
        )
        self._display_opacity = self._params.opacity
        self._pending_timer: Optional[Any] = None
        self._pending_opacity: Optional[int] = None
        self._debounce_token = 0
        self._running: Optional[PassJob] = None
        self._rerun_requested = False
        self._generation = 0
        self._pass_ids = itertools.count(1)
        self._closed = False

        self.pass_reports: List[PassReport] = []
        self.last_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # read-only views

    @property
    def previews(self) -> PreviewStore:
        return self._previews

    @property
    def parameters(self) -> GlobalParameters:
        with self._lock:
            return self._params

    @property
    def background_color(self) -> str:
        with self._lock:
            return self._params.background_color

    @property
    def background_name(self) -> str:
        return name_of(self.background_color)

    @property
    def opacity(self) -> int:
        """Opacity the collection is (or is being) rendered at."""
        with self._lock:
            return self._params.opacity

    @property
    def display_opacity(self) -> int:
        """Most recent opacity requested, including one still being debounced."""
        with self._lock:
            return self._display_opacity

    @property
    def state(self) -> PassState:
        with self._lock:
            if self._running is not None:
                return PassState.RUNNING
            if self._pending_timer is not None:
                return PassState.PENDING
            return PassState.IDLE

    @property
    def images(self) -> List[TrackedImage]:
        with self._lock:
            return list(self._images.values())

    def get(self, image_id: str) -> TrackedImage:
        with self._lock:
            return self._images[image_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)

    def __contains__(self, image_id: object) -> bool:
        with self._lock:
            return image_id in self._images

    # ------------------------------------------------------------------
    # operations

    def ingest(self, files: Iterable[UploadedFile]) -> List[str]:
        """Track every decodable image upload and flatten the new entries.

        Non-image uploads and payloads whose header cannot be read are
        skipped. Pixel decoding is left to the pass.

        Returns
        -------
        list of str
            Ids of the images that were accepted, in upload order.
        """
        accepted: List[TrackedImage] = []
        for upload in files:
            if not upload.is_image:
                _LOGGER.warning("Skipping %s: unsupported type %s.", upload.name, upload.mime_type)
                continue
            try:
                validate_source(upload.data)
            except SourceDecodeError as exc:
                _LOGGER.warning("Skipping %s: %s", upload.name, exc)
                continue
            accepted.append(
                TrackedImage(
                    id=uuid.uuid4().hex,
                    name=upload.name,
                    mime_type=upload.mime_type,
                    source=bytes(upload.data),
                    source_preview=self._previews.create(upload.data, upload.mime_type),
                    origin=upload.source_path,
                )
            )

        new_ids = [image.id for image in accepted]
        with self._lock:
            for image in accepted:
                self._images[image.id] = image
            if new_ids:
                _LOGGER.info("Ingested %d image(s); %d tracked.", len(new_ids), len(self._images))
                self._request_pass_locked(new_ids, reason="ingest")
        return new_ids

    def set_opacity(self, value: float | int | str) -> int:
        """Record a new opacity and (re)start the debounce window.

        The display value changes immediately; the recompute happens only
        after ``debounce_ms`` passes without another call.

        Returns
        -------
        int
            The clamped opacity.
        """
        opacity = clamp_opacity(value)
        with self._lock:
            self._display_opacity = opacity
            self._pending_opacity = opacity
            if self._pending_timer is not None:
                self._pending_timer.cancel()
            self._debounce_token += 1
            timer = self._timer_factory(
                self._settings.debounce_ms / 1000.0,
                functools.partial(self._on_debounce_elapsed, self._debounce_token),
            )
            timer.daemon = True
            self._pending_timer = timer
            timer.start()
            self._state_changed.notify_all()
        return opacity

    def set_background_color(self, value: str) -> bool:
        """Apply a new background color and recompute every image right away.

        Returns
        -------
        bool
            False when ``value`` is not a valid hex color; the current
            parameters are then left untouched.
        """
        try:
            normalized = normalize_hex_color(value)
        except InvalidColorError as exc:
            _LOGGER.warning("Ignoring background color: %s", exc)
            return False

        with self._lock:
            if normalized != self._params.background_color:
                self._params = replace(self._params, background_color=normalized)
                self._generation += 1
            _LOGGER.info("Background color set to %s (%s).", normalized, name_of(normalized))
            self._request_pass_locked(None, reason="background")
        return True

    def remove(self, image_id: str) -> TrackedImage:
        """Stop tracking ``image_id`` and release its preview handles.

        Raises
        ------
        KeyError
            If the id is not tracked.
        """
        with self._lock:
            image = self._images.pop(image_id)
            self._previews.release(image.source_preview)
            if image.derived_preview is not None:
                self._previews.release(image.derived_preview)
                image.derived_preview = None
        _LOGGER.info("Removed %s (%s).", image.name, image_id)
        return image

    def export(self, image_id: str, saver: Saver) -> bool:
        """Hand one flattened image to ``saver``; False if it has no output yet."""
        with self._lock:
            image = self._images[image_id]
            derived = image.derived
            name = image.output_name
        if derived is None:
            return False
        saver(name, derived.encoded)
        return True

    def export_all(self, saver: Saver) -> List[str]:
        """Hand every flattened image to ``saver`` in collection order.

        Images without output are skipped. Consecutive saves are spaced by
        ``export_spacing_ms``.
        """
        with self._lock:
            ready = [(image.output_name, image.derived) for image in self._images.values() if image.derived is not None]

        spacing = self._settings.export_spacing_ms / 1000.0
        exported: List[str] = []
        for index, (name, derived) in enumerate(ready):
            if index and spacing > 0:
                self._sleep(spacing)
            saver(name, derived.encoded)
            exported.append(name)
        _LOGGER.info("Exported %d image(s).", len(exported))
        return exported

    def wait_idle(self, timeout: Optional[float] = None, include_pending: bool = True) -> bool:
        """Block until no pass is running (and, by default, no opacity change is pending).

        Returns False if ``timeout`` expired first.
        """
        with self._state_changed:
            return self._state_changed.wait_for(
                lambda: self._running is None and (not include_pending or self._pending_timer is None),
                timeout,
            )

    def close(self, timeout: Optional[float] = None) -> None:
        """Cancel the pending debounce, let a running pass settle, stop the pool."""
        with self._state_changed:
            self._closed = True
            if self._pending_timer is not None:
                self._pending_timer.cancel()
                self._pending_timer = None
                self._pending_opacity = None
            self._state_changed.notify_all()
            self._state_changed.wait_for(lambda: self._running is None, timeout)
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "BatchCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # scheduling

    def _on_debounce_elapsed(self, token: int) -> None:
        with self._lock:
            if token != self._debounce_token or self._pending_timer is None:
                return
            opacity = self._pending_opacity
            self._pending_timer = None
            self._pending_opacity = None
            if opacity is not None and opacity != self._params.opacity:
                self._params = replace(self._params, opacity=opacity)
                self._generation += 1
            _LOGGER.debug("Opacity settled at %s.", self._params.opacity)
            self._request_pass_locked(None, reason="opacity")
            self._state_changed.notify_all()

    def _request_pass_locked(self, image_ids: Optional[Sequence[str]], reason: str) -> bool:
        """Start a pass over ``image_ids`` (all images when None). Caller holds the lock."""
        if self._closed:
            return False
        if self._running is not None:
            self._rerun_requested = True
            _LOGGER.debug("Pass request (%s) dropped; pass %d is running.", reason, self._running.pass_id)
            return False

        targets = list(self._images) if image_ids is None else [i for i in image_ids if i in self._images]
        if not targets:
            return False

        job = PassJob(
            pass_id=next(self._pass_ids),
            generation=self._generation,
            reason=reason,
            parameters=self._params,
            sources={image_id: self._images[image_id].source for image_id in targets},
        )
        self._running = job
        self._state_changed.notify_all()
        worker = threading.Thread(target=self._run_pass, args=(job,), name=f"backdrop-pass-{job.pass_id}", daemon=True)
        worker.start()
        return True

    def _run_pass(self, job: PassJob) -> None:
        params = job.parameters
        _LOGGER.info(
            "Pass %d started (%s) | images=%d | background=%s | opacity=%d",
            job.pass_id,
            job.reason,
            len(job.sources),
            params.background_color,
            params.opacity,
        )
        start = time.perf_counter()
        results: Dict[str, FlattenedImage] = {}
        failed: Dict[str, str] = {}
        error: Optional[BaseException] = None

        try:
            futures = {
                image_id: self._executor.submit(self._compositor, source, params.background_color, params.opacity)
                for image_id, source in job.sources.items()
            }
        except RuntimeError as exc:
            _LOGGER.error("Pass %d could not be scheduled: %s", job.pass_id, exc)
            futures = {}
            failed = {image_id: str(exc) for image_id in job.sources}
            error = exc

        # Wait for every image before deciding anything, even after a failure.
        for image_id, future in futures.items():
            try:
                results[image_id] = future.result()
            except SourceDecodeError as exc:
                failed[image_id] = str(exc)
                _LOGGER.warning("Pass %d: image %s skipped: %s", job.pass_id, image_id, exc)
            except RenderContextError as exc:
                failed[image_id] = str(exc)
                error = error or exc
                _LOGGER.error("Pass %d: rendering failed for %s: %s", job.pass_id, image_id, exc)
            except Exception as exc:
                failed[image_id] = str(exc)
                error = error or exc
                _LOGGER.exception("Pass %d: unexpected failure for %s", job.pass_id, image_id)

        self._commit(job, results, failed, error, time.perf_counter() - start)

    def _commit(
        self,
        job: PassJob,
        results: Dict[str, FlattenedImage],
        failed: Dict[str, str],
        error: Optional[BaseException],
        elapsed: float,
    ) -> None:
        with self._lock:
            self._running = None
            superseded = job.generation != self._generation
            discarded = error is not None or superseded
            updated: List[str] = []

            if error is not None:
                self.last_error = error
            elif not superseded:
                for image_id, flattened in results.items():
                    image = self._images.get(image_id)
                    if image is None:
                        continue
                    stale_preview = image.derived_preview
                    image.derived = flattened
                    image.current_opacity = job.parameters.opacity
                    image.background = job.parameters.background_color
                    image.derived_preview = self._previews.create(flattened.encoded, flattened.mime_type)
                    if stale_preview is not None:
                        self._previews.release(stale_preview)
                    updated.append(image_id)

            report = PassReport(
                pass_id=job.pass_id,
                reason=job.reason,
                parameters=job.parameters,
                targets=tuple(job.sources),
                updated=tuple(updated),
                failed=tuple(failed),
                failure_messages=dict(failed),
                discarded=discarded,
                error=str(error) if error is not None else None,
                elapsed_s=elapsed,
            )
            self.pass_reports.append(report)

            if error is not None:
                _LOGGER.error("Pass %d failed; no outputs written: %s", job.pass_id, error)
            elif superseded:
                _LOGGER.info("Pass %d superseded by newer parameters; results discarded.", job.pass_id)
            else:
                _LOGGER.info(
                    "Pass %d finished in %s | updated=%d failed=%d",
                    job.pass_id,
                    format_duration(elapsed),
                    len(updated),
                    len(failed),
                )

            follow_up = self._rerun_requested or superseded
            self._rerun_requested = False
            if follow_up:
                self._request_pass_locked(None, reason="follow-up")
            self._state_changed.notify_all()
