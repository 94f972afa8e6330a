from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Protocol

from core.config import MEDIA_ACQUIRE_TIMEOUT_SEC
from core.logger import log_event
from mockinterview.system_metrics import increment_metric
from .errors import DeviceLost, PermissionDenied
from .models import TrackKind

logger = logging.getLogger("interview.media")

TrackCallback = Callable[["MediaTrack"], None]
SendFn = Callable[[dict], None]


class MediaTrack:
    def __init__(
        self,
        kind: TrackKind,
        *,
        on_enabled_change: TrackCallback | None = None,
        on_stop: TrackCallback | None = None,
    ):
        self.kind = TrackKind(kind)
        self.enabled = True
        self.stopped = False
        self.ended_unexpectedly = False
        self._on_enabled_change = on_enabled_change
        self._on_stop = on_stop

    def set_enabled(self, enabled: bool) -> bool:
        if self.stopped:
            return False
        enabled = bool(enabled)
        if self.enabled == enabled:
            return True
        self.enabled = enabled
        if self._on_enabled_change is not None:
            self._on_enabled_change(self)
        return True

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self.enabled = False
        if self._on_stop is not None:
            self._on_stop(self)

    def mark_ended(self) -> None:
        # the device went away on its own; nothing left to stop on the client
        self.stopped = True
        self.enabled = False
        self.ended_unexpectedly = True


class MediaHandle:
    def __init__(self, tracks: list[MediaTrack], handle_id: str | None = None):
        self.handle_id = str(handle_id or uuid.uuid4())
        self.tracks = list(tracks or [])

    def track(self, kind: TrackKind) -> MediaTrack | None:
        wanted = TrackKind(kind)
        return next((item for item in self.tracks if item.kind == wanted), None)

    @property
    def active(self) -> bool:
        return any(not item.stopped for item in self.tracks)

    def stop_all(self) -> None:
        for item in self.tracks:
            item.stop()


class CaptureDevice(Protocol):
    async def request(self, video: bool, audio: bool) -> MediaHandle:
        ...


class MediaCaptureManager:
    """
    Owns the camera + microphone stream for one session.

    release() is safe on every exit path and may be called any number of
    times. A request still pending when release() runs is dropped: if it
    later resolves, its tracks are stopped and never attached.
    """

    def __init__(self, device: CaptureDevice, *, session_id: str = ""):
        self._device = device
        self.session_id = str(session_id or "")
        self.handle: MediaHandle | None = None
        self.released = False
        self.pending = False

    @property
    def active(self) -> bool:
        return self.handle is not None and not self.released and self.handle.active

    async def acquire(self) -> MediaHandle | None:
        if self.released:
            return None
        if self.handle is not None:
            return self.handle

        self.pending = True
        try:
            handle = await self._device.request(video=True, audio=True)
        except PermissionDenied:
            increment_metric("media_permission_denied")
            log_event("media", "permission_denied", self.session_id, level=logging.WARNING)
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            increment_metric("media_permission_denied")
            logger.warning("Capture request failed | session_id=%s error=%s", self.session_id, exc)
            raise PermissionDenied() from exc
        finally:
            self.pending = False

        if self.released:
            handle.stop_all()
            log_event("media", "late_stream_dropped", self.session_id, handle_id=handle.handle_id)
            return None

        self.handle = handle
        log_event(
            "media",
            "acquired",
            self.session_id,
            handle_id=handle.handle_id,
            tracks=[item.kind.value for item in handle.tracks],
        )
        return handle

    def set_track_enabled(self, kind: TrackKind, enabled: bool) -> bool:
        if self.handle is None or self.released:
            return False
        track = self.handle.track(kind)
        if track is None:
            return False
        return track.set_enabled(enabled)

    def track_enabled(self, kind: TrackKind) -> bool:
        if self.handle is None or self.released:
            return False
        track = self.handle.track(kind)
        return bool(track is not None and track.enabled and not track.stopped)

    def report_track_ended(self, kind: TrackKind) -> DeviceLost | None:
        if self.handle is None or self.released:
            return None
        track = self.handle.track(kind)
        if track is None or track.stopped:
            return None

        track.mark_ended()
        error = DeviceLost(track.kind.value)
        increment_metric("media_devices_lost")
        log_event("media", "device_lost", self.session_id, level=logging.WARNING, kind=track.kind)
        return error

    def release(self) -> None:
        first_release = not self.released
        self.released = True
        if self.handle is not None:
            self.handle.stop_all()
        if first_release:
            log_event("media", "released", self.session_id, had_stream=self.handle is not None, pending=self.pending)


class BrowserCaptureDevice:
    """
    Capture device backed by the candidate's browser: asks the page to call
    getUserMedia and waits for the page to report the outcome.
    """

    def __init__(self, send_fn: SendFn, timeout_sec: float | None = None):
        self._send = send_fn
        self.timeout_sec = max(0.01, float(MEDIA_ACQUIRE_TIMEOUT_SEC if timeout_sec is None else timeout_sec))
        self._future: asyncio.Future | None = None

    async def request(self, video: bool, audio: bool) -> MediaHandle:
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._send({"type": "media_request", "video": bool(video), "audio": bool(audio)})
        try:
            kinds = await asyncio.wait_for(self._future, timeout=self.timeout_sec)
        except asyncio.TimeoutError as exc:
            raise PermissionDenied("Camera and microphone request timed out") from exc
        finally:
            self._future = None

        return MediaHandle([self._make_track(kind) for kind in kinds])

    def resolve_granted(self, kinds: list[str] | None = None) -> bool:
        if self._future is None or self._future.done():
            return False
        resolved = [TrackKind(item) for item in (kinds or [TrackKind.VIDEO.value, TrackKind.AUDIO.value])]
        self._future.set_result(resolved)
        return True

    def resolve_denied(self, reason: str | None = None) -> bool:
        if self._future is None or self._future.done():
            return False
        self._future.set_exception(PermissionDenied(reason or None))
        return True

    def _make_track(self, kind: TrackKind) -> MediaTrack:
        return MediaTrack(
            kind,
            on_enabled_change=lambda track: self._send({
                "type": "media_track",
                "kind": track.kind.value,
                "enabled": track.enabled,
            }),
            on_stop=lambda track: self._send({
                "type": "media_track",
                "kind": track.kind.value,
                "stopped": True,
            }),
        )


class VirtualCaptureDevice:
    """Grants a stream immediately; used in QA mode and tests."""

    def __init__(self, kinds: tuple[TrackKind, ...] = (TrackKind.VIDEO, TrackKind.AUDIO)):
        self.kinds = tuple(kinds)
        self.handles: list[MediaHandle] = []

    async def request(self, video: bool, audio: bool) -> MediaHandle:
        await asyncio.sleep(0)
        handle = MediaHandle([MediaTrack(kind) for kind in self.kinds])
        self.handles.append(handle)
        return handle
