"""
Single-shot barcode detection over a live camera feed.

States::

    UNCONFIGURED --configure() ok--------> ARMED
    UNCONFIGURED --permission refused----> DENIED   (terminal)
    ARMED        --first decoded symbol--> FIRED
    FIRED        --cooldown or reset()---> ARMED

Exactly one code is reported per ARMED period; everything decoded while
FIRED is dropped. Listener calls go through ``dispatch`` so the host can
move them onto its own thread.
"""
import threading
from enum import Enum
from typing import Any, Callable, Iterable, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = 1.0


class DetectorState(str, Enum):
    UNCONFIGURED = "unconfigured"
    ARMED = "armed"
    FIRED = "fired"
    DENIED = "denied"


class CameraUnavailableError(Exception):
    """No usable capture device."""


def call_now(callback: Callable[..., Any], *args) -> None:
    callback(*args)


class CaptureDetector:
    """Turns a frame stream into at most one decoded code per armed period."""

    def __init__(
        self,
        camera_factory: Callable[[], Any],
        decoder: Callable[[Any], Iterable[str]],
        cooldown: float = DEFAULT_COOLDOWN,
        dispatch: Callable[..., None] = call_now,
        authorize: Optional[Callable[[], bool]] = None,
        timer_factory=threading.Timer
    ):
        """
        Args:
            camera_factory: Opens the capture device. Must return an object with
                ``read() -> (ok, frame)`` and ``release()``. Raises
                PermissionError when access is refused, CameraUnavailableError
                or OSError when there is no usable device.
            decoder: Returns the decoded strings found in a frame, in order
            cooldown: Seconds before a fired detector re-arms itself
            dispatch: ``dispatch(callback, *args)`` delivers listener calls
            authorize: Optional permission check run before opening the device
            timer_factory: ``threading.Timer`` compatible factory for the cooldown
        """
        self.on_code_detected: Optional[Callable[[str], None]] = None
        self.on_permission_denied: Optional[Callable[[], None]] = None

        self.state = DetectorState.UNCONFIGURED
        self.did_return_result = False

        self._camera_factory = camera_factory
        self._decoder = decoder
        self._cooldown = cooldown
        self._dispatch = dispatch
        self._authorize = authorize
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._camera = None
        self._configuring = False
        self._timer = None
        self._generation = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_configured(self) -> bool:
        return self.state in (DetectorState.ARMED, DetectorState.FIRED)

    def configure(self) -> bool:
        """
        Open the capture device and arm the detector.

        Only the first attempt counts: while it is pending, and once it has
        succeeded, further calls return False and do nothing. A device
        failure leaves the detector unconfigured without notifying anyone.

        Returns:
            True if this call armed the detector
        """
        with self._lock:
            if self.is_configured or self._configuring or self.state is DetectorState.DENIED:
                logger.debug(f"configure() ignored in state {self.state.value}")
                return False
            self._configuring = True

        try:
            if self._authorize is not None and not self._authorize():
                self._deny()
                return False

            try:
                camera = self._camera_factory()
            except PermissionError:
                self._deny()
                return False
            except (CameraUnavailableError, OSError) as e:
                logger.warning(f"Camera unavailable: {e}")
                return False

            if camera is None:
                logger.warning("Camera factory returned no device")
                return False

            with self._lock:
                self._camera = camera
                self.state = DetectorState.ARMED
                self.did_return_result = False
            logger.info("Capture detector armed")
            return True
        finally:
            with self._lock:
                self._configuring = False

    def _deny(self):
        with self._lock:
            self.state = DetectorState.DENIED
            callback = self.on_permission_denied
        logger.warning("Camera permission denied")
        if callback is not None:
            self._dispatch(callback)

    def handle_symbols(self, codes: Iterable[str]) -> bool:
        """
        Report the first non-empty code if the detector is armed.

        Returns:
            True if a code was reported
        """
        with self._lock:
            if self.state is not DetectorState.ARMED or self.did_return_result:
                return False

            code = next((c for c in codes if c), None)
            if code is None:
                return False

            self.did_return_result = True
            self.state = DetectorState.FIRED
            self._schedule_rearm()
            callback = self.on_code_detected

        logger.info(f"Detected code {code}")
        if callback is not None:
            self._dispatch(callback, code)
        return True

    def process_frame(self, frame) -> bool:
        """Decode one frame. Frames are not decoded unless the detector is armed."""
        if self.state is not DetectorState.ARMED:
            return False
        return self.handle_symbols(self._decoder(frame))

    def reset(self) -> None:
        """Re-arm immediately, without waiting for the cooldown."""
        with self._lock:
            self._cancel_timer()
            self.did_return_result = False
            if self.state is DetectorState.FIRED:
                self.state = DetectorState.ARMED

    def _schedule_rearm(self):
        self._cancel_timer()
        self._timer = self._timer_factory(self._cooldown, self._rearm, args=(self._generation,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self):
        # Bumping the generation disarms a timer that is already running its callback
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _rearm(self, generation: int):
        with self._lock:
            if generation != self._generation or self.state is not DetectorState.FIRED:
                return
            self._timer = None
            self.did_return_result = False
            self.state = DetectorState.ARMED
        logger.debug("Cooldown elapsed, detector re-armed")

    def start(self) -> bool:
        """Run the capture loop on a background thread."""
        with self._lock:
            if not self.is_configured:
                return False
            if self._thread is not None and self._thread.is_alive():
                return True
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._capture_loop, name="capture-detector", daemon=True)
            self._thread.start()
        return True

    def _capture_loop(self):
        camera = self._camera
        while camera is not None and not self._stop_event.is_set():
            ok, frame = camera.read()
            if not ok:
                logger.warning("Could not read a frame, stopping capture")
                break
            try:
                self.process_frame(frame)
            except Exception:
                logger.exception("Frame processing failed, stopping capture")
                break

    def stop(self) -> None:
        """
        Stop capturing and cancel any pending cooldown.

        The detector stays configured and is left armed, so it can be
        started again.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        with self._lock:
            self._thread = None
            self._cancel_timer()
            self.did_return_result = False
            if self.state is DetectorState.FIRED:
                self.state = DetectorState.ARMED

    def close(self) -> None:
        """Stop capturing and release the device."""
        self.stop()
        with self._lock:
            camera, self._camera = self._camera, None
            if self.state is not DetectorState.DENIED:
                self.state = DetectorState.UNCONFIGURED
            self.did_return_result = False
        if camera is not None:
            camera.release()
