"""Capture a short burst of video frames and submit them as one extraction.

    IDLE -> CAPTURING -> SUBMITTING -> DONE
                 \\             \\-> FAILED
                  \\-> FAILED

A single cooperative asyncio loop grabs one frame per tick. The loop stops when
the buffer is full, when the source reports it has ended, or when
``signal_source_ended`` is called. The loop task has always finished before the
submission call starts.
"""
import asyncio
import enum
import logging
from io import BytesIO
from typing import List, Optional, Protocol, Sequence

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from mise_recipes.app.schemas.recipe import DietaryConstraintSet, Recipe
from mise_recipes.app.services.errors import ExtractionError
from mise_recipes.app.services.flow_state import ObservableFlow

logger = logging.getLogger(__name__)

MAX_FRAMES = 10


class FrameSource(Protocol):
    @property
    def ended(self) -> bool: ...

    async def grab_frame(self) -> Optional[bytes]: ...


class StaticFrameSource:
    """Replays frames that were captured elsewhere (e.g. uploaded by a client)."""

    def __init__(self, frames: Sequence[bytes]):
        self._frames = list(frames)
        self._index = 0

    @property
    def ended(self) -> bool:
        return self._index >= len(self._frames)

    async def grab_frame(self) -> Optional[bytes]:
        if self.ended:
            return None
        frame = self._frames[self._index]
        self._index += 1
        return frame


def downsample_frame(data: bytes, max_dimension: int = 512, quality: int = 70) -> bytes:
    """Shrink a frame so its longest side is at most ``max_dimension`` and re-encode as JPEG.

    Frames are never upscaled.
    """
    img = Image.open(BytesIO(data)).convert("RGB")
    w, h = img.size
    longest = max(w, h)
    if longest > max_dimension:
        scale = max_dimension / longest
        img = img.resize((max(1, int(w * scale)), max(1, int(h * scale))), Image.LANCZOS)
    out = BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


class FrameBatchState(str, enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


class FrameBatchSnapshot(BaseModel):
    state: FrameBatchState
    frame_count: int = 0
    recipe: Optional[Recipe] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class FrameBatchCapture(ObservableFlow[FrameBatchState]):
    transitions = {
        FrameBatchState.IDLE: frozenset({FrameBatchState.CAPTURING}),
        FrameBatchState.CAPTURING: frozenset({FrameBatchState.SUBMITTING, FrameBatchState.FAILED}),
        FrameBatchState.SUBMITTING: frozenset({FrameBatchState.DONE, FrameBatchState.FAILED}),
        FrameBatchState.DONE: frozenset(),
        FrameBatchState.FAILED: frozenset(),
    }

    def __init__(
        self,
        extractor,
        source: FrameSource,
        constraints: Optional[DietaryConstraintSet] = None,
        interval_seconds: float = 1.0,
        max_frames: int = MAX_FRAMES,
        max_dimension: int = 512,
        jpeg_quality: int = 70,
    ):
        super().__init__(FrameBatchState.IDLE)
        self.extractor = extractor
        self.source = source
        self.constraints = constraints or DietaryConstraintSet()
        self.interval_seconds = max(0.0, interval_seconds)
        self.max_frames = max(1, min(max_frames, MAX_FRAMES))
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.frames: List[bytes] = []
        self.recipe: Optional[Recipe] = None
        self.error: Optional[BaseException] = None
        self._source_ended = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, extractor, source: FrameSource, constraints=None, settings=None) -> "FrameBatchCapture":
        settings = settings or extractor.settings
        return cls(
            extractor,
            source,
            constraints,
            interval_seconds=settings.frame_capture_interval_seconds,
            max_frames=settings.frame_capture_max_frames,
            max_dimension=settings.frame_max_dimension,
            jpeg_quality=settings.frame_jpeg_quality,
        )

    def snapshot(self) -> FrameBatchSnapshot:
        error_code = getattr(self.error, "error_code", None) if self.error else None
        if isinstance(self.error, asyncio.CancelledError):
            error_code = "cancelled"
        return FrameBatchSnapshot(
            state=self.state,
            frame_count=len(self.frames),
            recipe=self.recipe,
            error_code=error_code or ("capture_failed" if self.error else None),
            error_message=(str(self.error) or type(self.error).__name__) if self.error else None,
        )

    def _fail(self, exc: BaseException) -> None:
        self.error = exc
        self._transition(FrameBatchState.FAILED)

    def signal_source_ended(self) -> None:
        """External "capture source ended" signal; wakes the loop before its next tick."""
        self._source_ended.set()

    def _should_stop(self) -> bool:
        return len(self.frames) >= self.max_frames or self.source.ended or self._source_ended.is_set()

    async def _tick(self) -> None:
        frame = await self.source.grab_frame()
        if not frame:
            return
        try:
            self.frames.append(downsample_frame(frame, self.max_dimension, self.jpeg_quality))
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Skipping unreadable frame #%d: %s", len(self.frames) + 1, exc)

    async def _capture_loop(self) -> None:
        while not self._should_stop():
            await self._tick()
            if self._should_stop():
                break
            try:
                await asyncio.wait_for(self._source_ended.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def run(self) -> Recipe:
        """Capture until done, then submit all frames in one extraction call."""
        self._require(FrameBatchState.IDLE)
        self._transition(FrameBatchState.CAPTURING)
        self._loop_task = asyncio.create_task(self._capture_loop())
        try:
            await self._loop_task
        except asyncio.CancelledError as exc:
            self._loop_task.cancel()
            self._fail(exc)
            raise
        except Exception as exc:
            logger.exception("Frame capture loop failed")
            self._fail(exc)
            raise
        finally:
            self._loop_task = None

        logger.info("Captured %d frame(s); submitting", len(self.frames))
        if not self.frames:
            error = ValueError("No frames were captured")
            self._fail(error)
            raise error

        self._transition(FrameBatchState.SUBMITTING)
        try:
            recipe = await self.extractor.extract_from_frames(list(self.frames), self.constraints)
        except (ExtractionError, asyncio.CancelledError) as exc:
            self._fail(exc)
            raise
        self.recipe = recipe
        self._transition(FrameBatchState.DONE)
        return recipe
