"""The studio: in-memory state of one upload-and-publish session.

State machine:
    idle ──process()──▶ processing ──▶ ready | error
    ready / error ──process()──▶ processing   (a new batch replaces the old one)

Only a ready studio with at least one page can publish.
"""
import logging
from collections.abc import Callable

from models.album import CreateAlbumPayload, CreateAlbumResponse
from models.events import ProcessingStatus, StudioState
from models.page import PageSequence
from models.upload import UploadedFile
from pipeline import stage4_assemble, stage5_publish
from pipeline.errors import EmptyAlbumError, ProcessingError
from pipeline.stage5_publish import Store
from settings import Settings

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[StudioState, frozenset[StudioState]] = {
    "idle": frozenset({"processing"}),
    "processing": frozenset({"ready", "error"}),
    "ready": frozenset({"processing"}),
    "error": frozenset({"processing"}),
}

_PROCESSING_FAILED = ProcessingStatus(
    state="error",
    label="Processing failed",
    sublabel="Please check your files and try again",
    tone="error",
)


class Studio:
    def __init__(
        self,
        settings: Settings,
        store: Store,
        include_ocr: bool = False,
        on_status: Callable[[ProcessingStatus], None] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.include_ocr = include_ocr
        self.on_status = on_status
        self.status = ProcessingStatus()
        self.sequence = PageSequence()
        self.result: CreateAlbumResponse | None = None

    @property
    def state(self) -> StudioState:
        return self.status.state

    def process(self, files: list[UploadedFile]) -> PageSequence:
        """Run one batch. On failure the studio ends in the error state.

        The previous sequence is kept until the new batch succeeds.
        """
        self._set_status(ProcessingStatus(state="processing", label="Analyzing uploads…"))
        self.result = None
        try:
            sequence = stage4_assemble.run(
                self.settings, files, include_ocr=self.include_ocr, on_status=self._progress,
            )
        except ProcessingError as exc:
            logger.error("Batch failed: %s", exc)
            self._set_status(_PROCESSING_FAILED)
            return self.sequence
        except Exception:
            # Unexpected failures still end the batch in the error state
            logger.exception("Batch failed unexpectedly")
            self._set_status(_PROCESSING_FAILED)
            raise

        self.sequence = sequence
        if not sequence.pages:
            self._set_status(ProcessingStatus(
                state="ready",
                label="Finished",
                sublabel="No convertible pages detected",
                tone="warning",
            ))
        else:
            self._set_status(ProcessingStatus(
                state="ready",
                label="Ready",
                sublabel=f"Loaded {sequence.page_count} pages",
                tone="success",
            ))
        return sequence

    def publish(self, title: str = "") -> CreateAlbumResponse:
        if self.state != "ready" or not self.sequence.pages:
            raise EmptyAlbumError("Nothing to publish: process at least one page first")
        payload = CreateAlbumPayload(title=title, pages=self.sequence.pages)
        self.result = stage5_publish.publish(self.settings, self.store, payload)
        self._set_status(ProcessingStatus(
            state="ready",
            label="Deployment ready",
            sublabel="Your QR code is live",
            tone="success",
        ))
        return self.result

    # -----------------------------------------------------------------------

    def _set_status(self, status: ProcessingStatus) -> None:
        if status.state != self.state and status.state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal studio transition {self.state} → {status.state}")
        self.status = status
        self._emit(status)

    def _progress(self, status: ProcessingStatus) -> None:
        # Progress updates never leave the processing state
        self.status = status
        self._emit(status)

    def _emit(self, status: ProcessingStatus) -> None:
        if self.on_status is not None:
            self.on_status(status)
