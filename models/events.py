from typing import Literal

from pydantic import BaseModel

StudioState = Literal["idle", "processing", "ready", "error"]


class ProcessingStatus(BaseModel):
    """Emitted by the studio while a batch is processed or published.

    The CLI logs these. The web studio renders the latest one.
    """

    state: StudioState = "idle"
    label: str = ""
    sublabel: str | None = None
    tone: Literal["default", "warning", "success", "error"] = "default"
