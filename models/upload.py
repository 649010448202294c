from typing import Literal

from pydantic import BaseModel

FileKind = Literal["archive", "document", "image", "unsupported"]


class UploadedFile(BaseModel):
    """A file as received from the user (form upload, CLI path or ZIP entry).

    `content_type` is the declared MIME type and may be empty.
    """

    name: str
    content_type: str = ""
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def suffix(self) -> str:
        dot = self.name.rfind(".")
        return self.name[dot:].lower() if dot != -1 else ""
