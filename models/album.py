from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from models.page import BookPage, Orientation

DEFAULT_TITLE = "Untitled Album"


class AlbumMetadata(BaseModel):
    """Everything about a published album except the page payloads.

    `created_at` is stored as UTC-aware. Naive datetimes supplied at
    construction are treated as UTC.
    """

    id: str
    slug: str
    title: str
    created_at: datetime
    page_count: int = Field(ge=0)
    dominant_orientation: Orientation
    double_page_spreads: list[tuple[int, int]] = Field(default_factory=list)
    share_url: str
    thumbnail: str = ""

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: datetime | str) -> datetime | str:
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class AlbumRecord(AlbumMetadata):
    """The persisted unit: one JSON object per album, keyed by slug."""

    pages: list[BookPage] = Field(default_factory=list)

    def metadata(self) -> AlbumMetadata:
        return AlbumMetadata.model_validate(self.model_dump(exclude={"pages"}))


class CreateAlbumPayload(BaseModel):
    title: str = DEFAULT_TITLE
    pages: list[BookPage] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def default_blank_title(cls, v: str | None) -> str:
        v = (v or "").strip()
        return v or DEFAULT_TITLE

    @field_validator("pages", mode="before")
    @classmethod
    def missing_pages_are_empty(cls, v: list | None) -> list:
        return [] if v is None else v


class CreateAlbumResponse(BaseModel):
    id: str
    slug: str
    share_url: str
    qr_png: str  # PNG data: URL
    metadata: AlbumMetadata
