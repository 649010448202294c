from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

Orientation = Literal["portrait", "landscape", "square"]


def determine_orientation(width: int, height: int) -> Orientation:
    if width == height:
        return "square"
    return "landscape" if width > height else "portrait"


class NormalizedImage(BaseModel):
    """Output of the image normalizer for a single uploaded image.

    `image_data` and `thumbnail_data` are JPEG ``data:`` URLs.
    """

    width: int
    height: int
    orientation: Orientation
    image_data: str
    thumbnail_data: str
    dpi: int


class RenderedPage(BaseModel):
    """One rasterized document page (full raster plus thumbnail)."""

    image_data: str
    thumbnail_data: str
    width: int
    height: int


class BookPage(BaseModel):
    """A single page of an album.

    `orientation` is always computed from `width` and `height`; it cannot be
    set directly, so a submitted page can never carry an orientation that
    disagrees with its pixel dimensions.
    """

    id: str
    index: int = Field(ge=0)
    name: str
    width: int
    height: int
    dpi: int = 300
    image_data: str
    thumbnail_data: str
    ocr_text: str | None = None

    @field_validator("width", "height")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("width and height must be positive")
        return v

    @computed_field  # type: ignore[misc]
    @property
    def orientation(self) -> Orientation:
        return determine_orientation(self.width, self.height)


class PageSequence(BaseModel):
    """Assembled pages of one batch, ready to be published."""

    pages: list[BookPage] = Field(default_factory=list)
    dominant_orientation: Orientation = "portrait"
    double_page_spreads: list[tuple[int, int]] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def page_count(self) -> int:
        return len(self.pages)
