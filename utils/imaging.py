"""Shared Pillow helpers: bounded downscaling, JPEG encoding and data: URLs."""
import base64
import io

from PIL import Image


def scale_to_long_edge(img: Image.Image, long_edge: int) -> Image.Image:
    """Downscale so the longer side is at most `long_edge`. Never upscales."""
    width, height = img.size
    longer = max(width, height)
    if longer <= long_edge:
        return img
    scale = long_edge / longer
    size = (max(1, round(width * scale)), max(1, round(height * scale)))
    return img.resize(size, Image.Resampling.LANCZOS)


def to_rgb(img: Image.Image) -> Image.Image:
    """Return an RGB copy; transparent areas are flattened onto white."""
    if img.mode == "RGB":
        return img
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def encode_jpeg(img: Image.Image, quality: int, exif: Image.Exif | None = None) -> bytes:
    buf = io.BytesIO()
    kwargs = {"format": "JPEG", "quality": quality}
    if exif is not None:
        kwargs["exif"] = exif.tobytes()
    to_rgb(img).save(buf, **kwargs)
    return buf.getvalue()


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(data: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.standard_b64encode(data).decode()}"


def from_data_url(url: str) -> bytes:
    """Decode a base64 ``data:`` URL back into raw bytes."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("not a base64 data: URL")
    return base64.standard_b64decode(payload)
