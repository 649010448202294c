from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    data_dir: Path = Path("./data")
    base_url: str = "http://localhost:8000"
    public_host: str | None = None  # e.g. "flipbook.example.org"; wins over base_url
    blob_bucket: str | None = None
    blob_prefix: str = "albums"
    blob_endpoint_url: str | None = None
    ocr_language: str = "eng"
    max_upload_mb: int = 100
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLIPBOOK_",
        env_file_encoding="utf-8",
    )

    @field_validator("base_url")
    @classmethod
    def base_url_must_be_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("max_upload_mb")
    @classmethod
    def upload_limit_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_upload_mb must be at least 1")
        return v

    @property
    def albums_dir(self) -> Path:
        return self.data_dir / "albums"

    @property
    def qr_dir(self) -> Path:
        return self.data_dir / "qr"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def share_origin(self) -> str:
        if self.public_host:
            return f"https://{self.public_host}"
        return self.base_url

    @property
    def uses_blob_storage(self) -> bool:
        return bool(self.blob_bucket)
