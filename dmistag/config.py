"""DmiStag configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Codec settings, overridable through ``DMISTAG_*`` environment variables."""

    # Metadata block
    METADATA_KEYWORD: str = "Description"  # PNG text chunk holding the DMI block
    SUPPORTED_VERSIONS: list[str] = ["4.0"]

    # Cell size used when the header omits width / height
    DEFAULT_CELL_WIDTH: int = Field(default=32, ge=1)
    DEFAULT_CELL_HEIGHT: int = Field(default=32, ge=1)

    # Decoder: largest decompressed text chunk accepted
    MAX_TEXT_CHUNK: int = Field(default=256 * 1024 * 1024, ge=1)

    # Encoder
    PNG_COMPRESS_LEVEL: int = Field(default=9, ge=0, le=9)

    model_config = {"env_prefix": "DMISTAG_"}


settings = Settings()
