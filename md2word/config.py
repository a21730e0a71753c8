# md2word/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    MERMAID_INK_URL: str = "https://mermaid.ink/img/"
    CODECOGS_URL: str = "https://latex.codecogs.com/png.image"
    MATH_IMAGE_DPI: int = 300
    RASTER_TIMEOUT: float = 30.0

    DEFAULT_FONT: str = "Arial"
    DEFAULT_FONT_SIZE: int = 12

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="MD2WORD_", env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()

# Image layout, in pixels at 96 dpi
DIAGRAM_MAX_WIDTH_PX = 600
DIAGRAM_FALLBACK_SIZE_PX = (400, 300)
MATH_IMAGE_SCALE = 0.24
MATH_IMAGE_MAX_WIDTH_PX = 450
INLINE_MATH_HEIGHT_PX = 14
