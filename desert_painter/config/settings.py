"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    allowed_origins: str = Field(default="*", description="CORS allowed origins, comma separated")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Logging format (plain or json)")

    # Terrain
    terrain_resolution: int = Field(default=200, ge=1, description="Samples per side minus one")
    terrain_size: float = Field(default=500.0, gt=0, description="World side length of the terrain")
    max_height: float = Field(default=100.0, gt=0, description="Elevation clamp applied to every sample")
    base_height: float = Field(default=3.0, description="Height scale of the nearest terrain layer")
    terrain_seed: int = Field(default=0, description="Seed for the dune noise")
    terrain_layers: int = Field(default=1, ge=1, le=8, description="Number of terrain layers")

    # Brush
    brush_unit: float = Field(default=1.0, gt=0, description="Height change of a full-strength raise/lower tick")
    brush_blend_rate: float = Field(default=0.1, gt=0, le=1, description="Per-tick blend rate for flatten/smooth")

    # Export
    export_dir: str = Field(default="./exports", description="Directory for exported heightmaps")
    export_prefix: str = Field(default="terrain-heightmap", description="Filename prefix for exported heightmaps")

    @property
    def cors_origins(self) -> list:
        """Split the allowed origins string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "DESERT_PAINTER_"


settings = Settings()
