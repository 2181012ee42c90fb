"""
Configuration loader for the RMBG background-removal service.

Environment variables are centralized here to keep the rest of the code
focused on the image pipeline and to make operational tuning clear. The
model input size is deliberately not configurable: it is fixed by the
exported weights.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Square edge length the segmentation model was exported with.
MODEL_INPUT_SIZE = 1024

DEVICE_CHOICES = {"auto", "cpu", "cuda", "mps"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Model + inference
    rmbg_model_path: Path = Field(Path("models/model.onnx"))
    inference_device: str = Field("auto")
    onnx_intra_op_threads: int = Field(0, ge=0)

    # Concurrency / request limits
    batch_max_workers: int = Field(4, ge=1)
    max_upload_bytes: int = Field(25 * 1024 * 1024, gt=0)
    request_timeout_seconds: int = Field(30)

    # Cloudflare R2 / S3-compatible storage for /remove-bg/url
    r2_endpoint: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_public_base_url: Optional[str] = None

    log_level: str = Field("INFO")

    # Debugging
    debug: bool = Field(False)
    debug_output_dir: Path = Field(Path("/tmp/rmbg_debug"))

    @field_validator("inference_device")
    @classmethod
    def validate_device(cls, v: str) -> str:
        v = v.lower()
        if v not in DEVICE_CHOICES:
            raise ValueError("INFERENCE_DEVICE must be one of auto|cpu|cuda|mps")
        return v

    @property
    def storage_configured(self) -> bool:
        return all(
            [
                self.r2_endpoint,
                self.r2_access_key_id,
                self.r2_secret_access_key,
                self.r2_bucket_name,
            ]
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()
