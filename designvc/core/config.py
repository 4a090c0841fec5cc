import sys
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

ROOT = Path(__file__).resolve().parents[2]
load_dotenv(ROOT / ".env", override=False)

# Origins the Adobe Express add-on is served from
DEFAULT_UI_ORIGINS = [
    "https://new.express.adobe.com",
    "http://localhost:5241",
]


class Settings(BaseSettings):
    port: int = Field(3001, validation_alias="PORT")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    # ───────────────── Relational store ─────────────────
    database_url: str = Field(
        "sqlite:///./design_versions.db",
        validation_alias="DATABASE_URL",
    )
    commit_max_attempts: int = Field(5, validation_alias="COMMIT_MAX_ATTEMPTS")

    # ───────────────── Blob store ───────────────────────
    # "gcp", "s3" or "memory"
    storage_backend: str = Field("gcp", validation_alias="STORAGE_BACKEND")

    # Map multiple possible env names to each field for robustness
    gcp_project: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "GCP_PROJECT_ID",
            "GCLOUD_PROJECT",
            "GOOGLE_CLOUD_PROJECT",
        ),
    )
    gcs_bucket: str | None = Field(
        None,
        validation_alias=AliasChoices("GCS_BUCKET", "GOOGLE_CLOUD_STORAGE_BUCKET"),
    )
    gcp_credentials_path: str | None = Field(
        None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS", "GCP_CREDENTIALS"),
    )

    # AWS S3
    aws_region: str = Field("ap-south-1", validation_alias="AWS_REGION")
    aws_access_key_id: str | None = Field(None, validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(None, validation_alias="AWS_SECRET_ACCESS_KEY")
    s3_bucket: str | None = Field(None, validation_alias="AWS_S3_BUCKET_NAME")

    # comma separated, appended to DEFAULT_UI_ORIGINS
    ui_origin: str = Field("", validation_alias="UI_ORIGIN")

    model_config = SettingsConfigDict(case_sensitive=False, env_file=".env", extra="allow")

    @property
    def ui_origins(self) -> list[str]:
        extra = [o.strip() for o in self.ui_origin.split(",") if o.strip() and o.strip() != "*"]
        return DEFAULT_UI_ORIGINS + [o for o in extra if o not in DEFAULT_UI_ORIGINS]


settings = Settings()

import os as _os
if settings.gcp_credentials_path:
    _os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", settings.gcp_credentials_path)
elif settings.storage_backend.lower() == "gcp":
    print("[designvc] WARNING: GOOGLE_APPLICATION_CREDENTIALS not set; relying on ADC.", file=sys.stderr)
