"""Environment-driven settings for chatproxy."""
from dataclasses import dataclass
from functools import lru_cache
import os
import tempfile

from dotenv import load_dotenv

load_dotenv(".env.local")
load_dotenv()


@dataclass(frozen=True)
class Settings:
    security_key: str | None
    openai_api_key: str | None
    openai_project: str | None
    openai_organization: str | None
    openai_base_url: str | None
    log_access_token: str | None
    default_model: str
    default_embedding_model: str
    default_transcription_model: str
    default_temperature: float
    default_top_p: float
    request_timeout: float
    upstream_max_retries: int
    diagnostics_cooldown: float
    info_log_capacity: int
    error_log_capacity: int
    upload_tmp_dir: str
    inline_upload_max_bytes: int
    default_file_purpose: str
    max_body_mb: float
    log_level: str
    log_dir: str | None
    port: int

    @property
    def max_content_length(self) -> int:
        return int(self.max_body_mb * 1024 * 1024)


@lru_cache
def get_settings() -> Settings:
    """Load settings from environment variables."""
    return Settings(
        security_key=os.getenv("SECURITY_KEY") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_project=os.getenv("OPENAI_PROJECT") or None,
        openai_organization=os.getenv("OPENAI_ORGANIZATION") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        log_access_token=os.getenv("LOG_ACCESS_TOKEN") or None,
        default_model=os.getenv("DEFAULT_MODEL", "gpt-4o-mini"),
        default_embedding_model=os.getenv("DEFAULT_EMBEDDING_MODEL", "text-embedding-3-small"),
        default_transcription_model=os.getenv("DEFAULT_TRANSCRIPTION_MODEL", "whisper-1"),
        default_temperature=float(os.getenv("DEFAULT_TEMPERATURE", "0.5")),
        default_top_p=float(os.getenv("DEFAULT_TOP_P", "0.5")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "900")),
        upstream_max_retries=int(os.getenv("UPSTREAM_MAX_RETRIES", "2")),
        diagnostics_cooldown=float(os.getenv("DIAGNOSTICS_COOLDOWN", "10")),
        info_log_capacity=int(os.getenv("INFO_LOG_CAPACITY", "10")),
        error_log_capacity=int(os.getenv("ERROR_LOG_CAPACITY", "10")),
        upload_tmp_dir=os.getenv(
            "UPLOAD_TMP_DIR",
            os.path.join(tempfile.gettempdir(), "chatproxy-uploads"),
        ),
        inline_upload_max_bytes=int(os.getenv("INLINE_UPLOAD_MAX_BYTES", str(1024 * 1024))),
        default_file_purpose=os.getenv("DEFAULT_FILE_PURPOSE", "user_data"),
        max_body_mb=float(os.getenv("MAX_BODY_MB", "100")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR") or None,
        port=int(os.getenv("PORT", "3002")),
    )
