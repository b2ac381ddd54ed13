import os
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, field_validator


# Helper functions for parsing environment variables
def get_str_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)

def get_int_env(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default

def get_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key, str(default)).lower()
    return value == "true"

def get_str_list_env(key: str, default: str = "") -> List[str]:
    return [p.strip() for p in os.environ.get(key, default).split(",") if p.strip()]


# Default factory functions
def default_host() -> str:
    return get_str_env("HTTP_HOST", "0.0.0.0")

def default_http_port() -> int:
    return get_int_env("HTTP_PORT", 8080)

def default_data_dir() -> str:
    return get_str_env("DATA_DIR", str(Path.home() / ".courseshelf"))

def default_auth_header() -> str:
    return get_str_env("AUTH_USER_HEADER", "X-Forwarded-User")

def default_db_path() -> str:
    return get_str_env("DB_PATH", "courseshelf.db")

def default_media_roots() -> List[str]:
    return get_str_list_env("MEDIA_ROOTS")

def default_chunk_size_kb() -> int:
    return get_int_env("STREAM_CHUNK_SIZE_KB", 512)

def default_log_level() -> str:
    return get_str_env("LOG_LEVEL", "INFO")

def default_log_dir() -> str:
    return get_str_env("LOG_DIR", "logs")

def default_max_size_mb() -> int:
    return get_int_env("LOG_MAX_SIZE_MB", 10)

def default_backup_count() -> int:
    return get_int_env("LOG_BACKUP_COUNT", 5)

def default_use_color() -> bool:
    return get_bool_env("LOG_USE_COLOR", True)


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field(default_factory=default_host)
    http_port: int = Field(default_factory=default_http_port)
    data_dir: str = Field(default_factory=default_data_dir)
    auth_header: str = Field(default_factory=default_auth_header)


class DbConfig(BaseModel):
    """SQLite database configuration."""
    path: str = Field(default_factory=default_db_path)


class StreamConfig(BaseModel):
    """Media streaming configuration."""
    media_roots: List[str] = Field(default_factory=default_media_roots)
    chunk_size_kb: int = Field(default_factory=default_chunk_size_kb)

    @field_validator("chunk_size_kb")
    @classmethod
    def chunk_size_must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("chunk_size_kb must be positive")
        return value

    @property
    def chunk_size(self) -> int:
        return self.chunk_size_kb * 1024


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=default_log_level)
    log_dir: str = Field(default_factory=default_log_dir)
    max_size_mb: int = Field(default_factory=default_max_size_mb)
    backup_count: int = Field(default_factory=default_backup_count)
    use_color: bool = Field(default_factory=default_use_color)


class AppConfig(BaseModel):
    """Application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DbConfig = Field(default_factory=DbConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def db_file(self) -> Path:
        """Database file location; relative paths live under the data directory."""
        path = Path(self.db.path)
        if path.is_absolute():
            return path
        return Path(self.server.data_dir) / path


# Create a default config instance
config = AppConfig()
