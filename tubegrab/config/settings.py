import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")


class RedisConfig(BaseModel):
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=5, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class DownloadConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent downloads")
    timeout_seconds: int = Field(default=300, ge=10, description="Hard ceiling for one download")
    metadata_timeout: float = Field(default=30.0, gt=0, description="Timeout for metadata lookups")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp and upstream reads")
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Relay chunk size in bytes")


class ProviderConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable")
    allowed_hosts: List[str] = Field(
        default=[
            "youtube.com",
            "www.youtube.com",
            "m.youtube.com",
            "music.youtube.com",
            "gaming.youtube.com",
            "youtu.be",
            "www.youtube-nocookie.com",
        ],
        description="Hosts accepted by the URL validator",
    )
    js_runtime: Optional[str] = Field(default=None, description="JS runtime passed to yt-dlp")


class FFmpegConfig(BaseModel):
    binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    audio_codec: str = Field(default="aac", description="Audio codec for muxed output")
    log_level: str = Field(default="error", description="ffmpeg -loglevel value")


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Enable SSRF protection")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ja"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="tubegrab", description="API title")
    description: str = Field(default="Video analysis and streaming download API", description="API description")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(
        env_prefix="TUBEGRAB_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = "config.json") -> "Config":
        """Load configuration from JSON file"""
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                logger.info(f"Configuration loaded from {config_path}")
                return cls(**config_data)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load config from {config_path}: {str(e)}")
                logger.info("Using default configuration")
        else:
            logger.warning(f"Config file {config_path} not found, using defaults")

        return cls()

    @classmethod
    def load_from_env(cls) -> "Config":
        """Load configuration from legacy flat environment variables"""
        config_data: Dict[str, Any] = {}

        if os.getenv("REDIS_URL"):
            config_data["redis"] = {"url": os.getenv("REDIS_URL")}

        rate_limit = {}
        if os.getenv("RATE_LIMIT_REQUESTS"):
            rate_limit["max_requests"] = int(os.getenv("RATE_LIMIT_REQUESTS"))
        if os.getenv("RATE_LIMIT_WINDOW"):
            rate_limit["window_seconds"] = int(os.getenv("RATE_LIMIT_WINDOW"))
        if rate_limit:
            config_data["rate_limit"] = rate_limit

        download = {}
        if os.getenv("MAX_CONCURRENT_DOWNLOADS"):
            download["max_concurrent"] = int(os.getenv("MAX_CONCURRENT_DOWNLOADS"))
        if os.getenv("DOWNLOAD_TIMEOUT"):
            download["timeout_seconds"] = int(os.getenv("DOWNLOAD_TIMEOUT"))
        if download:
            config_data["download"] = download

        if os.getenv("YT_DLP_PATH"):
            config_data["provider"] = {"binary": os.getenv("YT_DLP_PATH")}

        if os.getenv("FFMPEG_PATH"):
            config_data["ffmpeg"] = {"binary": os.getenv("FFMPEG_PATH")}

        if os.getenv("ENABLE_SSRF_PROTECTION"):
            config_data["security"] = {
                "enable_ssrf_protection": os.getenv("ENABLE_SSRF_PROTECTION").lower() == "true"
            }

        if os.getenv("LOG_LEVEL"):
            config_data["logging"] = {"level": os.getenv("LOG_LEVEL")}

        if os.getenv("DEFAULT_LOCALE"):
            config_data["i18n"] = {"default_locale": os.getenv("DEFAULT_LOCALE")}

        return cls(**config_data) if config_data else cls()

    def save_to_file(self, config_path: str = "config.json"):
        """Save configuration to JSON file"""
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(self.dict(), f, indent=2, ensure_ascii=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            logger.error(f"Failed to save config to {config_path}: {str(e)}")

    def dict(self, **kwargs) -> Dict[str, Any]:
        """Convert to dictionary"""
        return super().model_dump(exclude_none=True, **kwargs)


def load_config() -> Config:
    """Load configuration with priority: config.json > env vars > defaults"""
    if os.path.exists(CONFIG_PATH):
        return Config.load_from_file(CONFIG_PATH)

    logger.info(f"Config file not found at {CONFIG_PATH}, checking environment variables")
    return Config.load_from_env()


config = load_config()
