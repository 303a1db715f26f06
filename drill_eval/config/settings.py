from typing import Literal, Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "drill_eval"
    url_override: Optional[str] = Field(
        default=None,
        validation_alias="DB_URL",
        description="Full SQLAlchemy URL; takes precedence over the discrete fields.",
    )
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )
    create_tables: bool = Field(
        default=True,
        description="Run metadata.create_all on startup.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        if self.url_override:
            return self.url_override
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class RedisConfig(BaseSettings):
    """Redis connection shared by the job queue and the rate limiter."""

    url: str = "redis://localhost:6379/0"
    key_prefix: str = "drill_eval"

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class QueueConfig(BaseSettings):
    """Default job options for the evaluation queue."""

    name: str = "evaluationQueue"
    attempts: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=1000, ge=0)
    remove_on_complete: int = Field(default=100, ge=0)
    remove_on_fail: int = Field(default=1000, ge=0)
    wait_poll_interval_ms: int = Field(default=100, ge=10)
    stalled_after_ms: int = Field(default=60_000, ge=1000)

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class WorkerConfig(BaseSettings):
    """Evaluation worker process configuration."""

    concurrency: int = Field(default=1, ge=1)
    idle_poll_interval_ms: int = Field(default=500, ge=10)

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class EvaluationConfig(BaseSettings):
    """Submission endpoint behaviour."""

    sync_timeout_ms: int = Field(default=30_000, ge=0)
    rate_limit_rpm: int = Field(default=60, ge=0)
    poll_after_ms: int = Field(default=3000, ge=0)
    poll_path_template: str = "/evaluate/{job_id}/status"

    model_config = SettingsConfigDict(
        env_prefix="EVALUATION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class OpenAIConfig(BaseSettings):
    """OpenAI configuration for Whisper and GPT scoring."""

    api_key: SecretStr | None = None
    scoring_model: str = "gpt-4o-2024-08-06"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    transcription_model: str = "whisper-1"
    language: str = "en"
    timeout_s: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="amazon.nova-micro-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    max_tokens: int = Field(
        default=1200,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=4096,
    )
    temperature: float = Field(
        default=0.3,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class TranscriptionConfig(BaseSettings):
    """Speech-to-text provider selection."""

    provider: Literal["openai", "aws"] = "openai"
    download_timeout_s: float = Field(default=30.0, gt=0)
    max_audio_bytes: int = Field(default=25 * 1024 * 1024, gt=0)
    aws_language_code: str = "en-US"
    aws_sample_rate_hz: int = 16000

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIPTION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class ScoringConfig(BaseSettings):
    """LLM scoring provider selection."""

    provider: Literal["openai", "bedrock"] = "openai"
    max_json_retries: int = Field(default=2, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration"""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    bucket_name: str = "drill-eval-recordings"
    audio_prefix: str = "evaluations"

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class SecurityConfig(BaseSettings):
    """JWT configuration."""

    jwt_secret_key: SecretStr = Field(
        default=SecretStr("change-me"),
        validation_alias="JWT_SECRET",
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expires_minutes: int = Field(
        default=60,
        validation_alias="JWT_EXPIRATION_MINUTES",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class SentryConfig(BaseSettings):
    """Error tracking configuration."""

    dsn: Optional[str] = None
    environment: str = "development"
    release: Optional[str] = None
    traces_sample_rate: float = Field(default=0.05, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="SENTRY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class PollingConfig(BaseSettings):
    """Client-side polling loop knobs."""

    interval_ms: int = Field(default=3000, ge=0)
    max_attempts: int = Field(default=40, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="POLLING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Drill Evaluation Service"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/evaluation_pipeline.log"
    analytics_log_file: str = "logs/analytics.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Redis / queue
    redis: RedisConfig = Field(default_factory=RedisConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)

    # External providers
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    s3: S3Config = Field(default_factory=S3Config)

    # Security
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # Telemetry
    sentry: SentryConfig = Field(default_factory=SentryConfig)

    # Client
    polling: PollingConfig = Field(default_factory=PollingConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
