"""Pydantic configuration schema for the mail triage service.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on startup and hot-reload.

Usage:
    from mailtriage.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from pydantic import BaseModel, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

# Provider-side cap on one listing call; a larger backlog drains over several cycles
MAX_FETCH_PER_CYCLE = 50


class MailboxConfig(BaseModel):
    """Triage mailbox configuration."""

    address: str = Field(description="Address of the triage mailbox (polled and replied from)")
    user_id: str = Field(
        default="me",
        description="Gmail API user ID ('me' for the authenticated account)",
    )
    from_address: str | None = Field(
        default=None,
        description="From header for replies (defaults to the mailbox address)",
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Ensure the mailbox address looks like an email address."""
        v = v.strip()
        if "@" not in v:
            raise ValueError("Mailbox address must be an email address (e.g. triage@example.com)")
        return v

    @property
    def poll_query(self) -> str:
        """Provider search query selecting unread mail addressed to this mailbox."""
        return f"to:{self.address} is:unread"

    @property
    def reply_from(self) -> str:
        """Address used in the From header of clarification replies."""
        return self.from_address or self.address


class TriageConfig(BaseModel):
    """Triage engine and scheduler configuration."""

    interval_seconds: int = Field(
        default=60,
        ge=5,
        le=86400,
        description="How often to poll the mailbox (seconds)",
    )
    fetch_limit: int = Field(
        default=MAX_FETCH_PER_CYCLE,
        ge=1,
        le=MAX_FETCH_PER_CYCLE,
        description="Max unread messages requested per cycle",
    )
    max_concurrency: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Max simultaneous mailbox fetches / emails in processing",
    )
    max_overlapping_cycles: int = Field(
        default=1,
        ge=1,
        le=5,
        description="How many cycles may run at once if one outlives the interval",
    )
    advance_tracked_replies: bool = Field(
        default=False,
        description=(
            "Let a reply without the 'Analysis:' prefix advance a thread that is "
            "awaiting clarification (default: such replies are skipped)"
        ),
    )


class ModelsConfig(BaseModel):
    """Language model settings for intent classification."""

    triage: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model used to interpret incoming emails",
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for classification",
    )
    max_tokens: int = Field(
        default=1024,
        ge=64,
        le=8192,
        description="Maximum tokens in the classifier response",
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(
        default="127.0.0.1",
        description="Host to bind to",
    )
    port: int = Field(
        default=5000,
        ge=1,
        le=65535,
        description="Port to bind to",
    )


class AppConfig(BaseModel):
    """Root configuration schema for the mail triage service.

    This model validates the entire config.yaml structure. On startup and
    hot-reload, the YAML is parsed and validated against this schema.

    If validation fails on startup, the application exits with a clear error.
    If validation fails on hot-reload, the previous valid config is kept.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    mailbox: MailboxConfig
    triage: TriageConfig = Field(default_factory=TriageConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
