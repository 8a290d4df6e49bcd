"""Service configuration.

Configuration is read from a YAML document with upper-case top-level keys::

    APP_NAME: chatfiles
    MACHINE_ID: 1
    DB:
      TYPE: json_file_db
      PATH: /var/lib/chatfiles/db.json
    STORE:
      TYPE: local_store
      ROOT: /var/lib/chatfiles/files
    PREVIEW:
      MAX_WIDTH: 800
      MAX_HEIGHT: 400
    TELEMETRY:
      enabled: true
      endpoint: http://otel-collector:4317

``DB`` and ``STORE`` sections are validated by the backend named in their
``TYPE`` key.
"""

import logging
import sys
import typing as t
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .db.db import DBConfig
from .db.db_loader import get_db_module
from .ids import BIT_LEN_MACHINE_ID
from .store.store import StoreConfig
from .store.store_loader import get_store_module


class StrictBaseModel(BaseModel):
    """Base model with immutable (frozen) configuration."""

    model_config = ConfigDict(frozen=True)


class PreviewConfig(StrictBaseModel):
    """Bounds and quality of generated image previews.

    Attributes:
        max_width: Landscape images wider than this are scaled down to it
        max_height: Images taller than this are scaled down to it
        jpeg_quality: JPEG encoder quality for non-GIF previews
    """

    max_width: int = Field(default=800, alias="MAX_WIDTH", gt=0)
    max_height: int = Field(default=400, alias="MAX_HEIGHT", gt=0)
    jpeg_quality: int = Field(default=85, alias="JPEG_QUALITY", ge=1, le=95)


class TelemetryConfig(StrictBaseModel):
    """Span export settings.

    Attributes:
        enabled: Install a tracer provider at startup
        endpoint: OTLP/gRPC collector URL, e.g. http://localhost:4317
        console_export: Also print finished spans to stdout
        timeout: Exporter timeout in seconds
        deployment_environment: Reported as deployment.environment
        service_instance_id: Reported as service.instance.id, generated when unset
    """

    enabled: bool = Field(default=False, alias="enabled")
    endpoint: t.Optional[str] = Field(default=None, alias="endpoint")
    console_export: bool = Field(default=False, alias="console_export")
    timeout: int = Field(default=10, alias="timeout", gt=0)
    deployment_environment: t.Optional[str] = Field(default=None, alias="deployment_environment")
    service_instance_id: t.Optional[str] = Field(default=None, alias="service_instance_id")

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: t.Optional[str]) -> t.Optional[str]:
        if v is not None:
            parsed = urlparse(v)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ValueError(f"Invalid endpoint: '{v}'. Must be http(s)://host[:port]")
        return v


class Config(StrictBaseModel):
    """Main service configuration.

    Attributes:
        app_name: Service name, used for telemetry
        db: Database configuration
        store: Content store configuration; uploads fail without one
        preview: Preview generation settings
        telemetry: OpenTelemetry configuration
        machine_id: Machine id embedded in generated ids, unique per process
        log_level: Level for the chatfiles loggers
    """

    app_name: str = Field(default="chatfiles", alias="APP_NAME")
    db: DBConfig = Field(alias="DB")
    store: t.Optional[StoreConfig] = Field(default=None, alias="STORE")
    preview: PreviewConfig = Field(default_factory=PreviewConfig, alias="PREVIEW")
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig, alias="TELEMETRY")
    machine_id: int = Field(default=0, alias="MACHINE_ID", ge=0, lt=1 << BIT_LEN_MACHINE_ID)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @classmethod
    def model_validate(
        cls,
        obj: t.Any,
        *,
        strict: bool | None = None,
        from_attributes: bool | None = None,
        context: dict[str, t.Any] | None = None,
    ) -> "Config":
        """Validate a raw configuration mapping.

        The ``DB`` and ``STORE`` sections are first validated against the
        config class of their backend, so backend-specific keys (``PATH``,
        ``ROOT``, ``BUCKET_NAME``, ...) are checked and kept. The input
        mapping is not modified.

        Raises:
            ConfigurationError: If a section names an unknown backend
            pydantic.ValidationError: If any section is invalid
        """
        obj = dict(obj)
        obj["DB"] = get_db_module(obj["DB"]["TYPE"]).db_config_type().model_validate(obj["DB"])
        if obj.get("STORE") is not None:
            store_module = get_store_module(obj["STORE"]["TYPE"])
            obj["STORE"] = store_module.store_config_type().model_validate(obj["STORE"])
        return super().model_validate(
            obj, strict=strict, from_attributes=from_attributes, context=context
        )

    @classmethod
    def parse_yaml(cls, path: str) -> "Config":
        """Load and validate configuration from a YAML file.

        A missing file is fatal: a message is printed to stderr and the
        process exits with status 1.
        """
        try:
            with open(path, "r") as f:
                raw = yaml.safe_load(f)
        except FileNotFoundError:
            print(f"Config file not found: {path}", file=sys.stderr)
            raise SystemExit(1)
        return cls.model_validate(raw)
