from pathlib import Path
from typing import Any, ClassVar, Literal

import yaml
from humps import decamelize
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

LogLevelType = Literal["ERROR", "WARNING", "INFO", "DEBUG", "CRITICAL"]

DEFAULT_CONFIG_FILE = "./config.yaml"
MIN_UPLOAD_PART_SIZE = 5 * 1024 * 1024


def decamelize_config(config: Any) -> Any:
    """Normalizes the yaml keys to snake_case, recursing into nested mappings"""
    if isinstance(config, dict):
        return {decamelize(key): decamelize_config(value) for key, value in config.items()}
    return config


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Lowest priority source: the yaml file, written with camelCase or snake_case keys."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_file: str | Path) -> None:
        super().__init__(settings_cls)
        self.yaml_file = Path(yaml_file)

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        return self._data().get(field_name), field_name, False

    def _data(self) -> dict[str, Any]:
        if not self.yaml_file.exists():
            return {}
        return decamelize_config(yaml.safe_load(self.yaml_file.read_text("utf-8")) or {})

    def __call__(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self._data().items()
            if key in self.settings_cls.model_fields
        }


class AwsSettings(BaseModel):
    access_key_id: str | None = Field(None, json_schema_extra={"sensitive": True})
    secret_access_key: str | None = Field(None, json_schema_extra={"sensitive": True})
    session_token: str | None = Field(None, json_schema_extra={"sensitive": True})
    region: str = "us-east-1"
    endpoint_url: str | None = None
    profile: str | None = None


class ArchiveSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DYNAMO_ARCHIVE__",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    yaml_file: ClassVar[str] = DEFAULT_CONFIG_FILE

    log_level: LogLevelType = "INFO"

    store: AwsSettings = Field(default_factory=AwsSettings)
    archive: AwsSettings | None = None

    bucket: str | None = None
    backup_path: str | None = None
    included_tables: list[str] | None = None
    excluded_tables: list[str] = Field(default_factory=list)

    read_percentage: float = 0.25
    total_segments: int = Field(1, ge=1)
    on_demand_page_limit: int = Field(1000, ge=1)
    upload_part_size: int = Field(8 * 1024 * 1024, ge=MIN_UPLOAD_PART_SIZE)

    min_concurrency: int = Field(1, ge=1)
    max_concurrency: int = Field(200, ge=1)
    batch_size: int = Field(25, ge=1, le=25)
    max_attempts: int = Field(5, ge=0)
    retry_backoff_seconds: float = Field(0.5, ge=0)
    request_interval_seconds: float | None = Field(None, ge=0)
    restore_write_capacity: int = Field(200, ge=1)
    table_poll_interval_seconds: float = Field(1.0, gt=0)
    table_active_timeout_seconds: float = Field(600.0, gt=0)

    overwrite: bool = False
    stop_on_failure: bool = False
    binary_as_base64: bool = True
    bulk_loader_format: bool = False

    @field_validator("read_percentage")
    @classmethod
    def validate_read_percentage(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("read_percentage must be in (0, 1]")
        return value

    @model_validator(mode="after")
    def validate_concurrency_bounds(self) -> "ArchiveSettings":
        if self.max_concurrency < self.min_concurrency:
            raise ValueError("max_concurrency must be >= min_concurrency")
        return self

    @property
    def archive_aws(self) -> AwsSettings:
        return self.archive or self.store

    @property
    def request_interval(self) -> float:
        """Minimum spacing between two batch submissions."""
        if self.request_interval_seconds is not None:
            return self.request_interval_seconds
        return 1 / self.max_concurrency

    def get_sensitive_fields_data(self) -> set[str]:
        sensitive: set[str] = set()
        for aws in (self.store, self.archive):
            if aws is None:
                continue
            for field_name, field in AwsSettings.model_fields.items():
                extra = field.json_schema_extra
                value = getattr(aws, field_name)
                if isinstance(extra, dict) and extra.get("sensitive") and value:
                    sensitive.add(str(value))
        return sensitive

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, cls.yaml_file),
        )


def load_settings(config_file: str | None = None, **overrides: Any) -> ArchiveSettings:
    """Builds the settings, reading `config_file` instead of ./config.yaml when given.

    Overrides set to None are ignored, so unset CLI options fall through to
    the environment and the config file.
    """
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if config_file is None:
        return ArchiveSettings(**overrides)

    class FileArchiveSettings(ArchiveSettings):
        yaml_file: ClassVar[str] = config_file

    return FileArchiveSettings(**overrides)
