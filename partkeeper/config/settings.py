"""
Configuration settings for partkeeper
Handles environment variables and maintainer settings for one partitioned table
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import InvalidScheme
from ..models import KeyEncoding, KeyKind, PartitioningScheme
from ..services.boundary import (
    check_naming_rule,
    check_range_width,
    default_template,
    parse_period,
    parse_range_width,
    template_naming_rule,
)
from ..services.maintainer import LookAhead, MaintainerOptions


class Settings(BaseSettings):
    """Settings for one maintainer instance"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env file
    )

    # Application
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Database (secret, keep it in the environment or a secret store)
    DATABASE_URL: str
    DATABASE_SSLMODE: Optional[str] = None
    STATEMENT_TIMEOUT_MS: int = Field(30000, gt=0)
    LOCK_TIMEOUT_MS: int = Field(5000, gt=0)
    CONNECT_TIMEOUT_SECONDS: int = Field(10, gt=0)

    # Partitioning scheme
    PARTITION_SCHEMA: str = "public"
    PARTITION_TABLE: str
    KEY_COLUMN: str
    KEY_KIND: KeyKind = KeyKind.SEQUENCE
    KEY_ENCODING: KeyEncoding = KeyEncoding.NATIVE
    RANGE_WIDTH: str
    NAMING_TEMPLATE: Optional[str] = None
    LEGACY_PARTITIONS: str = ""  # comma separated

    # Maintainer
    LOOK_AHEAD_MARGIN: Optional[str] = None
    LOOK_AHEAD_FRACTION: float = Field(1.0, ge=0)
    SCHEDULE_INTERVAL_SECONDS: int = Field(3600, gt=0)
    VERIFY_AFTER_CREATE: bool = True

    # HTTP trigger
    MAINTENANCE_API_TOKEN: Optional[str] = None

    @field_validator("RANGE_WIDTH", "LOOK_AHEAD_MARGIN", mode="before")
    @classmethod
    def coerce_to_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def legacy_names(self) -> frozenset:
        return frozenset(name.strip() for name in self.LEGACY_PARTITIONS.split(",") if name.strip())

    def to_scheme(self) -> PartitioningScheme:
        """Build the immutable partitioning scheme; raises InvalidScheme."""
        width = parse_range_width(self.RANGE_WIDTH, self.KEY_KIND)
        scheme_kwargs = dict(
            table=self.PARTITION_TABLE,
            key_column=self.KEY_COLUMN,
            key_kind=self.KEY_KIND,
            range_width=width,
            schema=self.PARTITION_SCHEMA,
            key_encoding=self.KEY_ENCODING,
            legacy_names=self.legacy_names,
        )
        # validate the width before a default template is looked up for it
        check_range_width(PartitioningScheme(naming_rule=str, **scheme_kwargs))

        template = self.NAMING_TEMPLATE or default_template(self.KEY_KIND, width)
        scheme = PartitioningScheme(
            naming_rule=template_naming_rule(template, self.PARTITION_TABLE, self.KEY_KIND, width),
            **scheme_kwargs,
        )
        check_naming_rule(scheme)
        return scheme

    def look_ahead(self) -> LookAhead:
        if self.LOOK_AHEAD_MARGIN is None or not self.LOOK_AHEAD_MARGIN.strip():
            return LookAhead(fraction=self.LOOK_AHEAD_FRACTION)
        if self.KEY_KIND == KeyKind.TIMESTAMP:
            return LookAhead(margin=parse_period(self.LOOK_AHEAD_MARGIN))
        try:
            return LookAhead(margin=int(self.LOOK_AHEAD_MARGIN.strip()))
        except ValueError:
            raise InvalidScheme(f"look-ahead margin {self.LOOK_AHEAD_MARGIN!r} is not an integer") from None

    def maintainer_options(self, dry_run: bool = False) -> MaintainerOptions:
        return MaintainerOptions(
            look_ahead=self.look_ahead(),
            verify=self.VERIFY_AFTER_CREATE,
            dry_run=dry_run,
        )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Settings from the environment plus ``env_file`` (defaults to ./.env)."""
    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
