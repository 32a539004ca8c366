"""Configuration models for storable-cache.

``CacheConfig`` selects the storage type and carries the connection or
location parameters of every backend. Values can be given directly or read
from ``STORABLE_CACHE_*`` environment variables; nested table settings use
``__`` (``STORABLE_CACHE_SQLITE__DATABASE``).
"""

from enum import Enum

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LIFETIME = 3
DEFAULT_SAVETIME = 3600

ENV_PREFIX = "STORABLE_CACHE_"


class StorageType(str, Enum):
    """Recognized storage discriminants."""

    ARRAY = "array"  # alias of MEMORY
    MEMORY = "memory"
    FILES = "files"
    SQL = "sql"
    MYSQL = "mysql"  # alias of SQL
    SQLITE = "sqlite"
    REDIS = "redis"
    MEMCACHED = "memcached"


class SqlSettings(BaseModel):
    """Table and column names of an SQL cache table."""

    table: str = Field(default="cache", min_length=1)
    key_field: str = Field(default="key", min_length=1)
    value_field: str = Field(default="value", min_length=1)
    timestamp_field: str = Field(default="created", min_length=1)
    lifetime_field: str = Field(default="lifetime", min_length=1)
    savetime_field: str = Field(default="savetime", min_length=1)
    create_table: bool = Field(
        default=False, description="Create the table if it does not exist."
    )


class SqliteSettings(SqlSettings):
    """SQLite database file plus table layout."""

    database: str = Field(
        default=":memory:", description="Database file path or ':memory:'."
    )
    create_table: bool = Field(
        default=True, description="Create the table if it does not exist."
    )


class CacheConfig(BaseSettings):
    """Configuration for StorableCache.

    Every field can be set through a ``STORABLE_CACHE_*`` environment
    variable. Most take the field name (``STORABLE_CACHE_REDIS_HOST``); the
    core ones are shorter: ``STORABLE_CACHE_TYPE``, ``STORABLE_CACHE_DIR``,
    ``STORABLE_CACHE_LIFETIME`` and ``STORABLE_CACHE_SAVETIME``. Keyword
    arguments take precedence over the environment.

    ``cache_type`` is kept as a plain string so that unknown values reach
    the storage factory and fail there with StorageNotSupportedError.

    Example:
        ```python
        config = CacheConfig(cache_type="files", cache_dir="/var/cache/app")
        cache = StorableCache(config)
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    cache_type: str = Field(
        default=StorageType.MEMORY.value, validation_alias=f"{ENV_PREFIX}TYPE"
    )
    cache_dir: str = Field(
        default="",
        validation_alias=f"{ENV_PREFIX}DIR",
        description="Directory of the files storage.",
    )

    sql: SqlSettings = Field(default_factory=SqlSettings)
    sqlite: SqliteSettings = Field(default_factory=SqliteSettings)

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    redis_prefix: str = "storable-cache:"

    memcached_host: str = "localhost"
    memcached_port: int = 11211
    memcached_prefix: str = "storable-cache:"

    default_lifetime: int = Field(
        default=DEFAULT_LIFETIME, ge=0, validation_alias=f"{ENV_PREFIX}LIFETIME"
    )
    default_savetime: int = Field(
        default=DEFAULT_SAVETIME, ge=0, validation_alias=f"{ENV_PREFIX}SAVETIME"
    )
