"""Database configuration models.

:class:`DatabaseConfig` is what a :class:`~quarrydb.connection.manager.ConnectionManager`
is built from: a default connection name plus one :class:`ConnectionConfig`
per named connection.  Configuration is plain data and is always injected;
nothing in the library reads global state.

:class:`DatabaseSettings` reads the common single-connection setup from the
environment (``DB_CONNECTION``, ``DB_HOST``, ... or a ``.env`` file)::

    config = DatabaseSettings.from_env()
    db = ConnectionManager(config)
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quarrydb.errors import ConnectionNotConfiguredError


class ConnectionConfig(BaseModel):
    """Settings for one named connection.

    Attributes:
        driver: Registered driver name (``"mysql"`` or ``"sqlite"``).
        host: Server host (MySQL).
        port: Server port (MySQL).
        database: Schema name, or the SQLite file path (``":memory:"`` allowed).
        username: Login user (MySQL).
        password: Login password (MySQL).
        charset: Connection character set sent with ``SET NAMES``.
        collation: Optional collation sent with ``SET NAMES``.
        prefix: Table prefix applied by the grammar to every table name.
        strict: Use the strict SQL mode when ``modes`` is not given.
        timezone: Session time zone (``"+00:00"``), unset by default.
        modes: Explicit SQL modes; overrides ``strict``.
        version: Server version override (skips asking the server).
        foreign_keys: SQLite only; turns on ``PRAGMA foreign_keys``.
        options: Extra keyword arguments passed to the driver ``connect``.
    """

    model_config = ConfigDict(extra="forbid")

    driver: str
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = ""
    username: str = ""
    password: str = ""
    charset: str = "utf8mb4"
    collation: str | None = "utf8mb4_unicode_ci"
    prefix: str = ""
    strict: bool = True
    timezone: str | None = None
    modes: list[str] | None = None
    version: str | None = None
    foreign_keys: bool = False
    options: dict[str, Any] = Field(default_factory=dict)


class DatabaseConfig(BaseModel):
    """All configured connections and the name of the default one."""

    model_config = ConfigDict(extra="forbid")

    default: str = "mysql"
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _default_is_configured(self) -> DatabaseConfig:
        if self.connections and self.default not in self.connections:
            raise ValueError(
                f"Default connection '{self.default}' is not among the configured "
                f"connections {sorted(self.connections)}."
            )
        return self

    def get(self, name: str) -> ConnectionConfig:
        """Return the configuration for ``name``.

        Raises:
            ConnectionNotConfiguredError: If ``name`` is not configured.
        """
        try:
            return self.connections[name]
        except KeyError:
            raise ConnectionNotConfiguredError(name, sorted(self.connections)) from None


class DatabaseSettings(BaseSettings):
    """Environment-backed settings for a single default connection."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    connection: str = "mysql"
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = "forge"
    username: str = "forge"
    password: str = ""
    prefix: str = ""
    charset: str = "utf8mb4"
    collation: str | None = "utf8mb4_unicode_ci"
    ssl_ca: str | None = Field(default=None, validation_alias="MYSQL_ATTR_SSL_CA")

    def to_config(self) -> DatabaseConfig:
        """Build a :class:`DatabaseConfig` with one connection named after the driver."""
        options: dict[str, Any] = {}
        if self.ssl_ca:
            options["ssl_ca"] = self.ssl_ca
        connection = ConnectionConfig(
            driver=self.connection,
            host=self.host,
            port=self.port,
            database=self.database,
            username=self.username,
            password=self.password,
            prefix=self.prefix,
            charset=self.charset,
            collation=self.collation,
            options=options,
        )
        return DatabaseConfig(default=self.connection, connections={self.connection: connection})

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        return cls().to_config()
