# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load all configuration from environment variables / .env file.
#   Provides typed config objects to all other modules.
#
# CLASSES:
# --------
# - MySQLConfig (dataclass)      → default connection for the "mysql" sink
# - MongoConfig (dataclass)      → default connection for the "mongo" sink
# - BatchingConfig (dataclass)
#     batch_size: int                (default 100)
#     max_delay_seconds: float       (default 1.0)
#     byte_batch_size: int           (default 1 MiB)
#     writer_flush_size: int         (default 100)
#     max_pending_chunks: int        (default 16)  → bounded queue size per stage
# - FetchConfig (dataclass)
#     progress_interval_seconds: float (default 0.5)
#     reconnect_attempts: int          (default 3)
#     reconnect_delay_seconds: float   (default 2.0)
#     request_timeout_seconds: float   (default 30)
# - AppConfig (dataclass)
#     mysql, mongo, batching, fetch
#     state_dir: str           (default "state/")
#     source_url: str          (default "http://127.0.0.1:8000/records")
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# USAGE:
# ------
#   from recordflow.config import get_config
#   config = get_config()
#   print(config.batching.batch_size)
#
# Sink-specific settings (directories, table prefixes, ...) are NOT
# modelled here: they travel as plain dicts and each sink validates its
# own keys.
#
# ==============================================

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class MySQLConfig:
    """MySQL database configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "recordflow"

    def as_connection(self) -> dict:
        """Connection dict in the shape the mysql sink expects."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
        }

    def as_credentials(self) -> dict:
        return {"user": self.user, "password": self.password}


@dataclass
class MongoConfig:
    """MongoDB database configuration."""
    host: str = "localhost"
    port: int = 27017
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "recordflow"

    def as_connection(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
        }

    def as_credentials(self) -> dict:
        return {"user": self.user, "password": self.password}


@dataclass
class BatchingConfig:
    """Batch sizes and timings for the pipeline stages."""
    batch_size: int = 100
    max_delay_seconds: float = 1.0
    byte_batch_size: int = 1024 * 1024
    writer_flush_size: int = 100
    max_pending_chunks: int = 16


@dataclass
class FetchConfig:
    """Fetch run settings."""
    progress_interval_seconds: float = 0.5
    reconnect_attempts: int = 3
    reconnect_delay_seconds: float = 2.0
    request_timeout_seconds: float = 30.0


@dataclass
class AppConfig:
    """Main application configuration."""
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    mongo: MongoConfig = field(default_factory=MongoConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    state_dir: str = "state/"
    source_url: str = "http://127.0.0.1:8000/records"


# Singleton instance
_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=int(os.getenv("MYSQL_PORT", "3306")),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "recordflow")
    )

    mongo_config = MongoConfig(
        host=os.getenv("MONGO_HOST", "localhost"),
        port=int(os.getenv("MONGO_PORT", "27017")),
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        database=os.getenv("MONGO_DATABASE", "recordflow")
    )

    batching_config = BatchingConfig(
        batch_size=int(os.getenv("BATCH_SIZE", "100")),
        max_delay_seconds=float(os.getenv("BATCH_MAX_DELAY_SECONDS", "1.0")),
        byte_batch_size=int(os.getenv("BYTE_BATCH_SIZE", str(1024 * 1024))),
        writer_flush_size=int(os.getenv("WRITER_FLUSH_SIZE", "100")),
        max_pending_chunks=int(os.getenv("MAX_PENDING_CHUNKS", "16"))
    )

    fetch_config = FetchConfig(
        progress_interval_seconds=float(os.getenv("PROGRESS_INTERVAL_SECONDS", "0.5")),
        reconnect_attempts=int(os.getenv("RECONNECT_ATTEMPTS", "3")),
        reconnect_delay_seconds=float(os.getenv("RECONNECT_DELAY_SECONDS", "2.0")),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
    )

    _config_instance = AppConfig(
        mysql=mysql_config,
        mongo=mongo_config,
        batching=batching_config,
        fetch=fetch_config,
        state_dir=os.getenv("STATE_DIR", "state/"),
        source_url=os.getenv("SOURCE_URL", "http://127.0.0.1:8000/records")
    )

    return _config_instance
