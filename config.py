"""Configuration management for Fillbook.

Reads configuration from ~/.config/fillbook.toml and creates default config if needed.
"""

from pathlib import Path
from dataclasses import dataclass
import tomllib
import tomli_w

EXECUTE_POLICIES = ("single_use", "repeatable")


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    upload_dir: Path
    sessions_dir: Path
    session_ttl_minutes: int = 30
    cleanup_interval_seconds: int = 300
    max_upload_bytes: int = 10 * 1024 * 1024
    execute_policy: str = "single_use"

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        home = Path.home()
        base_dir = home / "data" / "fillbook"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="fillbook.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
            upload_dir=base_dir / "uploads",
            sessions_dir=base_dir / "sessions",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "fillbook.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def load_config() -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Returns:
        Config object with loaded or default values.

    Raises:
        ValueError: If imports.execute_policy is not a known policy.
    """
    config_path = get_config_path()

    # If config doesn't exist, create it with defaults
    if not config_path.exists():
        config = Config.default()
        _write_config(config)
        return config

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    return _config_from_dict(data)


def _config_from_dict(data: dict) -> Config:
    """Build a Config from parsed TOML data, with defaults for missing values."""
    defaults = Config.default()
    base_dir = Path(data.get("base_dir", defaults.base_dir))

    db_config = data.get("database", {})
    db_data_dir = Path(db_config.get("data_dir", base_dir / "db"))
    db_filename = db_config.get("filename", defaults.db_filename)

    log_config = data.get("logging", {})
    log_level = log_config.get("level", defaults.log_level)
    log_dir = Path(log_config.get("log_dir", base_dir / "logs"))

    import_config = data.get("imports", {})
    upload_dir = Path(import_config.get("upload_dir", base_dir / "uploads"))
    sessions_dir = Path(import_config.get("sessions_dir", base_dir / "sessions"))
    execute_policy = import_config.get("execute_policy", defaults.execute_policy)
    if execute_policy not in EXECUTE_POLICIES:
        raise ValueError(
            f"Unknown execute_policy '{execute_policy}', expected one of {EXECUTE_POLICIES}"
        )

    return Config(
        base_dir=base_dir,
        db_data_dir=db_data_dir,
        db_filename=db_filename,
        log_level=log_level,
        log_dir=log_dir,
        upload_dir=upload_dir,
        sessions_dir=sessions_dir,
        session_ttl_minutes=int(
            import_config.get("session_ttl_minutes", defaults.session_ttl_minutes)
        ),
        cleanup_interval_seconds=int(
            import_config.get(
                "cleanup_interval_seconds", defaults.cleanup_interval_seconds
            )
        ),
        max_upload_bytes=int(
            import_config.get("max_upload_bytes", defaults.max_upload_bytes)
        ),
        execute_policy=execute_policy,
    )


def _write_config(config: Config) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
    """
    config_path = get_config_path()

    # Ensure config directory exists
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "base_dir": str(config.base_dir),
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "imports": {
            "upload_dir": str(config.upload_dir),
            "sessions_dir": str(config.sessions_dir),
            "session_ttl_minutes": config.session_ttl_minutes,
            "cleanup_interval_seconds": config.cleanup_interval_seconds,
            "max_upload_bytes": config.max_upload_bytes,
            "execute_policy": config.execute_policy,
        },
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
