"""Configuration management for algorun."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger()

DEFAULT_ROOT = Path("test-algorun-dir")


class InstallPaths(BaseModel):
    """Directory layout of one installation root.

    Layout:
    <root>/
    ├── downloads/            # Release tarball cache, kept between runs
    ├── temp/                 # Extraction staging, kept between runs
    ├── base/
    │   ├── bin/              # algod, kmd, goal
    │   └── data/             # Node data directory (wiped on create)
    ├── algorun.lock          # Held while an operation runs
    └── algorun-state.json    # Last installed release
    """

    root: Path = Field(description="Installation root directory")

    @classmethod
    def from_root(cls, root: Path | str) -> InstallPaths:
        """Build a layout from a (possibly relative) root."""
        return cls(root=Path(root).expanduser().absolute())

    @property
    def downloads_dir(self) -> Path:
        return self.root / "downloads"

    @property
    def temp_dir(self) -> Path:
        return self.root / "temp"

    @property
    def base_dir(self) -> Path:
        return self.root / "base"

    @property
    def bin_dir(self) -> Path:
        return self.base_dir / "bin"

    @property
    def data_dir(self) -> Path:
        return self.base_dir / "data"

    @property
    def goal_path(self) -> Path:
        return self.bin_dir / "goal"

    @property
    def lock_file(self) -> Path:
        return self.root / "algorun.lock"

    @property
    def state_file(self) -> Path:
        return self.root / "algorun-state.json"

    def ensure(self) -> None:
        """Create every directory of the layout."""
        for directory in (self.downloads_dir, self.temp_dir, self.bin_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)


class ReleaseConfig(BaseModel):
    """Upstream release and network endpoints."""

    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL"
    )
    owner: str = Field(default="algorand", description="Repository owner")
    repo: str = Field(default="go-algorand", description="Repository name")
    releases_base_url: str = Field(
        default="https://algorand-releases.s3.amazonaws.com",
        description="Release tarball bucket"
    )
    catchpoint_url: str = Field(
        default="https://algorand-catchpoints.s3.us-east-2.amazonaws.com/channel/mainnet/latest.catchpoint",
        description="Latest mainnet catchpoint label"
    )
    timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class FetchConfig(BaseModel):
    """Archive download settings."""

    progress_interval: float = Field(default=0.1, description="Seconds between progress ticks")
    chunk_size: int = Field(default=64 * 1024, description="Streaming chunk size in bytes")

    @field_validator("progress_interval")
    @classmethod
    def validate_progress_interval(cls, v: float) -> float:
        """Validate progress interval."""
        if v <= 0:
            raise ValueError("Progress interval must be positive")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size."""
        if v <= 0:
            raise ValueError("Chunk size must be positive")
        return v


class SyncConfig(BaseModel):
    """Sync monitor settings."""

    poll_interval: float = Field(default=0.5, description="Seconds between status polls")
    timeout: float = Field(default=10.0, description="Seconds to wait for the round to advance")

    @field_validator("poll_interval", "timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate interval and timeout values."""
        if v <= 0:
            raise ValueError("Sync intervals must be positive")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    base_dir: Path = Field(
        default=DEFAULT_ROOT,
        description="Installation root, relative to the working directory unless absolute"
    )
    operation_timeout: float | None = Field(
        default=None,
        description="Overall deadline for one operation in seconds (None disables it)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    release: ReleaseConfig = Field(default_factory=ReleaseConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @property
    def paths(self) -> InstallPaths:
        """Installation layout rooted at base_dir."""
        return InstallPaths.from_root(self.base_dir)

    @classmethod
    def default_path(cls) -> Path:
        """Default configuration file location."""
        return Path.home() / ".config" / "algorun" / "config.json"

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = cls.default_path()

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.default_path()

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v

    @field_validator("operation_timeout")
    @classmethod
    def validate_operation_timeout(cls, v: float | None) -> float | None:
        """Validate operation timeout value."""
        if v is not None and v <= 0:
            raise ValueError("Operation timeout must be positive")
        return v
