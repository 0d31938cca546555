"""Configuration management for resx-scanner.

Loads environment variables and provides centralized config access.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from resx_scanner.reporting.aggregator import LocaleBucket

__version__ = "1.0.0"

DEFAULT_MAX_PATH_COUNT = 20
DEFAULT_LOCALES = "en,ar"
DEFAULT_LOCALIZER_TYPES = "IStringLocalizer,StringLocalizer,ResourceManagerStringLocalizer"
DEFAULT_DESTINATION = "locale-keys.json"
DEFAULT_MAX_CONCURRENCY = 8


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


def _positive_int(name: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if number < 1:
        raise ValueError(f"{name} must be positive, got {number}")
    return number


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self):
        """Initialize config by loading .env from the working directory.

        Raises:
            ValueError: If any variable holds an invalid value
        """
        load_dotenv(Path.cwd() / ".env")
        self._validate()

    def _validate(self):
        # Touch every typed property so bad values fail at startup
        self.max_path_count
        self.max_concurrency
        if not self.locales:
            raise ValueError("RESX_SCANNER_LOCALES must name at least one locale prefix")
        if not self.localizer_types:
            raise ValueError("RESX_SCANNER_LOCALIZER_TYPES must name at least one type")

    @property
    def max_path_count(self) -> int:
        """Maximum number of usage paths kept per key.

        Returns:
            Positive integer (default 20)
        """
        return _positive_int("RESX_SCANNER_MAX_PATH_COUNT",
                             os.getenv("RESX_SCANNER_MAX_PATH_COUNT", str(DEFAULT_MAX_PATH_COUNT)))

    @property
    def locales(self) -> List[str]:
        """Locale prefixes of the report columns; the first also takes neutral values."""
        return _split(os.getenv("RESX_SCANNER_LOCALES", DEFAULT_LOCALES))

    @property
    def localizer_types(self) -> List[str]:
        """Simple names of the types whose indexer reads a localized string."""
        return _split(os.getenv("RESX_SCANNER_LOCALIZER_TYPES", DEFAULT_LOCALIZER_TYPES))

    @property
    def destination(self) -> str:
        return os.getenv("RESX_SCANNER_DESTINATION", DEFAULT_DESTINATION)

    @property
    def max_concurrency(self) -> int:
        return _positive_int("RESX_SCANNER_MAX_CONCURRENCY",
                             os.getenv("RESX_SCANNER_MAX_CONCURRENCY", str(DEFAULT_MAX_CONCURRENCY)))


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def build_buckets(locales: Sequence[str]) -> Tuple[LocaleBucket, ...]:
    """Create report columns from locale prefixes: ['en', 'ar'] -> En (with neutral), Ar."""
    buckets = []
    seen = set()
    for prefix in locales:
        prefix = prefix.strip()
        if not prefix or prefix.lower() in seen:
            continue
        seen.add(prefix.lower())
        buckets.append(LocaleBucket(prefix.capitalize(), prefix, include_neutral=not buckets))
    if not buckets:
        raise ValueError("At least one locale prefix is required")
    return tuple(buckets)


@dataclass(frozen=True)
class ScanOptions:
    """Everything one scan needs, after merging config and command-line overrides."""
    source: Path
    destination: Optional[Path]
    max_path_count: int
    buckets: Tuple[LocaleBucket, ...]
    localizer_types: Tuple[str, ...]
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    @classmethod
    def from_config(cls, config: Config, source: str | Path,
                    destination: Optional[str | Path] = None,
                    max_path_count: Optional[int] = None,
                    locales: Optional[Sequence[str]] = None,
                    localizer_types: Optional[Sequence[str]] = None) -> 'ScanOptions':
        """Merge command-line overrides over the environment configuration.

        Raises:
            ValueError: If an override is invalid
        """
        if max_path_count is not None and max_path_count < 1:
            raise ValueError(f"max path count must be positive, got {max_path_count}")

        return cls(
            source=Path(source),
            destination=Path(destination) if destination is not None else None,
            max_path_count=max_path_count if max_path_count is not None else config.max_path_count,
            buckets=build_buckets(locales or config.locales),
            localizer_types=tuple(localizer_types or config.localizer_types),
            max_concurrency=config.max_concurrency,
        )
