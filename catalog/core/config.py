"""
Configuration management for the catalog engine.

Loads settings from YAML config file and provides typed access.
"""
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of catalog package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


@dataclass
class CatalogConfig:
    """Configuration for the catalog query engine."""

    # Storage
    database_url: str = "sqlite:///./catalog.db"

    # Upper bound on records a strategy fetches before in-memory filtering.
    # Search-backed counts are approximate above this value.
    candidate_ceiling: int = 1000

    # Result limits
    search_result_limit: int = 50
    suggestion_limit: int = 5
    default_page_size: int = 20
    max_page_size: int = 100
    admin_list_limit: int = 100
    active_list_limit: int = 50
    new_arrivals_limit: int = 10
    featured_limit: int = 8

    # Logging
    log_level: str = "INFO"
    log_sql: bool = False

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "CatalogConfig":
        """Load configuration from YAML file."""
        env_path = os.getenv("CATALOG_CONFIG")
        path = config_path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
        data: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        storage = data.get('storage', {})
        query = data.get('query', {})
        limits = data.get('limits', {})
        logging_cfg = data.get('logging', {})

        return cls(
            database_url=os.getenv("DATABASE_URL") or storage.get('database_url', cls.database_url),
            candidate_ceiling=int(query.get('candidate_ceiling', cls.candidate_ceiling)),
            search_result_limit=int(limits.get('search_results', cls.search_result_limit)),
            suggestion_limit=int(limits.get('suggestions', cls.suggestion_limit)),
            default_page_size=int(limits.get('default_page_size', cls.default_page_size)),
            max_page_size=int(limits.get('max_page_size', cls.max_page_size)),
            admin_list_limit=int(limits.get('admin_list', cls.admin_list_limit)),
            active_list_limit=int(limits.get('active_list', cls.active_list_limit)),
            new_arrivals_limit=int(limits.get('new_arrivals', cls.new_arrivals_limit)),
            featured_limit=int(limits.get('featured', cls.featured_limit)),
            log_level=os.getenv("LOG_LEVEL") or logging_cfg.get('level', cls.log_level),
            log_sql=bool(logging_cfg.get('sql', cls.log_sql)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Global config instance
_config: Optional[CatalogConfig] = None


def get_config() -> CatalogConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = CatalogConfig.from_yaml()
    return _config


def set_config(config: CatalogConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
