"""
Centralized settings and path configuration for the quote agent.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def get_data_dir() -> Path:
    """Directory holding the shipped catalog and regression fixtures."""
    return Path(__file__).resolve().parent.parent / 'data'


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    return float(raw)


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Input files
    catalog_path: Path
    keyword_regression_path: Path
    scenarios_path: Path

    # Collection thresholds
    aggregate_confidence_threshold: float = 0.8
    service_confidence_threshold: float = 0.5

    # Published contract
    mapping_accuracy_target: float = 0.8
    latency_budget_ms: float = 8000.0
    quantity_tolerance: float = 0.10

    # Company-level override of the catalog profit margin (already resolved upstream)
    profit_margin_override: Optional[float] = None

    log_level: str = "INFO"

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = get_data_dir()

        catalog_env = os.environ.get('QUOTE_AGENT_CATALOG')
        catalog_path = Path(catalog_env) if catalog_env else data_dir / 'service_catalog.json'

        return cls(
            project_root=root,
            catalog_path=catalog_path,
            keyword_regression_path=data_dir / 'keyword_regression.csv',
            scenarios_path=data_dir / 'parity_scenarios.json',
            latency_budget_ms=_env_float('QUOTE_AGENT_LATENCY_BUDGET_MS', 8000.0),
            profit_margin_override=_env_float('QUOTE_AGENT_PROFIT_MARGIN', None),
            log_level=os.environ.get('QUOTE_AGENT_LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
