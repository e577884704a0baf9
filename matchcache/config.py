"""Configuration management for the cache jobs with validation and typed access"""

import json
import logging
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from dotenv import load_dotenv

from matchcache.utils.errors import ConfigError

logger = logging.getLogger(__name__)

# Per-call ceiling of the backing document store
STORE_BATCH_LIMIT = 500


# ============================================================================
# CONFIGURATION DATACLASSES
# ============================================================================

@dataclass
class StoreConfig:
    """Configuration for the cache document store"""

    backend: str = "sqlite"  # "sqlite" or "memory"
    path: str = "matchcache.sqlite"

    def validate(self) -> None:
        backend_normalized = (self.backend or "").strip().lower()
        if backend_normalized not in {"sqlite", "memory"}:
            raise ValueError(f"backend must be 'sqlite' or 'memory', got {self.backend!r}")
        self.backend = backend_normalized
        if self.backend == "sqlite" and not self.path:
            raise ValueError("path cannot be empty for the sqlite backend")


@dataclass
class ScorerConfig:
    """Configuration for the external props scorer"""

    base_url: Optional[str] = None
    endpoint: str = "getMLPlayerPropsV2"
    api_key: Optional[str] = None
    timeout_seconds: float = 300

    def validate(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint cannot be empty")
        if not (1 <= self.timeout_seconds <= 600):
            raise ValueError(f"timeout_seconds must be between 1 and 600, got {self.timeout_seconds}")


@dataclass
class RefreshConfig:
    """Configuration for the refresh job"""

    sports: List[str] = field(default_factory=lambda: ["nba"])
    window_hours: float = 48
    worker_pool_size: int = 4
    run_deadline_seconds: Optional[float] = None
    store_write_retries: int = 1
    store_write_backoff_seconds: float = 1.0

    def validate(self) -> None:
        if not self.sports:
            raise ValueError("sports cannot be empty")
        self.sports = [str(s).strip().lower() for s in self.sports if str(s).strip()]
        if not self.sports:
            raise ValueError("sports cannot be empty")
        if self.window_hours <= 0:
            raise ValueError(f"window_hours must be > 0, got {self.window_hours}")
        if not (1 <= self.worker_pool_size <= 32):
            raise ValueError(f"worker_pool_size must be between 1 and 32, got {self.worker_pool_size}")
        if self.run_deadline_seconds is not None and self.run_deadline_seconds <= 0:
            raise ValueError(f"run_deadline_seconds must be > 0 when set, got {self.run_deadline_seconds}")
        if self.store_write_retries < 0:
            raise ValueError(f"store_write_retries must be >= 0, got {self.store_write_retries}")
        if self.store_write_backoff_seconds < 0:
            raise ValueError("store_write_backoff_seconds cannot be negative")


@dataclass
class TTLConfig:
    """Configuration for entry expiry"""

    expiry_buffer_hours: float = 4

    def validate(self) -> None:
        if self.expiry_buffer_hours <= 0:
            raise ValueError(f"expiry_buffer_hours must be > 0, got {self.expiry_buffer_hours}")


@dataclass
class EvictionConfig:
    """Configuration for the eviction job"""

    batch_delete_chunk_size: int = STORE_BATCH_LIMIT

    def validate(self) -> None:
        if not (1 <= self.batch_delete_chunk_size <= STORE_BATCH_LIMIT):
            raise ValueError(
                f"batch_delete_chunk_size must be between 1 and {STORE_BATCH_LIMIT}, "
                f"got {self.batch_delete_chunk_size}"
            )


@dataclass
class DedupConfig:
    """Configuration for duplicate detection"""

    auto_delete: bool = False

    def validate(self) -> None:
        if not isinstance(self.auto_delete, bool):
            raise ValueError(f"auto_delete must be true or false, got {self.auto_delete!r}")


# ============================================================================
# MAIN CONFIG MANAGER
# ============================================================================

class ConfigManager:
    """
    Central configuration management with validation and typed access

    Sections are typed dataclasses; secrets and paths can be overridden
    from the environment (or a .env file).
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Load and validate configuration from JSON file

        Args:
            config_file: Path to config JSON file. Missing file means defaults.

        Raises:
            ConfigError: If the file is not valid JSON or validation fails
        """
        # Load environment variables from .env file if it exists
        load_dotenv()

        self.config_path = Path(config_file) if config_file else None

        if self.config_path is None or not self.config_path.exists():
            logger.warning(f"Config file not found: {config_file}. Using defaults and environment variables.")
            raw_config = {}
        else:
            try:
                with open(self.config_path) as f:
                    raw_config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {self.config_path}: {e}")
            if not isinstance(raw_config, dict):
                raise ConfigError(f"Top level of {self.config_path} must be an object")

        # Parse into typed configs
        self._parse_config(raw_config)

    def _get_secret(self, env_var: str, json_value: Optional[str] = None) -> Optional[str]:
        """
        Get secret from environment variable, falling back to JSON value.
        Filters out placeholder values containing 'YOUR_'.
        """
        val = os.getenv(env_var)
        if not val:
            val = json_value

        if val and isinstance(val, str) and 'YOUR_' in val:
            return None
        return val

    @staticmethod
    def _validate_section(name: str, section) -> None:
        try:
            section.validate()
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid {name} config: {e}", config_key=name)

    @staticmethod
    def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
        value = raw_config.get(name, {})
        if not isinstance(value, dict):
            raise ConfigError(f"Section must be an object, got {type(value).__name__}", config_key=name)
        return value

    def _parse_config(self, raw_config: Dict[str, Any]) -> None:
        """Parse raw JSON config into typed dataclasses"""

        # Store
        store_raw = self._section(raw_config, 'store')
        self.store = StoreConfig(
            backend=store_raw.get('backend', 'sqlite'),
            path=os.getenv('MATCHCACHE_DB_PATH') or store_raw.get('path', 'matchcache.sqlite'),
        )
        self._validate_section('store', self.store)

        # Props scorer
        scorer_raw = self._section(raw_config, 'scorer')
        self.scorer = ScorerConfig(
            base_url=self._get_secret('PROPS_SCORER_BASE_URL', scorer_raw.get('base_url')),
            endpoint=scorer_raw.get('endpoint', 'getMLPlayerPropsV2'),
            api_key=self._get_secret('PROPS_SCORER_API_KEY', scorer_raw.get('api_key')),
            timeout_seconds=scorer_raw.get('timeout_seconds', 300),
        )
        self._validate_section('scorer', self.scorer)

        # Refresh job
        refresh_raw = self._section(raw_config, 'refresh')
        sports = refresh_raw.get('sports', ['nba'])
        if isinstance(sports, str):
            sports = sports.split(',')
        self.refresh = RefreshConfig(
            sports=list(sports),
            window_hours=refresh_raw.get('window_hours', 48),
            worker_pool_size=refresh_raw.get('worker_pool_size', 4),
            run_deadline_seconds=refresh_raw.get('run_deadline_seconds'),
            store_write_retries=refresh_raw.get('store_write_retries', 1),
            store_write_backoff_seconds=refresh_raw.get('store_write_backoff_seconds', 1.0),
        )
        self._validate_section('refresh', self.refresh)

        # Expiry
        ttl_raw = self._section(raw_config, 'ttl')
        self.ttl = TTLConfig(
            expiry_buffer_hours=ttl_raw.get('expiry_buffer_hours', 4),
        )
        self._validate_section('ttl', self.ttl)

        # Eviction job
        eviction_raw = self._section(raw_config, 'eviction')
        self.eviction = EvictionConfig(
            batch_delete_chunk_size=eviction_raw.get('batch_delete_chunk_size', STORE_BATCH_LIMIT),
        )
        self._validate_section('eviction', self.eviction)

        # Dedup job
        dedup_raw = self._section(raw_config, 'dedup')
        self.dedup = DedupConfig(
            auto_delete=dedup_raw.get('auto_delete', False),
        )
        self._validate_section('dedup', self.dedup)

        logger.info(f"✅ Configuration loaded and validated from {self.config_path or 'defaults'}")

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def validate_for_job(self, job: str) -> None:
        """
        Perform strict validation of required keys for a specific job.

        Raises:
            ConfigError: If required configuration for the job is missing
        """
        logger.info(f"🔍 Validating configuration for job: {job}")
        if job == 'refresh' and not self.scorer.base_url:
            raise ConfigError("PROPS_SCORER_BASE_URL is required for the refresh job", config_key='scorer.base_url')

    def log_config_summary(self) -> None:
        """Log a summary of the loaded configuration"""
        logger.info("=" * 80)
        logger.info("📋 CONFIGURATION SUMMARY")
        logger.info("=" * 80)

        logger.info("🗄️ Store:")
        logger.info(f"   Backend: {self.store.backend}")
        if self.store.backend == 'sqlite':
            logger.info(f"   Path: {self.store.path}")

        logger.info("🤖 Props scorer:")
        logger.info(f"   Endpoint: {self.scorer.base_url or '(not set)'}/{self.scorer.endpoint}")
        logger.info(f"   API key: {'✅ Set' if self.scorer.api_key else '❌ Not set'}")
        logger.info(f"   Timeout: {self.scorer.timeout_seconds}s")

        logger.info("🔄 Refresh:")
        logger.info(f"   Sports: {', '.join(self.refresh.sports)}")
        logger.info(f"   Window: {self.refresh.window_hours}h")
        logger.info(f"   Workers: {self.refresh.worker_pool_size}")
        deadline = self.refresh.run_deadline_seconds
        logger.info(f"   Run deadline: {f'{deadline}s' if deadline else 'none'}")

        logger.info("🗑️ Eviction:")
        logger.info(f"   Expiry buffer: {self.ttl.expiry_buffer_hours}h after start")
        logger.info(f"   Delete chunk size: {self.eviction.batch_delete_chunk_size}")
        logger.info(f"   Dedup auto-delete: {'✅ On' if self.dedup.auto_delete else '❌ Off'}")

        logger.info("=" * 80)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for debugging/serialization. Secrets are redacted."""
        api_key = self.scorer.api_key
        return {
            'store': {
                'backend': self.store.backend,
                'path': self.store.path,
            },
            'scorer': {
                'base_url': self.scorer.base_url,
                'endpoint': self.scorer.endpoint,
                'api_key': (api_key[:4] + '...') if api_key else None,
                'timeout_seconds': self.scorer.timeout_seconds,
            },
            'refresh': {
                'sports': list(self.refresh.sports),
                'window_hours': self.refresh.window_hours,
                'worker_pool_size': self.refresh.worker_pool_size,
                'run_deadline_seconds': self.refresh.run_deadline_seconds,
                'store_write_retries': self.refresh.store_write_retries,
                'store_write_backoff_seconds': self.refresh.store_write_backoff_seconds,
            },
            'ttl': {
                'expiry_buffer_hours': self.ttl.expiry_buffer_hours,
            },
            'eviction': {
                'batch_delete_chunk_size': self.eviction.batch_delete_chunk_size,
            },
            'dedup': {
                'auto_delete': self.dedup.auto_delete,
            },
        }
