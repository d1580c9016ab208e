from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from synapsebot.configuration.storage_settings import StorageSettings, SweepSettings
from synapsebot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

# Environment variables that override values from the YAML file.
# Maps variable name -> (section, key, converter)
ENV_OVERRIDES = {
    "DATA_PATH": ("storage", "data_dir", str),
    "BACKUP_PATH": ("storage", "backup_dir", str),
    "DB_MAX_BACKUPS": ("storage", "backup_retention", int),
    "DB_MAX_CACHE_SIZE": ("storage", "max_cache_entries", int),
    "SWEEP_INTERVAL_SECONDS": ("sweeps", "interval_seconds", float),
    "MODLOG_CHANNEL_ID": ("notifications", "modlog_channel_id", int),
}


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml``, layers the
    environment overrides from :data:`ENV_OVERRIDES` on top, and exposes the
    storage, sweep and notification sections through typed helpers.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for env_name, (section, key, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            try:
                value = convert(raw)
            except ValueError:
                logger.warning("[APP CONFIGURATION] Ignoring %s=%r: not a valid %s", env_name, raw, convert.__name__)
                continue

            target = data.get(section)
            if not isinstance(target, dict):
                target = {}
                data[section] = target
            target[key] = value
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Environment overrides are re-applied on every reload. Returns an
        empty mapping (plus overrides) when the file is missing or invalid.
        """
        self._data = self.apply_env_overrides(self.load_from_disk())
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate
        it; use get(...) or the typed properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def storage(self) -> StorageSettings:
        return StorageSettings(self._section("storage"))

    @property
    def sweeps(self) -> SweepSettings:
        return SweepSettings(self._section("sweeps"))

    @property
    def sweep_interval(self) -> float:
        """Seconds between sweep ticks. Default is 60 seconds."""
        return self.sweeps.interval_seconds

    @property
    def modlog_channel_id(self) -> int | None:
        """Channel that receives expiry notices, or None when not configured."""
        value = self._section("notifications").get("modlog_channel_id")
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid modlog_channel_id %r", value)
            return None


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
