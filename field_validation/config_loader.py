"""Two-tier configuration loading with URI fetching and caching."""

import hashlib
import logging
import os
import time
import urllib.parse
from importlib.resources import files
from pathlib import Path
from typing import Any, Dict, Optional

import requests
import yaml
from jsonschema import ValidationError, validate

from .rule_loader import RULE_SET_SCHEMA

logger = logging.getLogger(__name__)

# Business config: settings -> extension -> controller -> validation name -> rule-set
BUSINESS_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "settings": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "additionalProperties": {
                    "type": ["object", "null"],
                    "additionalProperties": dict(RULE_SET_SCHEMA, type=["object", "null"]),
                },
            },
        },
        "plugin_placements": {
            "type": "object",
            "additionalProperties": {
                "type": ["array", "null"],
                "items": {"type": "string"},
            },
        },
    },
}


class ConfigLoader:
    """Handles two-tier configuration: local config + validation settings."""

    # Hardcoded cache directory for remote validation settings
    CACHE_DIR = Path.home() / ".cache" / "field-validation-lib"

    DEFAULT_MAX_AGE_SECONDS = 1800

    def __init__(self, local_config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            local_config_path: Path to a local-config.yaml. Defaults to the
                file bundled in the field_validation package.

        Raises:
            ValueError: If the validation settings are structurally invalid
            RuntimeError: If remote validation settings cannot be fetched
        """
        if local_config_path is None:
            local_config_path = str(files("field_validation").joinpath("local-config.yaml"))
        self.local_config_path = str(local_config_path)
        self.local_config = self._load_yaml(self.local_config_path) or {}

        self.cache_dir = self.CACHE_DIR
        self._load_business_config()

    def _load_business_config(self) -> None:
        uri = self.get_business_config_uri()
        if uri:
            config = self._load_config_from_uri(uri) or {}
        else:
            # No separate settings file: local config doubles as business config
            config = self.local_config

        try:
            validate(instance=config, schema=BUSINESS_CONFIG_SCHEMA)
        except ValidationError as e:
            error_path = " -> ".join(str(p) for p in e.path) if e.path else "root"
            raise ValueError(
                f"Invalid validation settings in {uri or self.local_config_path} "
                f"at {error_path}: {e.message}"
            ) from e

        self.business_config = config
        self.business_config_loaded_at = time.time()
        logger.info(
            "Validation settings loaded",
            extra={
                "uri": uri or self.local_config_path,
                "extensions": sorted(config.get("settings", {}) or {}),
            },
        )

    def reload(self) -> None:
        """Re-read the validation settings, bypassing the remote cache."""
        uri = self.get_business_config_uri()
        if uri and urllib.parse.urlparse(uri).scheme in ("http", "https"):
            cache_path = self._cache_path(uri)
            if cache_path.exists():
                cache_path.unlink()
        self._load_business_config()

    def _load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file from disk."""
        with open(path) as f:
            return yaml.safe_load(f)

    def _cache_path(self, uri: str) -> Path:
        cache_key = hashlib.sha256(uri.encode()).hexdigest()
        return self.cache_dir / f"config_{cache_key}.yaml"

    def _load_config_from_uri(self, uri: str) -> Dict[str, Any]:
        """
        Load config from URI (with caching).

        Supports:
        - Relative paths - resolved against the local config directory
        - file:// - Local filesystem (absolute paths)
        - https:// - Remote HTTP/HTTPS
        - http:// - Remote HTTP

        Args:
            uri: Config URI or relative path

        Returns:
            Parsed YAML config
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            config_dir = os.path.dirname(os.path.abspath(self.local_config_path))
            return self._load_yaml(os.path.join(config_dir, uri))

        if parsed.scheme == "file":
            return self._load_yaml(urllib.parse.unquote(parsed.path))

        elif parsed.scheme in ("http", "https"):
            cache_path = self._cache_path(uri)
            if cache_path.exists():
                return self._load_yaml(str(cache_path))
            content = self._fetch_uri(uri)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(content)
            return yaml.safe_load(content)

        else:
            raise ValueError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=10)
            response.raise_for_status()
            return response.text
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Failed to fetch config from {uri}: {e}") from e

    def get_configuration(self, kind: str, namespace: str) -> Dict[str, Any]:
        """
        Configuration of the given kind for an extension namespace.

        Only the "settings" kind is held here; any other kind is empty.
        """
        if kind != "settings":
            return {}
        return (self.business_config.get("settings") or {}).get(namespace) or {}

    def get_business_config(self) -> Dict[str, Any]:
        """Get business configuration (tier 2)."""
        return self.business_config

    def get_local_config(self) -> Dict[str, Any]:
        """Get local configuration (tier 1)."""
        return self.local_config

    def get_business_config_uri(self) -> Optional[str]:
        return self.local_config.get("validation_config_uri")

    def get_business_config_age(self) -> Optional[float]:
        """
        Get age of business config in seconds since it was loaded.

        Returns:
            Age in seconds, or None if not loaded
        """
        if hasattr(self, "business_config_loaded_at"):
            return time.time() - self.business_config_loaded_at
        return None

    def get_plugin_placements(self) -> Dict[Any, Any]:
        return self.business_config.get("plugin_placements") or {}

    def get_record_store_config(self) -> Dict[str, Any]:
        return self.local_config.get("record_store") or {"enabled": False}

    def get_plugin_prefix(self) -> str:
        return self.local_config.get("plugin_prefix", "tx_femanager")

    def get_extension_name(self) -> str:
        return self.local_config.get("extension_name", "Femanager")

    def get_config_cache_max_age(self) -> int:
        return int(
            self.local_config.get(
                "config_cache_max_age_seconds", self.DEFAULT_MAX_AGE_SECONDS
            )
        )
