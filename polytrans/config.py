import copy
import json
import secrets
from typing import Any, Dict, List, Optional

from polytrans.core import database as db
from polytrans.core.schema import initialize_database
from polytrans.logger import get_logger

logger = get_logger(__name__)

# Outbound vendor call timeout bounds (seconds)
MIN_REQUEST_TIMEOUT = 5
MAX_REQUEST_TIMEOUT = 600

# Legacy setting names kept readable for configurations migrated from older installs
LEGACY_SETTING_KEYS = {
    "translation_path_rules": "openai_path_rules",
    "assistants_mapping": "openai_assistants",
}

FAILURE_POLICIES = ("continue", "abort")

DEFAULT_CONFIG = {
    "enabled_translation_providers": ["google"],
    "translation_path_rules": [],
    "assistants_mapping": {},
    "openai_api_key": "",
    "openai_base_url": "https://api.openai.com/v1",
    "openai_model": "gpt-4o-mini",
    "claude_api_key": "",
    "claude_base_url": "https://api.anthropic.com/v1",
    "claude_model": "claude-3-5-sonnet-latest",
    "gemini_api_key": "",
    "gemini_base_url": "https://generativelanguage.googleapis.com/v1beta",
    "gemini_model": "gemini-2.5-flash",
    "request_timeout": 120,
    "assistant_poll_attempts": 30,
    "assistant_poll_interval": 2.0,
    "workflow_failure_policy": "continue",
    "background": {
        "job_ttl": 3600,
        "test_result_ttl": 300,
        "execution_result_ttl": 600,
        "translation_result_ttl": 3600,
        "poll_interval": 2.0,
        "poll_attempts": 150,
        "allow_process_spawn": True,
        "loopback_url": "http://127.0.0.1:5500",
        "loopback_secret": "",
    },
    "log_mode": "off",
}


def default_config() -> Dict[str, Any]:
    """Return a fresh deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_with_defaults(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Overlay stored values on the defaults, one level deep for nested sections."""
    merged = default_config()
    for key, value in (config or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict) and key != "assistants_mapping":
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def initialize_app():
    """
    Initialize the application.
    Creates the database and stores the default configuration when none exists yet.
    """
    logger.info("Initializing application...")

    initialize_database()
    logger.info("Database initialized")

    existing_config = db.get_app_config('config')
    if not existing_config:
        logger.info("No config in database, initializing default config")
        config = default_config()
        config["background"]["loopback_secret"] = secrets.token_hex(16)
        save_config(config)
    else:
        config = load_config()
        if not config["background"].get("loopback_secret"):
            config["background"]["loopback_secret"] = secrets.token_hex(16)
            save_config(config)
        logger.debug("Config already exists in database")

    logger.info("Application initialization complete")


def load_config() -> Dict[str, Any]:
    """Load the configuration from database, merged over the defaults."""
    try:
        config_json = db.get_app_config('config')
    except Exception as e:
        logger.error(f"Failed to load config from database: {e}")
        logger.warning("Using default configuration")
        return default_config()

    if not config_json:
        logger.debug("No config in database, using defaults")
        return default_config()

    try:
        stored = json.loads(config_json)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        return default_config()

    logger.debug("Configuration loaded from database")
    return merge_with_defaults(stored)


def save_config(config: Dict[str, Any]):
    """Save the configuration to database."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        db.set_app_config('config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise


def get_setting(config: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a setting, falling back to its legacy name when the new one is empty."""
    value = config.get(key)
    if value:
        return value
    legacy_key = LEGACY_SETTING_KEYS.get(key)
    if legacy_key and config.get(legacy_key):
        logger.debug(f"Using legacy setting '{legacy_key}' for '{key}'")
        return config[legacy_key]
    return value if value is not None else default


def get_enabled_providers(config: Dict[str, Any]) -> List[str]:
    enabled = config.get("enabled_translation_providers")
    if enabled is None:
        return list(DEFAULT_CONFIG["enabled_translation_providers"])
    return list(enabled)


def get_request_timeout(config: Dict[str, Any]) -> float:
    """Per-call vendor timeout, clamped to the supported range."""
    try:
        timeout = float(config.get("request_timeout", DEFAULT_CONFIG["request_timeout"]))
    except (TypeError, ValueError):
        timeout = float(DEFAULT_CONFIG["request_timeout"])
    return max(MIN_REQUEST_TIMEOUT, min(MAX_REQUEST_TIMEOUT, timeout))


def get_background_setting(config: Dict[str, Any], key: str) -> Any:
    background = config.get("background") or {}
    if key in background:
        return background[key]
    return DEFAULT_CONFIG["background"][key]

