"""Configuration parsing helpers."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

logger = logging.getLogger(__name__)


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_exclude_patterns(value: Iterable[str] | str) -> List[re.Pattern]:
    """Parse hostname exclusion patterns.

    Accepts a comma-separated string or a list of items. Each item is either
    an exact hostname, a wildcard pattern ("*.internal.*") or a regex prefixed
    with "~".
    """
    patterns: List[re.Pattern] = []
    if not value:
        return patterns

    items = value.split(",") if isinstance(value, str) else value
    for raw_item in items:
        item = str(raw_item).strip()
        if not item:
            continue

        try:
            if item.startswith("~"):
                patterns.append(re.compile(item[1:], re.IGNORECASE))
            elif "*" in item or "?" in item:
                regex_str = re.escape(item)
                regex_str = regex_str.replace(r"\*", ".*").replace(r"\?", ".")
                patterns.append(re.compile(f"^{regex_str}$", re.IGNORECASE))
            else:
                patterns.append(re.compile(f"^{re.escape(item)}$", re.IGNORECASE))
            logger.debug(f"Added exclusion pattern: {item}")
        except re.error as e:
            logger.warning(f"Invalid exclusion pattern '{item}': {e}")

    return patterns


def _is_domain_excluded(domain: str, patterns: List[re.Pattern]) -> bool:
    """Check if a hostname matches any exclusion pattern."""
    for pattern in patterns:
        if pattern.search(domain):
            return True
    return False


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load the optional YAML config file; missing or malformed files yield {}."""
    path = Path(config_path)
    if not config_path or not path.is_file():
        return {}

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {config_path} is not a mapping, ignoring")
        return {}

    config: Dict[str, Any] = {}
    for key in ("zones", "exclude_hostnames"):
        items = data.get(key) or []
        if not isinstance(items, list):
            logger.warning(f"Config file {config_path}: '{key}' must be a list, ignoring")
            continue
        config[key] = [str(item).strip() for item in items if str(item).strip()]
    return config
