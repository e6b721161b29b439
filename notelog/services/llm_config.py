"""LLM config loader: load a named LLM config from YAML.

A config names a registered provider plus provider-specific keys, e.g.::

    provider: gemini
    model: gemini-2.5-flash
    options:
      temperature: 0.15
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Directory containing LLM config YAML files (notelog/llm_configs/)
_LLM_CONFIGS_DIR = Path(__file__).resolve().parent.parent / "llm_configs"


def get_llm_config(version_or_name: str, configs_dir: Path | None = None) -> Optional[Dict[str, Any]]:
    """
    Load LLM config by name from YAML (e.g. "default", "openai").
    Returns dict with keys: provider, model, options, and provider-specific (gemini, openai).
    Returns None if file not found or not a mapping.
    """
    path = (configs_dir or _LLM_CONFIGS_DIR) / f"{version_or_name}.yaml"
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            return None
        return dict(data)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load LLM config %s: %s", version_or_name, e)
        return None


def list_llm_config_names(configs_dir: Path | None = None) -> List[str]:
    """Names of the bundled (or given) YAML configs, sorted."""
    directory = configs_dir or _LLM_CONFIGS_DIR
    names = []
    if directory.is_dir():
        for p in directory.iterdir():
            if p.suffix == ".yaml" and p.stem:
                names.append(p.stem)
    return sorted(names)
