"""
Brain configuration.

Settings live in a YAML file (``<root>/.codebrain/config.yaml`` by default)
and are deep-merged over the defaults below. Unknown keys are ignored so old
configs keep loading after fields are removed.

Example config.yaml:

    commit_threshold: 20
    max_nodes: 2000
    max_deltas: 200
    prune:
      threshold: 0.05
    output:
      max_tokens: 2000
      format: natural
    events:
      webhook_url: https://example.com/brain-hook
      types: [delta.committed]
"""

import copy
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .storage.cache import DEBOUNCE_MS, DEFAULT_BRAIN_DIR

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
OUTPUT_FORMATS = ("compact", "natural", "json")


@dataclass
class PruneConfig:
    """Pruning settings; ``enabled: false`` turns Brain.prune into a no-op"""
    enabled: bool = True
    threshold: float = 0.1
    unused_days: int = 90


@dataclass
class OutputConfig:
    """LLM context rendering settings"""
    max_tokens: int = 4000
    format: str = "compact"

    def __post_init__(self):
        if self.format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output format: {self.format}. Must be one of: {list(OUTPUT_FORMATS)}")


@dataclass
class EventsConfig:
    """Outbound event notifications"""
    webhook_url: Optional[str] = None
    types: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class BrainConfig:
    """Top-level brain settings"""
    enabled: bool = True
    auto_learn: bool = True
    auto_commit: bool = True
    commit_threshold: int = 10
    max_nodes: int = 5000
    max_deltas: int = 500
    brain_dir: str = DEFAULT_BRAIN_DIR
    debounce_ms: int = DEBOUNCE_MS
    prune: PruneConfig = field(default_factory=PruneConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    events: EventsConfig = field(default_factory=EventsConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BrainConfig":
        """Build a config from a (possibly partial) dict over the defaults."""
        merged = deep_merge(cls().to_dict(), data or {})
        top = {k: v for k, v in merged.items() if k in cls.__dataclass_fields__}
        top["prune"] = _section(PruneConfig, merged.get("prune"))
        top["output"] = _section(OutputConfig, merged.get("output"))
        top["events"] = _section(EventsConfig, merged.get("events"))
        return cls(**top)


def _section(section_cls, data: Any):
    if not isinstance(data, dict):
        return section_cls()
    return section_cls(**{k: v for k, v in data.items() if k in section_cls.__dataclass_fields__})


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge ``override`` into a copy of ``base``.

    Examples:
        >>> deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        {'a': {'b': 1, 'c': 3}}
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(path: Union[str, Path]) -> BrainConfig:
    """
    Load configuration from a YAML file.

    A missing file yields the defaults. A file that is not valid YAML, or whose
    top level is not a mapping, is logged and ignored.

    Args:
        path: Path to config.yaml

    Returns:
        BrainConfig
    """
    path = Path(path)
    if not path.exists():
        return BrainConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read config {path}, using defaults: {e}")
        return BrainConfig()

    if data is None:
        return BrainConfig()
    if not isinstance(data, dict):
        logger.warning(f"Config {path} is not a mapping, using defaults")
        return BrainConfig()
    return BrainConfig.from_dict(data)


def save_config(config: BrainConfig, path: Union[str, Path]) -> None:
    """Write a config to YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False), encoding="utf-8")
