"""
Brain Export/Import - portable snapshot files.

Support for JSON and YAML snapshots of a whole brain.

Enables:
- Backing up a project's learnings
- Moving a brain between machines or checkouts
- Inspecting brain state by hand
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .brain import Brain

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


class BrainExporter:
    """
    Write brain snapshots to files.

    Features:
    - JSON or YAML output
    - Optional delta history
    """

    def __init__(self, brain: Brain):
        self.brain = brain

    def export_to_dict(self, include_history: bool = False) -> Dict[str, Any]:
        """
        Snapshot the brain.

        Raises:
            RuntimeError: If the brain is not initialized
        """
        data = self.brain.export(include_history=include_history)
        if data is None:
            raise RuntimeError("Brain is not initialized")
        return data

    def export_to_json(self, output_path: Union[str, Path], include_history: bool = False,
                       indent: int = 2) -> int:
        """
        Export to a JSON file.

        Returns:
            Number of nodes exported
        """
        data = self.export_to_dict(include_history)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)

        return _node_count(data)

    def export_to_yaml(self, output_path: Union[str, Path], include_history: bool = False) -> int:
        """
        Export to a YAML file.

        Returns:
            Number of nodes exported
        """
        data = self.export_to_dict(include_history)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

        return _node_count(data)

    def export_to_file(self, output_path: Union[str, Path], include_history: bool = False) -> int:
        """Export with the format chosen by suffix (.yaml/.yml, otherwise JSON)."""
        if Path(output_path).suffix.lower() in YAML_SUFFIXES:
            return self.export_to_yaml(output_path, include_history)
        return self.export_to_json(output_path, include_history)


class BrainImporter:
    """
    Load brain snapshots from files.

    The snapshot replaces the brain's state wholesale; see Brain.import_data.
    """

    def __init__(self, brain: Brain):
        self.brain = brain

    def load_file(self, input_path: Union[str, Path]) -> Any:
        """
        Parse a snapshot file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file cannot be parsed
        """
        input_path = Path(input_path)
        if not input_path.exists():
            raise FileNotFoundError(f"Import file not found: {input_path}")

        text = input_path.read_text(encoding="utf-8")
        try:
            if input_path.suffix.lower() in YAML_SUFFIXES:
                return yaml.safe_load(text)
            return json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Could not parse {input_path}: {e}") from e

    def import_from_file(self, input_path: Union[str, Path]) -> bool:
        """
        Import a snapshot file.

        Returns:
            True if the snapshot was accepted

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file cannot be parsed
        """
        data = self.load_file(input_path)
        ok = self.brain.import_data(data)
        if not ok:
            logger.warning(f"Snapshot {input_path} was rejected")
        return ok


def _node_count(data: Dict[str, Any]) -> int:
    return sum(len(nodes) for nodes in data.get("nodes", {}).values())
