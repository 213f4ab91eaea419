"""Package descriptor import/export.

Descriptor files are YAML or JSON. A file holds either a single package
mapping or a mapping with a ``packages`` list:

    packages:
      - slug: demo-plugin
        type: plugin
        installed_version: 1.2.0
        installed_source: /srv/wp/wp-content/plugins/demo-plugin
"""

import json
from pathlib import Path
from typing import Any

import yaml

from release_vault.packages.schema import PackageSchema


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the content is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the content is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_data(path: Path) -> dict[str, Any]:
    """Load a descriptor file, choosing the parser by extension.

    Raises:
        ValueError: If file extension is not supported.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml(path)
    elif suffix == ".json":
        return load_json(path)
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )


def parse_package_data(data: dict[str, Any]) -> list[PackageSchema]:
    """Validate descriptor data.

    Args:
        data: Either one package mapping or ``{"packages": [...]}``.

    Returns:
        List of validated PackageSchema instances.

    Raises:
        pydantic.ValidationError: If an entry does not match the schema.
        ValueError: If ``packages`` is not a list.
    """
    if "packages" in data:
        entries = data["packages"]
        if not isinstance(entries, list):
            raise ValueError("'packages' must be a list")
        return [PackageSchema.model_validate(entry) for entry in entries]
    return [PackageSchema.model_validate(data)]


def load_packages(path: Path) -> list[PackageSchema]:
    """Load and validate package descriptors from a file."""
    return parse_package_data(load_data(path))


def export_packages(packages: list[PackageSchema], path: Path) -> None:
    """Write package descriptors to a YAML or JSON file.

    Raises:
        ValueError: If file extension is not supported.
    """
    data = {
        "packages": [p.model_dump(mode="json", exclude_none=True) for p in packages]
    }
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                data, f, default_flow_style=False, allow_unicode=True, sort_keys=False
            )
    elif suffix == ".json":
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )


__all__ = [
    "export_packages",
    "load_data",
    "load_json",
    "load_packages",
    "load_yaml",
    "parse_package_data",
]
