"""Plugin manifests."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class ManifestError(Exception):
    """Raised when a plugin manifest cannot be opened or decoded."""


@dataclass(frozen=True)
class Manifest:
    """A plugin manifest: the name the plugin is shown under and what it imports."""

    display_name: str
    import_path: str


def _scalar(data: dict[Any, Any], key: str, path: str | Path) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ManifestError(f"failed to decode the plugin manifest {path}: {key} must be a scalar")
    return str(value)


def read_manifest(path: str | Path) -> Manifest:
    """Read a YAML manifest with ``name`` and ``import`` keys."""
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as err:
        raise ManifestError(f"failed to open the plugin manifest {path}: {err}") from err
    except (yaml.YAMLError, ValueError) as err:
        raise ManifestError(f"failed to decode the plugin manifest {path}: {err}") from err
    if data is None:
        raise ManifestError(f"failed to decode the plugin manifest {path}: empty document")
    if not isinstance(data, dict):
        raise ManifestError(f"failed to decode the plugin manifest {path}: not a mapping")
    return Manifest(
        display_name=_scalar(data, "name", path), import_path=_scalar(data, "import", path)
    )