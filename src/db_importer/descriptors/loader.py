"""Descriptor discovery and the descriptor registry.

A descriptor directory holds one descriptor unit per file:

- ``<name>.py`` must define a class called ``<name>`` implementing the
  ``DescriptorModule`` capability interface (usually by subclassing
  ``BaseDescriptorModule``).
- ``<name>.json`` is parsed as a ``DescriptorBundle``.

Usage:
    from db_importer.descriptors.loader import load_descriptors

    registry = load_descriptors("install/install_schema")
    for module in registry:
        print(module.name, len(module.describe_schema()))

Example descriptor file ``install/install_schema/Widgets.py``::

    from db_importer.descriptors import BaseDescriptorModule, TableDescriptor

    class Widgets(BaseDescriptorModule):
        def describe_schema(self):
            return [TableDescriptor(name="widget", columns={...})]
"""

import importlib.util
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from db_importer.descriptors.models import (
    DescriptorBundle,
    ForeignKeySpec,
    SeedDataBlock,
    TableDescriptor,
)
from db_importer.errors import DescriptorLoadError

logger = logging.getLogger(__name__)


@runtime_checkable
class DescriptorModule(Protocol):
    """Capability interface every descriptor unit implements."""

    name: str

    def describe_schema(self) -> list[TableDescriptor]:
        """Tables this unit declares, in creation order."""
        ...

    def describe_seed_data(self) -> list[SeedDataBlock]:
        """Rows inserted by ``Importer.import_data()``."""
        ...

    def describe_foreign_keys(self) -> list[ForeignKeySpec]:
        """Foreign keys applied in the post-pass."""
        ...


class BaseDescriptorModule:
    """Convenience base class: every capability defaults to empty."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name or type(self).__name__

    def describe_schema(self) -> list[TableDescriptor]:
        return []

    def describe_seed_data(self) -> list[SeedDataBlock]:
        return []

    def describe_foreign_keys(self) -> list[ForeignKeySpec]:
        return []


class DescriptorRegistry:
    """Ordered collection of descriptor units for one import run."""

    def __init__(self) -> None:
        self._modules: list[DescriptorModule] = []

    def register(self, module: DescriptorModule) -> DescriptorModule:
        """Append a descriptor unit, rejecting duplicate names."""
        if not isinstance(module, DescriptorModule):
            raise TypeError(f"{module!r} does not implement DescriptorModule")
        if any(m.name == module.name for m in self._modules):
            raise ValueError(f"Descriptor module already registered: {module.name}")
        self._modules.append(module)
        return module

    def clear(self) -> None:
        self._modules.clear()

    @property
    def names(self) -> list[str]:
        return [m.name for m in self._modules]

    def __iter__(self) -> Iterator[DescriptorModule]:
        return iter(list(self._modules))

    def __len__(self) -> int:
        return len(self._modules)


# ------------------------------------------------------------------
# File loading
# ------------------------------------------------------------------


def _load_python_module(path: Path) -> DescriptorModule:
    """Execute a ``.py`` descriptor file and instantiate its class."""
    spec = importlib.util.spec_from_file_location(f"db_importer_descriptors.{path.stem}", path)
    if spec is None or spec.loader is None:
        raise DescriptorLoadError(f"Cannot load descriptor file: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise DescriptorLoadError(f"Error executing descriptor file {path}: {e}") from e

    cls = getattr(module, path.stem, None)
    if cls is None:
        raise DescriptorLoadError(f"Descriptor file {path.name} does not define class '{path.stem}'")
    instance = cls()
    if not isinstance(instance, DescriptorModule):
        raise DescriptorLoadError(f"Class '{path.stem}' in {path.name} does not implement DescriptorModule")
    return instance


def _load_json_bundle(path: Path) -> DescriptorBundle:
    """Parse a ``.json`` descriptor file into a ``DescriptorBundle``."""
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise DescriptorLoadError(f"Invalid JSON in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise DescriptorLoadError(f"Descriptor file {path.name} must contain a JSON object")
    data.setdefault("name", path.stem)
    try:
        return DescriptorBundle.model_validate(data)
    except ValidationError as e:
        raise DescriptorLoadError(f"Invalid descriptor in {path.name}: {e}") from e


_LOADERS = {
    ".py": _load_python_module,
    ".json": _load_json_bundle,
}


def load_descriptors(
    path: str | Path,
    registry: DescriptorRegistry | None = None,
) -> DescriptorRegistry:
    """Load every descriptor file in *path* into a registry.

    Files are visited in sorted name order so discovery is stable across
    platforms.  Subdirectories and files with other extensions are
    skipped.

    Args:
        path: Directory containing descriptor files.
        registry: Registry to append to.  A new one is created when None.

    Returns:
        The registry holding the loaded descriptor units.

    Raises:
        FileNotFoundError: If *path* is not a directory.
        DescriptorLoadError: If a descriptor file is invalid.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise FileNotFoundError(f"Descriptor directory not found: {directory}")

    registry = registry if registry is not None else DescriptorRegistry()
    for file_path in sorted(directory.iterdir()):
        loader = _LOADERS.get(file_path.suffix)
        if not file_path.is_file() or loader is None or file_path.name.startswith("_"):
            continue
        module = loader(file_path)
        registry.register(module)
        logger.debug(f"Loaded descriptor module {module.name} from {file_path}")

    return registry
