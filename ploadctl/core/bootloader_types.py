"""Loading and validation of YAML bootloader type definitions."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from ploadctl.core.errors import BootloaderTypeLoadError, BootloaderTypeValidationError
from ploadctl.core.model import BootloaderType, MemoryLayout, UsbIds

_HEX_NUMBER_RE = re.compile(r"^0x[0-9a-f]+$")
_MAX_USB_ID = 0xFFFF
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise BootloaderTypeValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedBootloaderTypes:
    types: dict[str, BootloaderType]
    warnings: tuple[str, ...]

    def sorted_types(self) -> list[BootloaderType]:
        return sorted(self.types.values(), key=lambda t: t.name)


def _load_schema_validator() -> Any:
    schema_text = resources.files("ploadctl.schemas").joinpath("bootloader.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _type_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "ploadctl/bootloaders", xdg_data / "ploadctl/bootloaders"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BootloaderTypeLoadError(f"Could not read bootloader type file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise BootloaderTypeValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise BootloaderTypeValidationError(f"Bootloader type file {path} must contain a mapping at root")
    return loaded


def _parse_number(value: str, *, context: str) -> int:
    normalized = value.strip().lower()
    if not _HEX_NUMBER_RE.match(normalized):
        raise BootloaderTypeValidationError(f"{context} must be a hex number like 0x2000")
    return int(normalized, 16)


def _build_type(doc: dict[str, Any], source: Path | Traversable) -> BootloaderType:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise BootloaderTypeValidationError(
            f"Schema validation failed for {source}{where}: {exc.message}"
        ) from exc

    type_id = doc["id"]
    usb = UsbIds(
        vendor_id=_parse_number(doc["usb"]["vendor_id"], context=f"{type_id}.usb.vendor_id"),
        product_id=_parse_number(doc["usb"]["product_id"], context=f"{type_id}.usb.product_id"),
    )
    if usb.vendor_id > _MAX_USB_ID or usb.product_id > _MAX_USB_ID:
        raise BootloaderTypeValidationError(f"{type_id}.usb ids must fit in 16 bits")

    memory = MemoryLayout(
        **{
            key: _parse_number(value, context=f"{type_id}.memory.{key}")
            for key, value in doc["memory"].items()
        }
    )
    if memory.app_size == 0:
        raise BootloaderTypeValidationError(f"{type_id}.memory.app_size must not be zero")
    if memory.write_block_size == 0 or memory.app_size % memory.write_block_size:
        raise BootloaderTypeValidationError(
            f"{type_id}.memory.app_size must be a non-zero multiple of write_block_size"
        )

    return BootloaderType(id=type_id, name=doc["name"], usb=usb, memory=memory)


def _iter_packaged_type_paths() -> list[Traversable]:
    type_root = resources.files("ploadctl.bootloaders")
    return [item for item in type_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_type_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _type_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_bootloader_types() -> LoadedBootloaderTypes:
    types: dict[str, BootloaderType] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_type_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        bootloader_type = _build_type(doc, path)
        types[bootloader_type.id] = bootloader_type

    for path in _iter_user_type_paths():
        doc = _read_yaml(path)
        bootloader_type = _build_type(doc, path)
        if bootloader_type.id in types:
            warning = f"User bootloader type '{bootloader_type.id}' overrides packaged type"
            LOGGER.warning(warning)
            warnings.append(warning)
        types[bootloader_type.id] = bootloader_type

    LOGGER.debug("Loaded %d bootloader types", len(types))
    return LoadedBootloaderTypes(types=types, warnings=tuple(warnings))
