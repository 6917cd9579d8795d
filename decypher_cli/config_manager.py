"""Configuration manager for decypher using TOML files."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from .config import (
    CONFIG_FILE,
    AffinityConfig,
    AnalysisConfig,
    ExtractionConfig,
    ResolutionConfig,
    StringsConfig,
    ToolsConfig,
)
from .errors import ConfigurationError
from .models import ModuleDefinition
from .modules import default_modules

logger = logging.getLogger(__name__)

# Keys of each section that are not plain scalars/lists.
_NESTED_EXTRACTION_KEYS = {"signatures": "signatures", "entities": "entity_patterns"}


def default_config_dict() -> Dict[str, Any]:
    """The defaults as a TOML-ready dictionary."""
    return config_to_dict(AnalysisConfig(modules=default_modules()))


def config_to_dict(config: AnalysisConfig) -> Dict[str, Any]:
    extraction = asdict(config.extraction)
    signatures = extraction.pop("signatures")
    entities = extraction.pop("entity_patterns")
    # TOML arrays must be homogeneous, so tier minimums are written as floats.
    extraction["length_tiers"] = [[float(m), b] for m, b in config.extraction.length_tiers]
    extraction = {k: list(v) if isinstance(v, tuple) else v for k, v in extraction.items()}
    extraction["signatures"] = {k: list(v) for k, v in signatures.items()}
    extraction["entities"] = {k: list(v) for k, v in entities.items()}

    resolution = asdict(config.resolution)
    resolution["deferred_initializers"] = list(config.resolution.deferred_initializers)

    data: Dict[str, Any] = {
        "resolution": resolution,
        "extraction": extraction,
        "affinity": asdict(config.affinity),
        "strings": _listed(asdict(config.strings)),
        "tools": _listed(asdict(config.tools)),
    }
    if config.modules is not None:
        data["modules"] = [
            {
                "name": m.name,
                "keywords": sorted(m.keywords),
                "seed_functions": sorted(m.seed_functions),
                "fallback": m.fallback,
            }
            for m in config.modules
        ]
    return data


def config_from_dict(data: Dict[str, Any]) -> AnalysisConfig:
    """Build an :class:`AnalysisConfig` from parsed TOML.

    Unknown keys are logged and ignored; out-of-range values raise
    :class:`ConfigurationError`.
    """
    resolution = _known_keys("resolution", data.get("resolution", {}), ResolutionConfig)

    raw_extraction = dict(data.get("extraction", {}))
    nested: Dict[str, Any] = {}
    for section, attr in _NESTED_EXTRACTION_KEYS.items():
        if section in raw_extraction:
            nested[attr] = {k: tuple(v) for k, v in raw_extraction.pop(section).items()}
    extraction = _known_keys("extraction", raw_extraction, ExtractionConfig)

    affinity = _known_keys("affinity", data.get("affinity", {}), AffinityConfig)
    strings = _known_keys("strings", data.get("strings", {}), StringsConfig)
    tools = _known_keys("tools", data.get("tools", {}), ToolsConfig)

    for key in data:
        if key not in ("resolution", "extraction", "affinity", "strings", "tools", "modules"):
            logger.warning("Ignoring unknown config section [%s]", key)

    modules: Optional[List[ModuleDefinition]] = None
    if "modules" in data:
        modules = []
        for entry in data["modules"]:
            if "name" not in entry:
                raise ConfigurationError("Every [[modules]] entry needs a name")
            modules.append(
                ModuleDefinition(
                    name=entry["name"],
                    keywords=frozenset(entry.get("keywords", [])),
                    seed_functions=frozenset(entry.get("seed_functions", [])),
                    fallback=bool(entry.get("fallback", False)),
                )
            )

    try:
        return AnalysisConfig(
            resolution=ResolutionConfig(**resolution),
            extraction=ExtractionConfig(**extraction, **nested),
            affinity=AffinityConfig(**affinity),
            strings=StringsConfig(**strings),
            tools=ToolsConfig(**tools),
            modules=modules,
        )
    except TypeError as exc:
        raise ConfigurationError(f"Invalid configuration value: {exc}") from exc


def load_analysis_config(path: Optional[Path] = None) -> AnalysisConfig:
    """Load analysis options from TOML.

    A missing file gives the defaults; an unreadable one is logged and
    also gives the defaults.
    """
    path = path or CONFIG_FILE
    if not path.exists():
        return AnalysisConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read config %s (%s); using defaults", path, exc)
        return AnalysisConfig()
    logger.debug("Loaded configuration from %s", path)
    return config_from_dict(data)


def save_analysis_config(config: AnalysisConfig, path: Optional[Path] = None) -> Path:
    """Write *config* as TOML and return the path written."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(config_to_dict(config), f)
    return path


def _listed(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: list(v) if isinstance(v, tuple) else v for k, v in values.items()}


def _known_keys(section: str, values: Dict[str, Any], cls: type) -> Dict[str, Any]:
    allowed = set(cls.__dataclass_fields__)
    known: Dict[str, Any] = {}
    for key, value in values.items():
        if key in allowed:
            known[key] = value
        else:
            logger.warning("Ignoring unknown option %s.%s", section, key)
    return known
