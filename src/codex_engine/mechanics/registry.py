"""
Read-only ability registries.

The core-ability registry maps normalized (uppercase, trimmed) names to core
abilities; the faction registry maps ability ids to faction abilities. Both
are plain values handed to the AbilityCollector, so tests and callers can
swap in their own. Lookups never mutate a registry.
"""

import json
import logging
import re
from copy import deepcopy
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from ..exceptions import RegistryLoadError
from .models import MECHANIC_ADAPTER, CoreAbility, FactionAbility, Mechanic

logger = logging.getLogger("codex-engine.mechanics")

PARAMETER_PLACEHOLDER = "{parameter}"


def normalize_ability_name(name: str) -> str:
    return name.upper().strip()


def normalize_for_comparison(text: str) -> str:
    """Loose text key: lowercase, ASCII quotes, dashes as spaces, single spaces."""
    text = text.lower()
    text = re.sub(r"[‘’`]", "'", text)
    text = re.sub(r"[“”]", '"', text)
    text = re.sub(r"[-‐‑‒–—]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def parse_parameter_value(parameter: str | int) -> int | str:
    """Numeric parameters become ints ("5+" -> 5); dice expressions stay text."""
    if isinstance(parameter, int):
        return parameter
    match = re.match(r"^(\d+)\+?$", parameter.strip())
    return int(match.group(1)) if match else parameter.strip()


def _substitute(template: dict[str, Any], value: int | str) -> dict[str, Any]:
    resolved = deepcopy(template)
    if resolved.get("value") == PARAMETER_PLACEHOLDER:
        resolved["value"] = value
    if isinstance(resolved.get("mechanics"), list):
        resolved["mechanics"] = [_substitute(nested, value) for nested in resolved["mechanics"]]
    return resolved


def _has_placeholder(template: Any) -> bool:
    if isinstance(template, dict):
        return any(_has_placeholder(v) for v in template.values())
    if isinstance(template, list):
        return any(_has_placeholder(v) for v in template)
    return template == PARAMETER_PLACEHOLDER


def _read_document(path: Path) -> Any:
    """Load a YAML or JSON registry file, chosen by suffix."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except FileNotFoundError as e:
        raise RegistryLoadError(f"Registry file not found: {path}", {"path": str(path)}) from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise RegistryLoadError(f"Registry file is malformed: {path}", {"path": str(path), "error": str(e)}) from e


# ---------------------------------------------------------------------------
# Core abilities
# ---------------------------------------------------------------------------

class CoreAbilityRegistry:
    """Core-rulebook abilities keyed by normalized name.

    Example:
        >>> registry = CoreAbilityRegistry.load(Path("core_abilities.yaml"))
        >>> registry.resolve("feel no pain", "5+")[0].value
        5
    """

    def __init__(self, abilities: Iterable[CoreAbility] = ()) -> None:
        entries: dict[str, CoreAbility] = {}
        for ability in abilities:
            if not _has_placeholder(ability.mechanics):
                # Templates without placeholders must already be valid mechanics.
                MECHANIC_ADAPTER.validate_python(ability.mechanics)
            entries[normalize_ability_name(ability.name)] = ability
        self._abilities = MappingProxyType(entries)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "CoreAbilityRegistry":
        """Build from ``{"abilities": {NAME: {type, description, mechanics}}}``.

        Raises:
            RegistryLoadError: If the document shape or a mechanic is invalid
        """
        if not isinstance(data, dict) or not isinstance(data.get("abilities"), dict):
            raise RegistryLoadError("Core ability registry must contain an 'abilities' mapping")
        try:
            return cls(
                CoreAbility(name=name, **(entry or {}))
                for name, entry in data["abilities"].items()
            )
        except (ValidationError, TypeError) as e:
            raise RegistryLoadError("Invalid core ability definition", {"error": str(e)}) from e

    @classmethod
    def load(cls, path: Path) -> "CoreAbilityRegistry":
        """Load from a YAML or JSON file.

        Expected format:
            abilities:
              FEEL NO PAIN:
                type: parameterized
                mechanics:
                  - kind: adds-ability
                    abilities: [FEEL NO PAIN]
                    value: "{parameter}"

        Raises:
            RegistryLoadError: If the file is missing, malformed or invalid
        """
        return cls.from_mapping(_read_document(Path(path)))

    def get(self, name: str) -> CoreAbility | None:
        return self._abilities.get(normalize_ability_name(name))

    def is_core_ability(self, name: str) -> bool:
        return normalize_ability_name(name) in self._abilities

    def ability_type(self, name: str) -> str | None:
        ability = self.get(name)
        return ability.type if ability else None

    def resolve(self, name: str, parameter: str | int | None = None) -> list[Mechanic] | None:
        """Mechanics of a core ability with ``{parameter}`` substituted.

        Args:
            name: Ability name in any case, e.g. "Feel No Pain"
            parameter: The unit's parameter, e.g. "5+" or "D3"

        Returns:
            Fresh mechanic values, or None when the name is not registered

        Raises:
            pydantic.ValidationError: If the parameter does not fit the template
        """
        ability = self.get(name)
        if ability is None:
            return None
        templates = ability.mechanics
        if parameter is not None:
            value = parse_parameter_value(parameter)
            templates = [_substitute(template, value) for template in templates]
        return MECHANIC_ADAPTER.validate_python(templates)

    def names(self) -> list[str]:
        return list(self._abilities)

    def __contains__(self, name: str) -> bool:
        return self.is_core_ability(name)

    def __len__(self) -> int:
        return len(self._abilities)


# ---------------------------------------------------------------------------
# Faction abilities
# ---------------------------------------------------------------------------

class FactionAbilityRegistry:
    """Faction abilities keyed by id, with a secondary lookup by name."""

    def __init__(self, abilities: Iterable[FactionAbility] = ()) -> None:
        by_id: dict[str, FactionAbility] = {}
        by_name: dict[str, FactionAbility] = {}
        for ability in abilities:
            by_id[ability.id] = ability
            by_name.setdefault(normalize_for_comparison(ability.name), ability)
        self._by_id = MappingProxyType(by_id)
        self._by_name = MappingProxyType(by_name)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "FactionAbilityRegistry":
        """Build from ``{"faction_abilities": [{id, name, description, mechanics}]}``."""
        if not isinstance(data, dict) or not isinstance(data.get("faction_abilities"), list):
            raise RegistryLoadError("Faction registry must contain a 'faction_abilities' list")
        try:
            return cls(FactionAbility(**entry) for entry in data["faction_abilities"])
        except (ValidationError, TypeError) as e:
            raise RegistryLoadError("Invalid faction ability definition", {"error": str(e)}) from e

    @classmethod
    def load(cls, path: Path) -> "FactionAbilityRegistry":
        """Load from a YAML or JSON file.

        Raises:
            RegistryLoadError: If the file is missing, malformed or invalid
        """
        return cls.from_mapping(_read_document(Path(path)))

    def get(self, ability_id: str) -> FactionAbility | None:
        return self._by_id.get(ability_id)

    def get_by_name(self, name: str) -> FactionAbility | None:
        return self._by_name.get(normalize_for_comparison(name))

    def resolve_ids(self, ability_ids: Iterable[str]) -> tuple[list[FactionAbility], list[str]]:
        """Look up ids in order. Returns (found abilities, missing ids)."""
        found: list[FactionAbility] = []
        missing: list[str] = []
        for ability_id in ability_ids:
            ability = self._by_id.get(ability_id)
            if ability is None:
                missing.append(ability_id)
            else:
                found.append(ability)
        return found, missing

    def __contains__(self, ability_id: str) -> bool:
        return ability_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)


# ---------------------------------------------------------------------------
# Keyed accumulation for data-pipeline merges
# ---------------------------------------------------------------------------

def _payload(mechanics: list[Mechanic]) -> bytes:
    return MECHANIC_ADAPTER.dump_json(mechanics)


def merge_faction_abilities(records: Iterable[FactionAbility]) -> list[FactionAbility]:
    """Fold repeated sightings of faction abilities into one entry per id.

    The first sighting of an id fixes its name and text. A later sighting
    replaces the stored mechanics when the stored list is empty and the new
    one is not, or when both are non-empty, differ, and the new one has the
    larger serialized (JSON) size.

    Returns:
        One ability per id, in first-seen order
    """
    merged: dict[str, FactionAbility] = {}
    for record in records:
        existing = merged.get(record.id)
        if existing is None:
            merged[record.id] = record
            continue
        if not record.mechanics:
            continue
        if not existing.mechanics:
            merged[record.id] = existing.model_copy(update={"mechanics": record.mechanics})
            continue
        current, candidate = _payload(existing.mechanics), _payload(record.mechanics)
        if current != candidate and len(candidate) > len(current):
            logger.debug(f"Taking richer mechanics for faction ability {record.id}")
            merged[record.id] = existing.model_copy(update={"mechanics": record.mechanics})
    return list(merged.values())
