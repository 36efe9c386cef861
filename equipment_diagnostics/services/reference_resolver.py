# equipment_diagnostics/services/reference_resolver.py

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from equipment_diagnostics.errors import UnsupportedEquipmentError
from equipment_diagnostics.models.reference import EquipmentFamily, ReferenceProfile


ProfileKey = Tuple[str, Optional[str], Optional[str], Optional[str]]


def normalize_key(value: Any) -> Optional[str]:
    """Trim fixed-width padding and fold case; blank becomes None."""
    if value is None:
        return None
    text = str(value).strip().casefold()
    return text or None


def parse_family(raw: Any) -> EquipmentFamily:
    if isinstance(raw, EquipmentFamily):
        return raw
    key = normalize_key(raw)
    try:
        return EquipmentFamily(key)
    except ValueError:
        raise UnsupportedEquipmentError(raw) from None


class ReferenceTable:
    """All reference profiles in one place, keyed by normalized identity."""

    def __init__(self, profiles: Iterable[ReferenceProfile] = (), aliases: Mapping[str, str] | None = None):
        self.aliases: Dict[str, str] = {
            normalize_key(k): normalize_key(v)
            for k, v in (aliases or {}).items()
            if normalize_key(k) and normalize_key(v)
        }
        self._profiles: Dict[ProfileKey, ReferenceProfile] = {}
        for profile in profiles:
            self.add(profile)

    def __len__(self) -> int:
        return len(self._profiles)

    def canonical_manufacturer(self, manufacturer: Any) -> Optional[str]:
        key = normalize_key(manufacturer)
        if key is None:
            return None
        return self.aliases.get(key, key)

    def key_for(self, family: Any, manufacturer: Any, model: Any, reading_method: Any) -> ProfileKey:
        return (
            parse_family(family).value,
            self.canonical_manufacturer(manufacturer),
            normalize_key(model),
            normalize_key(reading_method),
        )

    def add(self, profile: ReferenceProfile) -> None:
        key = self.key_for(
            profile.equipment_family,
            profile.manufacturer,
            profile.model,
            profile.reading_method,
        )
        if key[1] is None and (key[2] is not None or key[3] is not None):
            raise ValueError(f"Profile for {key} needs a manufacturer to be addressable")
        self._profiles[key] = profile

    def profiles(self) -> list[ReferenceProfile]:
        return list(self._profiles.values())

    def get(self, key: ProfileKey) -> Optional[ReferenceProfile]:
        return self._profiles.get(key)

    def extend(self, profiles: Iterable[ReferenceProfile]) -> None:
        for profile in profiles:
            self.add(profile)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]], aliases: Mapping[str, str] | None = None) -> "ReferenceTable":
        return cls((ReferenceProfile.from_record(r) for r in records), aliases=aliases)

    @classmethod
    def from_json_file(cls, path: str, aliases: Mapping[str, str] | None = None) -> "ReferenceTable":
        target = Path(path).expanduser()
        with target.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        records = data.get("profiles", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ValueError(f"Reference table {target} must hold a list of profiles")
        return cls.from_records(records, aliases=aliases)


class ReferenceResolver:
    """
    Resolves the reference profile for one evaluation. Fallback order:
    manufacturer+model+reading method, manufacturer+model, family default,
    then a neutral profile that classifies everything as Incomplete.
    """

    def __init__(self, table: ReferenceTable, log: Any, *, cache: bool = True):
        self.table = table
        self.log = log
        self.cache_enabled = cache
        self._cache: Dict[ProfileKey, ReferenceProfile] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    def _lookup(self, key: ProfileKey) -> Tuple[Optional[ReferenceProfile], str]:
        family, manufacturer, model, method = key
        candidates = []
        if manufacturer is not None and model is not None:
            if method is not None:
                candidates.append(((family, manufacturer, model, method), "exact"))
            candidates.append(((family, manufacturer, model, None), "model"))
        candidates.append(((family, None, None, None), "family"))

        for candidate, level in candidates:
            profile = self.table.get(candidate)
            if profile is not None:
                return profile, level
        return None, "none"

    def resolve(
        self,
        equipment_family: Any,
        manufacturer: Any = None,
        model: Any = None,
        reading_method: Any = None,
    ) -> ReferenceProfile:
        key = self.table.key_for(equipment_family, manufacturer, model, reading_method)
        if self.cache_enabled and key in self._cache:
            return self._cache[key]

        profile, level = self._lookup(key)
        family = key[0]
        if profile is None:
            self.log.warning(
                "No reference profile for %s/%s/%s/%s; readings will be Incomplete",
                family,
                manufacturer,
                model,
                reading_method,
            )
            resolved = ReferenceProfile.neutral_profile(
                family,
                manufacturer=manufacturer,
                model=model,
                reading_method=reading_method,
            )
        else:
            if level != "exact":
                self.log.debug("Reference profile for %s resolved at %s level", key, level)
            # The requested reading method decides which baseline applies.
            resolved = dataclasses.replace(
                profile,
                manufacturer=profile.manufacturer or manufacturer,
                model=profile.model or model,
                reading_method=profile.reading_method or reading_method,
                match_level=level,
            )

        if self.cache_enabled:
            self._cache[key] = resolved
        return resolved
