# equipment_diagnostics/services/reference_api_client.py

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests

from equipment_diagnostics.config import ReferenceAPIConfig
from equipment_diagnostics.models.reference import ReferenceProfile
from equipment_diagnostics.services.reading_normalizer import coerce_number
from equipment_diagnostics.services.reference_resolver import ReferenceTable


class ReferenceAPIClient:
    """Maintenance API wrapper for reference profiles, with resilient parsing."""

    def __init__(self, cfg: ReferenceAPIConfig, log, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = (cfg.base_url or "").rstrip("/")

    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return bool(self.cfg.enabled and self.base_url)

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        if not self.enabled:
            self.log.debug("Reference API disabled; skipping %s", path)
            return None

        headers = {"Accept": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        url = self._build_url(path)

        try:
            resp = self.session.get(url, params=dict(params or {}), headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            self.log.warning("Reference API request failed for %s: %s", path, exc)
            return None

        if resp.status_code != 200:
            self.log.warning("Reference API %s returned HTTP %s", path, resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            self.log.warning("Reference API %s returned non-JSON payload", path)
            return None

        if isinstance(data, dict) and data.get("errors"):
            self.log.warning("Reference API %s reported errors: %s", path, data["errors"])
            return None

        return data

    # ------------------------------------------------------------------
    def fetch_profiles(self, family: Optional[str] = None) -> List[ReferenceProfile]:
        params = {"family": family} if family else None
        payload = self._get("/reference/profiles", params)
        if isinstance(payload, dict):
            payload = payload.get("profiles") or payload.get("Profiles") or []
        if not isinstance(payload, list):
            return []

        profiles: List[ReferenceProfile] = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            try:
                profiles.append(ReferenceProfile.from_record(entry))
            except ValueError as exc:
                self.log.warning("Skipping malformed reference profile %r: %s", entry, exc)
        return profiles

    # ------------------------------------------------------------------
    def fetch_reference_values(
        self,
        manufacturer: str,
        model: str,
        reading_method: Optional[str] = None,
    ) -> Tuple[Optional[float], Optional[float]]:
        """Battery reference value and reference resistance for one make/model."""
        params = {"manufacturer": manufacturer.strip(), "model": model.strip()}
        if reading_method:
            params["readingMethod"] = reading_method.strip()
        payload = self._get("/reference/battery", params)
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict):
            return None, None

        ref_value = coerce_number(payload.get("refValue", payload.get("value1")))
        resistance = coerce_number(payload.get("resistance", payload.get("value2")))
        return ref_value, resistance

    def fill_reference_values(self, table: ReferenceTable) -> int:
        """Complete battery profiles whose baselines the table leaves blank."""
        filled = 0
        for profile in table.profiles():
            if profile.equipment_family != "battery" or not (profile.manufacturer and profile.model):
                continue
            if profile.ref_value is not None and profile.resistance is not None:
                continue
            ref_value, resistance = self.fetch_reference_values(
                profile.manufacturer, profile.model, profile.reading_method
            )
            updated = dataclasses.replace(
                profile,
                ref_value=profile.ref_value if profile.ref_value is not None else ref_value,
                resistance=profile.resistance if profile.resistance is not None else resistance,
            )
            if updated != profile:
                table.add(updated)
                filled += 1
        if filled:
            self.log.info("Filled reference values for %d battery profiles from API", filled)
        return filled

    # ------------------------------------------------------------------
    def build_table(
        self,
        aliases: Mapping[str, str] | None = None,
        base: Optional[ReferenceTable] = None,
    ) -> ReferenceTable:
        """Layer API profiles over ``base`` (config/file profiles)."""
        table = base if base is not None else ReferenceTable(aliases=aliases)
        fetched = self.fetch_profiles()
        for profile in fetched:
            try:
                table.add(profile)
            except ValueError as exc:
                self.log.warning("Skipping unaddressable reference profile: %s", exc)
        self.log.info("Loaded %d reference profiles from API", len(fetched))
        self.fill_reference_values(table)
        return table
