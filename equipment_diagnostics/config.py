# equipment_diagnostics/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser

from equipment_diagnostics.models.reference import ReferenceProfile


@dataclass
class ReferenceConfig:
    table_path: str | None = None
    cache: bool = True


@dataclass
class ReferenceAPIConfig:
    enabled: bool = False
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 20.0


@dataclass
class NormalizerConfig:
    treat_zero_as_absent: bool = False
    phase_to_neutral_families: list[str] = field(default_factory=list)


@dataclass
class AggregationConfig:
    adjacent_warning_cells: int = 2
    warning_cell_fraction: float | None = None
    overload_warning_pct: float | None = 100.0
    overload_error_pct: float | None = 125.0


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    reference: ReferenceConfig
    reference_api: ReferenceAPIConfig
    normalizer: NormalizerConfig
    aggregation: AggregationConfig
    manufacturer_aliases: dict[str, str]
    profiles: list[ReferenceProfile]
    logging: LoggingConfig


PROFILE_PREFIX = "profile:"


def profile_from_section(section_name: str, values: dict[str, str]) -> ReferenceProfile:
    """Build a profile from a [profile:family[:manufacturer:model[:method]]] section."""
    key_parts = [x.strip() for x in section_name[len(PROFILE_PREFIX):].split(":")]
    if not key_parts[0] or len(key_parts) not in (1, 3, 4):
        raise ValueError(
            f"Section [{section_name}] must be profile:<family>, "
            "profile:<family>:<manufacturer>:<model> or "
            "profile:<family>:<manufacturer>:<model>:<reading_method>"
        )
    record: dict[str, str | None] = dict(values)
    record["equipment_family"] = key_parts[0]
    if len(key_parts) >= 3:
        record["manufacturer"] = key_parts[1]
        record["model"] = key_parts[2]
    if len(key_parts) == 4:
        record["reading_method"] = key_parts[3]
    try:
        return ReferenceProfile.from_record(record)
    except ValueError as exc:
        raise ValueError(f"Invalid reference profile [{section_name}]: {exc}") from exc


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        # Manufacturer aliases keep their original casing for display.
        self.parser.optionxform = str
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _maybe_float(raw: str | None) -> float | None:
            if raw is None:
                return None
            raw = raw.strip()
            if not raw:
                return None
            return float(raw)

        def _lower_keys(section: str) -> dict[str, str]:
            if section not in p:
                return {}
            return {k.lower(): v for k, v in p[section].items()}

        # --- Reference table ---
        reference_kwargs = {}
        ref_sec = _lower_keys("reference")
        if "table_path" in ref_sec:
            reference_kwargs["table_path"] = ref_sec["table_path"].strip() or None
        if "cache" in ref_sec:
            reference_kwargs["cache"] = _as_bool(ref_sec["cache"])
        reference_cfg = ReferenceConfig(**reference_kwargs)

        # --- Reference API ---
        api_kwargs = {}
        api_sec = _lower_keys("reference_api")
        if "enabled" in api_sec:
            api_kwargs["enabled"] = _as_bool(api_sec["enabled"])
        if "base_url" in api_sec:
            api_kwargs["base_url"] = api_sec["base_url"]
        if "api_key" in api_sec:
            api_kwargs["api_key"] = api_sec["api_key"]
        if "timeout" in api_sec:
            api_kwargs["timeout"] = float(api_sec["timeout"])
        reference_api_cfg = ReferenceAPIConfig(**api_kwargs)

        # --- Normalizer ---
        normalizer_kwargs = {}
        norm_sec = _lower_keys("normalizer")
        if "treat_zero_as_absent" in norm_sec:
            normalizer_kwargs["treat_zero_as_absent"] = _as_bool(norm_sec["treat_zero_as_absent"])
        if "phase_to_neutral_families" in norm_sec:
            raw = norm_sec["phase_to_neutral_families"]
            normalizer_kwargs["phase_to_neutral_families"] = [
                x.strip().lower() for x in raw.split(",") if x.strip()
            ]
        normalizer_cfg = NormalizerConfig(**normalizer_kwargs)

        # --- Aggregation ---
        aggregation_kwargs = {}
        agg_sec = _lower_keys("aggregation")
        if "adjacent_warning_cells" in agg_sec:
            adjacent = int(agg_sec["adjacent_warning_cells"])
            if adjacent < 0:
                raise ValueError("adjacent_warning_cells must be 0 (off) or a positive cell count")
            aggregation_kwargs["adjacent_warning_cells"] = adjacent
        if "warning_cell_fraction" in agg_sec:
            aggregation_kwargs["warning_cell_fraction"] = _maybe_float(agg_sec["warning_cell_fraction"])
        if "overload_warning_pct" in agg_sec:
            aggregation_kwargs["overload_warning_pct"] = _maybe_float(agg_sec["overload_warning_pct"])
        if "overload_error_pct" in agg_sec:
            aggregation_kwargs["overload_error_pct"] = _maybe_float(agg_sec["overload_error_pct"])
        aggregation_cfg = AggregationConfig(**aggregation_kwargs)

        # --- Manufacturer aliases ---
        aliases: dict[str, str] = {}
        if "manufacturers" in p:
            for alias, canonical in p["manufacturers"].items():
                if alias.strip() and canonical.strip():
                    aliases[alias.strip()] = canonical.strip()

        # --- Reference profiles ---
        profiles: list[ReferenceProfile] = []
        for section in p.sections():
            if not section.startswith(PROFILE_PREFIX):
                continue
            profiles.append(profile_from_section(section, _lower_keys(section)))

        # --- Logging ---
        logging_kwargs = {}
        logging_sec = _lower_keys("logging")
        if "console_level" in logging_sec:
            logging_kwargs["console_level"] = logging_sec["console_level"]
        if "console_quiet" in logging_sec:
            logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
        if "debug_modules" in logging_sec:
            raw = logging_sec["debug_modules"]
            logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
        if "structured_enabled" in logging_sec:
            logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
        if "structured_path" in logging_sec:
            logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            reference=reference_cfg,
            reference_api=reference_api_cfg,
            normalizer=normalizer_cfg,
            aggregation=aggregation_cfg,
            manufacturer_aliases=aliases,
            profiles=profiles,
            logging=logging_cfg,
        )
