from __future__ import annotations

from dataclasses import dataclass, fields, replace
from importlib import resources
from pathlib import Path

import yaml

from orbcloud.quantum import DistributionFlavor


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SamplingSettings:
    pool_oversample: float = 1.15
    jitter_min: float = 0.85
    jitter_max: float = 1.0
    extent_tolerance: float = 1e-3
    probability_tolerance: float = 0.02
    fallback_extent: float = 3.0
    fallback_max_probability: float = 1.0


@dataclass(frozen=True)
class RadialSettings:
    min_step: float = 0.012
    max_step: float = 0.12
    min_steps: int = 512
    max_steps: int = 12000
    target_cdf: float = 0.9995


@dataclass(frozen=True)
class ExtentSettings:
    exact_scale: float = 1.0
    stylized_scale: float = 1.08


@dataclass(frozen=True)
class DensitySettings:
    floor: int = 36
    stylized_cap: int = 150
    exact_cap: int = 180
    stylized_multiplier: float = 2.4
    exact_multiplier: float = 1.9
    sample_resolution: int = 72
    outline_resolution: int = 28
    include_in_sample: bool = True


@dataclass(frozen=True)
class CacheSettings:
    distribution_capacity: int = 64
    pool_capacity: int = 32
    density_capacity: int = 16
    nodal_capacity: int = 64
    preload_capacity: int = 30


@dataclass(frozen=True)
class MolecularSettings:
    cache_limit: int = 6
    colormap: str = "coolwarm"
    min_pool: int = 4000
    pool_factor: float = 2.5


@dataclass(frozen=True)
class EngineConfig:
    flavor: DistributionFlavor = "exact"
    sampling: SamplingSettings = SamplingSettings()
    radial: RadialSettings = RadialSettings()
    extent: ExtentSettings = ExtentSettings()
    density: DensitySettings = DensitySettings()
    cache: CacheSettings = CacheSettings()
    molecular: MolecularSettings = MolecularSettings()

    def extent_scale(self, flavor: DistributionFlavor | None = None) -> float:
        flavor = flavor or self.flavor
        return self.extent.stylized_scale if flavor == "stylized" else self.extent.exact_scale


_SECTIONS = {
    "sampling": SamplingSettings,
    "radial": RadialSettings,
    "extent": ExtentSettings,
    "density": DensitySettings,
    "cache": CacheSettings,
    "molecular": MolecularSettings,
}


def _read_defaults() -> dict:
    text = resources.files(__name__).joinpath("defaults.yaml").read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_section(name: str, data: dict):
    cls = _SECTIONS[name]
    allowed = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(allowed)
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}' section: {', '.join(sorted(unknown))}")
    defaults = cls()
    values = {}
    for key, raw in data.items():
        current = getattr(defaults, key)
        try:
            values[key] = type(current)(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {name}.{key}: {raw!r}") from exc
    return replace(defaults, **values)


def config_from_dict(data: dict) -> EngineConfig:
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping.")
    unknown = set(data) - set(_SECTIONS) - {"flavor"}
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")
    flavor = str(data.get("flavor", "exact"))
    if flavor not in ("exact", "stylized"):
        raise ConfigError(f"flavor must be 'exact' or 'stylized' (got {flavor!r}).")
    sections = {name: _build_section(name, data.get(name) or {}) for name in _SECTIONS}
    return EngineConfig(flavor=flavor, **sections)


def load_config(path: str | Path | None = None, **overrides) -> EngineConfig:
    """Load packaged defaults, then a user YAML file, then keyword overrides."""
    data = _read_defaults()
    if path is not None:
        try:
            loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {path}: {exc}") from exc
        data = _merge(data, loaded or {})
    if overrides:
        data = _merge(data, overrides)
    return config_from_dict(data)


def dump_config(config: EngineConfig) -> str:
    data: dict = {"flavor": config.flavor}
    for name in _SECTIONS:
        section = getattr(config, name)
        data[name] = {f.name: getattr(section, f.name) for f in fields(section)}
    return yaml.safe_dump(data, sort_keys=False)
