# astroproxy/utils/config.py
import os
import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config", "defaults.yaml")

# env var → dotted config key; values are kept as strings, settings.py coerces them
_ENV_OVERRIDES = {
    "ASTROPROXY_UPSTREAM_URL": "upstream.base_url",
    "ASTROPROXY_TIMEOUT_SECONDS": "resolver.timeout_seconds",
    "ASTROPROXY_MIN_VALID_PLANETS": "resolver.min_valid_planets",
    "ASTROPROXY_HOUSE_SYSTEMS": "resolver.house_systems",
    "ASTROPROXY_PLANET_FORMATS": "resolver.planet_formats",
    "ASTROPROXY_DATE_ENCODING": "resolver.date_encoding",
    "ASTROPROXY_LANGUAGE": "resolver.language",
    "ASTROPROXY_TOTAL_BUDGET_SECONDS": "resolver.total_budget_seconds",
    "ASTROPROXY_GEOCODER_URL": "geocoding.base_url",
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.upstream and cfg['upstream'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _set_dotted(data: dict, dotted: str, value) -> None:
    node = data
    parts = dotted.split(".")
    for p in parts[:-1]:
        child = node.get(p)
        if not isinstance(child, dict):
            child = {}
            node[p] = child
        node = child
    node[parts[-1]] = value

def load_config(path: str | None = None):
    """
    Load YAML config from `path` (default: ASTROPROXY_CONFIG, then config/defaults.yaml)
    and apply ASTROPROXY_* environment overrides on top.
    A missing file yields an empty config; settings.py supplies the defaults.
    The upstream credential is never read from YAML: ASTROLOGICO_API_KEY only.
    Returns an AttrDict for convenient access.
    """
    path = path or os.getenv("ASTROPROXY_CONFIG") or DEFAULT_CONFIG_PATH
    data = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    for env_name, dotted in _ENV_OVERRIDES.items():
        val = os.getenv(env_name)
        if val not in (None, ""):
            _set_dotted(data, dotted, val)

    _set_dotted(data, "upstream.api_key", os.getenv("ASTROLOGICO_API_KEY", ""))
    return _to_attr(data)
