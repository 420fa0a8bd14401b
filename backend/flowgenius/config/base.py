"""
Config Base — environment-backed dataclass configuration.

Each config is a dataclass declaring an ``_ENV_MAP`` from field name
to environment variable. ``read_env_defaults`` coerces the raw env
strings to the dataclass field types so that
``cls(**read_env_defaults(cls._ENV_MAP, cls.__dataclass_fields__))``
builds a ready instance.
"""

from __future__ import annotations

import logging
import os
from dataclasses import MISSING, Field, asdict, dataclass
from logging import getLogger
from typing import Any, ClassVar, Dict, Mapping, Optional, Set

logger = getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def _coerce(raw: str, default: Any, name: str) -> Any:
    """Convert an env string to the type of the field's default."""
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Invalid boolean for {name}: {raw!r}")
    if isinstance(default, int):
        return int(raw.strip())
    if isinstance(default, float):
        return float(raw.strip())
    return raw


def read_env_defaults(
    env_map: Mapping[str, str],
    dataclass_fields: Mapping[str, Field],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Read field values from the environment.

    Unset variables are skipped so the dataclass default applies.
    Values that cannot be coerced are logged and skipped as well.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for field_name, env_name in env_map.items():
        raw = env.get(env_name)
        if raw is None:
            continue
        f = dataclass_fields.get(field_name)
        default = f.default if f is not None and f.default is not MISSING else ""
        try:
            values[field_name] = _coerce(raw, default, env_name)
        except ValueError as e:
            logger.warning(f"Ignoring {env_name}: {e}")
    return values


@dataclass
class BaseConfig:
    """Shared behaviour for env-backed configs."""

    _ENV_MAP: ClassVar[Dict[str, str]] = {}
    _SECURE_FIELDS: ClassVar[Set[str]] = set()

    @classmethod
    def get_default_instance(cls, environ: Optional[Mapping[str, str]] = None):
        defaults = read_env_defaults(cls._ENV_MAP, cls.__dataclass_fields__, environ)
        return cls(**defaults)

    @classmethod
    def get_config_name(cls) -> str:
        return cls.__name__.lower()

    def to_dict(self, mask_secure: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if mask_secure:
            for name in self._SECURE_FIELDS:
                if data.get(name):
                    data[name] = "***"
        return data


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger format and level."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        logger.warning(f"Unknown log level '{level}', falling back to INFO")
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
