"""
supplyledger/core/config.py

Ledger configuration.

Sources, lowest to highest precedence:
    1. Defaults
    2. YAML file            (LedgerConfig.from_yaml / load_config(path))
    3. Environment variables

Environment:
    SUPPLYLEDGER_HOME           directory holding journal.jsonl and keys/
    SUPPLYLEDGER_ADMIN          admin identity for a new ledger
    SUPPLYLEDGER_STATUSES       comma-separated stage names
    SUPPLYLEDGER_KEY_PATH       PEM signing key (created if missing)
    SUPPLYLEDGER_REQUIRE_OWNER  "true" to restrict status updates to owners
    SUPPLYLEDGER_LOG_LEVEL      DEBUG / INFO / WARNING / ERROR

YAML file:

    home: /var/lib/supplyledger
    admin: "0xadmin"
    statuses: [Manufactured, QualityCheck, InTransit, Delivered]
    require_owner_for_status: false
    log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from supplyledger.core.exceptions import ConfigError
from supplyledger.core.status import DEFAULT_STATUSES, StatusScale


ENV_PREFIX   = "SUPPLYLEDGER_"
DEFAULT_HOME = ".supplyledger"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE       = {"1", "true", "yes", "on"}
_FALSE      = {"0", "false", "no", "off", ""}


@dataclass
class LedgerConfig:
    home:                     Path          = Path(DEFAULT_HOME)
    admin:                    Optional[str] = None
    statuses:                 List[str]     = field(default_factory=lambda: list(DEFAULT_STATUSES))
    key_path:                 Optional[Path] = None
    require_owner_for_status: bool          = False
    log_level:                str           = "WARNING"

    def __post_init__(self) -> None:
        self.home = Path(self.home)
        if self.key_path is not None:
            self.key_path = Path(self.key_path)
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level '{self.log_level}'",
                {"valid": ",".join(_LOG_LEVELS)},
            )
        try:
            StatusScale(self.statuses)
        except ValueError as exc:
            raise ConfigError(f"Invalid statuses: {exc}") from exc

    # ── Derived ───────────────────────────────────────────────

    @property
    def journal_dir(self) -> Path:
        return self.home

    @property
    def signing_key_path(self) -> Path:
        return self.key_path or self.home / "keys" / "ledger.key"

    @property
    def status_scale(self) -> StatusScale:
        return StatusScale(self.statuses)

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)

    # ── Sources ───────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, path: Path) -> "LedgerConfig":
        """Load from a YAML mapping. Unknown keys raise ConfigError."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LedgerConfig":
        known   = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {unknown}")
        values = dict(data)
        if "statuses" in values:
            values["statuses"] = _as_list(values["statuses"])
        if "require_owner_for_status" in values:
            values["require_owner_for_status"] = _as_bool(
                values["require_owner_for_status"], "require_owner_for_status"
            )
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base:    Optional["LedgerConfig"] = None,
    ) -> "LedgerConfig":
        """Overlay SUPPLYLEDGER_* variables on base (or on defaults)."""
        environ = os.environ if environ is None else environ
        config  = base or cls()
        updates: Dict[str, Any] = {}

        if environ.get(ENV_PREFIX + "HOME"):
            updates["home"] = Path(environ[ENV_PREFIX + "HOME"])
        if environ.get(ENV_PREFIX + "ADMIN"):
            updates["admin"] = environ[ENV_PREFIX + "ADMIN"]
        if environ.get(ENV_PREFIX + "STATUSES"):
            updates["statuses"] = _as_list(environ[ENV_PREFIX + "STATUSES"])
        if environ.get(ENV_PREFIX + "KEY_PATH"):
            updates["key_path"] = Path(environ[ENV_PREFIX + "KEY_PATH"])
        if ENV_PREFIX + "REQUIRE_OWNER" in environ:
            updates["require_owner_for_status"] = _as_bool(
                environ[ENV_PREFIX + "REQUIRE_OWNER"], ENV_PREFIX + "REQUIRE_OWNER"
            )
        if environ.get(ENV_PREFIX + "LOG_LEVEL"):
            updates["log_level"] = environ[ENV_PREFIX + "LOG_LEVEL"]

        return replace(config, **updates) if updates else config


def load_config(
    path:    Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LedgerConfig:
    """YAML file (if given) overlaid by environment variables."""
    base = LedgerConfig.from_yaml(path) if path else LedgerConfig()
    return LedgerConfig.from_env(environ, base=base)


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ConfigError(f"statuses must be a list or comma-separated string, got {value!r}")


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")
