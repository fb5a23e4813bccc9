# collective_node/config.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

log = logging.getLogger(__name__)

CONFIG_FILENAME = "collective_config.yaml"


# -------------------------
# Pydantic models (typed)
# -------------------------


class PoolConf(BaseModel):
    account: str = "@collective_pool"
    target: str = ""
    min_delegation: int = Field(default=5, ge=1)
    admins: List[str] = Field(default_factory=list)
    members: List[str] = Field(default_factory=list)


class GovernanceConf(BaseModel):
    one_vote_per_member: bool = True
    enforce_target_lifecycle: bool = True


class StakingConf(BaseModel):
    driver: Literal["simulated"] = "simulated"
    revoke_delay_rounds: int = Field(default=2, ge=0)
    min_delegation: int = Field(default=1, ge=1)


class PersistenceConf(BaseModel):
    data_dir: str = "data"
    filename: str = "pool_state.json"
    keep_backups: int = Field(default=2, ge=0)
    enabled: bool = True


class LoggingConf(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class ServerConf(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseModel):
    pool: PoolConf = Field(default_factory=PoolConf)
    governance: GovernanceConf = Field(default_factory=GovernanceConf)
    staking: StakingConf = Field(default_factory=StakingConf)
    persistence: PersistenceConf = Field(default_factory=PersistenceConf)
    logging: LoggingConf = Field(default_factory=LoggingConf)
    server: ServerConf = Field(default_factory=ServerConf)


# -------- ENV overrides (section, key) -> (env name, cast) --------
_ENV_MAP: Dict[Tuple[str, str], Tuple[str, Callable[[str], Any]]] = {
    ("pool", "min_delegation"): ("COLLECTIVE_MIN_DELEGATION", int),
    ("pool", "target"): ("COLLECTIVE_POOL_TARGET", str),
    ("pool", "account"): ("COLLECTIVE_POOL_ACCOUNT", str),
    ("persistence", "data_dir"): ("COLLECTIVE_DATA_DIR", str),
    ("logging", "level"): ("COLLECTIVE_LOG_LEVEL", str.upper),
    ("staking", "revoke_delay_rounds"): ("COLLECTIVE_REVOKE_DELAY_ROUNDS", int),
    ("server", "host"): ("COLLECTIVE_HOST", str),
    ("server", "port"): ("COLLECTIVE_PORT", int),
}


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        log.warning("ignoring config %s: top level must be a mapping", path)
        return {}
    return data


def _apply_env_overrides(cfg: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        raw = env.get(env_name)
        if raw is None:
            continue
        try:
            value = cast(raw)
        except ValueError:
            log.warning("ignoring %s=%r: expected %s", env_name, raw, getattr(cast, "__name__", "value"))
            continue
        cfg.setdefault(section, {})
        cfg[section][key] = value
    return cfg


def load_config(
    repo_root: Optional[str] = None,
    *,
    path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Loads collective_config.yaml from repo_root (or an explicit path, or
    $COLLECTIVE_CONFIG). Missing or unparsable files fall back to defaults.
    ENV overrides are applied last.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = env.get("COLLECTIVE_CONFIG") or os.path.join(repo_root or os.getcwd(), CONFIG_FILENAME)

    cfg = _deep_merge(Settings().model_dump(), _load_yaml(Path(path)))
    cfg = _apply_env_overrides(cfg, env)
    return Settings(**cfg)


# -------- Small helpers used by the app --------
def get_data_dir(settings: Settings, repo_root: Optional[str] = None) -> Path:
    data_dir = Path(settings.persistence.data_dir)
    if not data_dir.is_absolute():
        data_dir = Path(repo_root or os.getcwd()) / data_dir
    return data_dir


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.logging.level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
