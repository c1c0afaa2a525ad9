"""
Settings resolution: CLI value > environment > config.ini > default.
"""

from __future__ import annotations

import configparser
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional

from .cache import MATCHES_HISTORY_TTL, STANDINGS_TTL
from .session import BASE_URL, DEFAULT_TIMEOUT

log = logging.getLogger(__name__)

INI_SECTIONS = ["DEFAULT", "auth", "kicktipp", "pool", "cache", "run", "settings"]


# -----------------------------------------------------------------------------
# Config helpers
# -----------------------------------------------------------------------------
def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def write_json(path: Path, data) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    log.info(f"Datei geschrieben: {path.resolve()}")


def parse_bool(v: Optional[str], default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def mask_secret(s: Optional[str], keep: int = 3) -> str:
    if not s:
        return ""
    if len(s) <= keep * 2:
        return "*" * len(s)
    return f"{s[:keep]}…{s[-keep:]}"


def load_config(path: Optional[str]) -> Optional[configparser.ConfigParser]:
    p = Path(path or "config.ini")
    if not p.exists():
        log.info(f"Kein config.ini gefunden unter: {p.resolve()}")
        return None
    cfg = configparser.ConfigParser()
    cfg.read(p, encoding="utf-8")
    log.info(f"Config geladen: {p.resolve()}")
    return cfg


def get_ini_value(cfg: Optional[configparser.ConfigParser], keys: List[str], sections: List[str]) -> Optional[str]:
    if cfg is None:
        return None
    for sec in sections:
        if cfg.has_section(sec) or sec == "DEFAULT":
            sect = cfg[sec]
            for k in keys:
                if k in sect and str(sect[k]).strip():
                    return str(sect[k]).strip()
    return None


def resolve_value(cli_val,
                  env_keys: List[str],
                  ini_keys: List[str],
                  ini_sections: List[str],
                  cfg: Optional[configparser.ConfigParser],
                  cast: Callable,
                  default,
                  environ: Optional[Mapping[str, str]] = None):
    """First source that yields a castable value wins; a bad value falls back to ``default``."""
    env = os.environ if environ is None else environ
    if cli_val is not None:
        try:
            return cast(cli_val)
        except (TypeError, ValueError):
            return default
    for key in env_keys:
        if key in env and env[key].strip():
            try:
                return cast(env[key].strip())
            except (TypeError, ValueError):
                break
    ini_v = get_ini_value(cfg, ini_keys, ini_sections)
    if ini_v is not None:
        try:
            return cast(ini_v)
        except (TypeError, ValueError):
            return default
    return default


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class CacheSettings:
    standings_ttl: float = STANDINGS_TTL[0]
    standings_sliding_ttl: float = STANDINGS_TTL[1]
    history_ttl: float = MATCHES_HISTORY_TTL[0]
    history_sliding_ttl: float = MATCHES_HISTORY_TTL[1]


@dataclass(frozen=True)
class Settings:
    username: Optional[str]
    password: Optional[str]
    community: Optional[str]
    base_url: str = BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    proxy: Optional[str] = None
    cache: CacheSettings = CacheSettings()

    def describe(self) -> str:
        return (f"community={self.community} | base_url={self.base_url} | timeout={self.timeout}s | "
                f"user={self.username} | password={mask_secret(self.password)}")


def load_settings(cli: Optional[Mapping[str, object]] = None,
                  cfg: Optional[configparser.ConfigParser] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    cli = cli or {}

    def resolve(key, envs, inis, cast, default):
        return resolve_value(cli.get(key), envs, inis, INI_SECTIONS, cfg, cast, default, environ)

    minutes = lambda v: float(v) * 60  # noqa: E731
    defaults = CacheSettings()
    return Settings(
        username=resolve("username", ["KICKTIPP_USERNAME", "KICKTIPP_USER"],
                         ["username", "user", "kennung", "login", "email"], str, None),
        password=resolve("password", ["KICKTIPP_PASSWORD", "KICKTIPP_PASS"],
                         ["password", "passwort", "pwd"], str, None),
        community=resolve("community", ["KICKTIPP_COMMUNITY", "KICKTIPP_POOL_SLUG", "POOL_SLUG"],
                          ["community", "pool_slug", "pool", "runde"], str, None),
        base_url=resolve("base_url", ["KICKTIPP_BASE_URL"], ["base_url"], str, BASE_URL),
        timeout=resolve("timeout", ["KICKTIPP_TIMEOUT"], ["timeout"], float, DEFAULT_TIMEOUT),
        proxy=resolve("proxy", ["HTTPS_PROXY", "HTTP_PROXY"], ["proxy", "https_proxy", "http_proxy"], str, None),
        cache=CacheSettings(
            standings_ttl=resolve("standings_ttl", [], ["standings_ttl_minutes"], minutes,
                                  defaults.standings_ttl),
            standings_sliding_ttl=resolve("standings_sliding_ttl", [], ["standings_sliding_minutes"], minutes,
                                          defaults.standings_sliding_ttl),
            history_ttl=resolve("history_ttl", [], ["history_ttl_minutes"], minutes,
                                defaults.history_ttl),
            history_sliding_ttl=resolve("history_sliding_ttl", [], ["history_sliding_minutes"], minutes,
                                        defaults.history_sliding_ttl),
        ),
    )
