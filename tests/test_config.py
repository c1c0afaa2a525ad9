import configparser
import json

from kicktipp_scraper.config import (
    get_ini_value,
    load_config,
    load_settings,
    mask_secret,
    parse_bool,
    resolve_value,
    write_json,
)
from kicktipp_scraper.session import BASE_URL


def _cfg(text):
    cfg = configparser.ConfigParser()
    cfg.read_string(text)
    return cfg


def test_parse_bool():
    assert parse_bool("yes") and parse_bool("1") and parse_bool(" On ")
    assert not parse_bool("nein")
    assert parse_bool(None, True)


def test_mask_secret():
    assert mask_secret("supergeheim") == "sup…eim"
    assert mask_secret("abc") == "***"
    assert mask_secret(None) == ""


def test_get_ini_value_searches_sections_in_order():
    cfg = _cfg("[auth]\nusername = \n[kicktipp]\nkennung = fan@example.org\n")
    assert get_ini_value(cfg, ["username", "kennung"], ["auth", "kicktipp"]) == "fan@example.org"
    assert get_ini_value(None, ["username"], ["auth"]) is None


def test_resolve_value_precedence():
    cfg = _cfg("[settings]\ntimeout = 30\n")
    env = {"KICKTIPP_TIMEOUT": "40"}
    assert resolve_value(50, ["KICKTIPP_TIMEOUT"], ["timeout"], ["settings"], cfg, float, 25.0, env) == 50.0
    assert resolve_value(None, ["KICKTIPP_TIMEOUT"], ["timeout"], ["settings"], cfg, float, 25.0, env) == 40.0
    assert resolve_value(None, ["KICKTIPP_TIMEOUT"], ["timeout"], ["settings"], cfg, float, 25.0, {}) == 30.0
    assert resolve_value(None, ["KICKTIPP_TIMEOUT"], ["timeout"], ["settings"], None, float, 25.0, {}) == 25.0


def test_resolve_value_bad_env_falls_through_to_ini():
    cfg = _cfg("[settings]\ntimeout = 30\n")
    env = {"KICKTIPP_TIMEOUT": "lang"}
    assert resolve_value(None, ["KICKTIPP_TIMEOUT"], ["timeout"], ["settings"], cfg, float, 25.0, env) == 30.0


def test_load_settings_from_env_and_ini():
    cfg = _cfg("[pool]\npool_slug = buli-freunde\n[cache]\nstandings_ttl_minutes = 5\n")
    env = {"KICKTIPP_USERNAME": "fan@example.org", "KICKTIPP_PASSWORD": "pw"}
    s = load_settings({"timeout": 12}, cfg, env)
    assert (s.username, s.password, s.community) == ("fan@example.org", "pw", "buli-freunde")
    assert s.timeout == 12.0
    assert s.base_url == BASE_URL
    assert s.proxy is None
    assert s.cache.standings_ttl == 300
    assert s.cache.standings_sliding_ttl == 600
    assert "password=**" in s.describe()


def test_load_config_missing_file(tmp_path):
    assert load_config(str(tmp_path / "fehlt.ini")) is None


def test_load_config_reads_file(tmp_path):
    p = tmp_path / "config.ini"
    p.write_text("[auth]\nusername = fan\n", encoding="utf-8")
    assert load_config(str(p))["auth"]["username"] == "fan"


def test_write_json_creates_parent(tmp_path):
    target = tmp_path / "out" / "tabelle.json"
    write_json(target, {"team": "Köln"})
    assert json.loads(target.read_text(encoding="utf-8")) == {"team": "Köln"}
    assert "Köln" in target.read_text(encoding="utf-8")
