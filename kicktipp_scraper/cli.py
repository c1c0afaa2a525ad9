"""
Command line entry point: ``kicktipp-scraper <command> [...]``.

Results are printed as JSON (or written with ``--out``); logs go to stderr.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .client import KicktippClient
from .config import INI_SECTIONS, Settings, get_ini_value, load_config, load_settings, parse_bool, write_json
from .errors import CredentialsError
from .models import BonusPrediction, Match, Prediction
from .session import KicktippSession

log = logging.getLogger("kicktipp_scraper")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# read-only properties worth printing next to the dataclass fields
_DERIVED = ("score", "form_field_name", "max_selections")


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
    )
    # urllib3 is chatty on DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# JSON
# -----------------------------------------------------------------------------
def to_jsonable(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        for prop in _DERIVED:
            if hasattr(obj, prop) and prop not in data:
                data[prop] = getattr(obj, prop)
        return data
    if isinstance(obj, dict):
        if all(isinstance(k, Match) for k in obj):
            return [{"match": to_jsonable(k), "prediction": to_jsonable(v)} for k, v in obj.items()]
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(x) for x in obj]
    return obj


def emit(data: Any, out: Optional[str]) -> None:
    payload = to_jsonable(data)
    if out:
        write_json(Path(out), payload)
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------
def cmd_open(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    return client.get_open_matches(community, args.matchday), 0


def cmd_placed(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    return client.get_placed_predictions(community, args.matchday), 0


def cmd_standings(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    return client.get_standings(community), 0


def cmd_history(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    return client.get_matches_with_history(community), 0


def cmd_h2h(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    if args.home_away:
        home, away = client.get_home_away_history(community, args.home, args.away)
        return {"home_team_history": home, "away_team_history": away}, 0
    if args.detailed:
        return client.get_head_to_head_detailed_history(community, args.home, args.away), 0
    return client.get_head_to_head_history(community, args.home, args.away), 0


def parse_tips(raw: List[List[str]]) -> Dict[Tuple[str, str], Prediction]:
    tips: Dict[Tuple[str, str], Prediction] = {}
    for home, away, score in raw:
        tips[(home.strip(), away.strip())] = Prediction.parse(score)
    return tips


def cmd_bet(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    try:
        tips = parse_tips(args.tip)
    except ValueError as e:
        log.error(str(e))
        return {"ok": False, "message": str(e)}, 1

    open_matches = {m.key: m for m in client.get_open_matches(community)}
    bets: Dict[Match, Prediction] = {}
    missing = []
    for key, pred in tips.items():
        if key in open_matches:
            bets[open_matches[key]] = pred
        else:
            log.error(f"Spiel {key[0]} vs {key[1]} ist nicht offen – ignoriert.")
            missing.append(f"{key[0]} vs {key[1]}")
    if not bets:
        return {"ok": False, "message": "Keine offenen Spiele zu den Tipps gefunden.", "missing": missing}, 1

    sub = client.submit_bets(community, bets, override=args.override, verify=args.verify)
    rec = sub.reconciliation
    summary = {
        "ok": sub.ok and not missing,
        "state": sub.state,
        "message": sub.message,
        "placed": sub.placed,
        "skipped": sub.skipped,
        "unmatched": [f"{h} vs {a}" for h, a in rec.unmatched] if rec else [],
        "missing": missing,
        "issues": [str(i) for i in sub.issues],
    }
    return summary, 0 if summary["ok"] else 1


def cmd_bonus(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    return {
        "questions": client.get_open_bonus_questions(community),
        "placed": client.get_placed_bonus_predictions(community),
    }, 0


def parse_answers(raw: List[List[str]]) -> Dict[str, BonusPrediction]:
    answers: Dict[str, BonusPrediction] = {}
    for field_name, *ids in raw:
        if not ids:
            raise ValueError(f"Keine Antwort für {field_name} angegeben.")
        answers[field_name.strip()] = BonusPrediction(ids)
    return answers


def cmd_bonus_bet(client: KicktippClient, community: str, args) -> Tuple[Any, int]:
    try:
        answers = parse_answers(args.answer)
    except ValueError as e:
        log.error(str(e))
        return {"ok": False, "message": str(e)}, 1

    sub = client.submit_bonus_predictions(community, answers, override=args.override, verify=args.verify)
    rec = sub.reconciliation
    summary = {
        "ok": sub.ok and not (rec and rec.rejected),
        "state": sub.state,
        "message": sub.message,
        "placed": sub.placed,
        "skipped": sub.skipped,
        "rejected": list(rec.rejected) if rec else [],
        "unmatched": list(rec.unmatched) if rec else [],
        "issues": [str(i) for i in sub.issues],
    }
    return summary, 0 if summary["ok"] else 1


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kicktipp-scraper", description="kicktipp.de Scraper & Tippabgabe")
    ap.add_argument("--config", default="config.ini")
    ap.add_argument("--username", default=None)
    ap.add_argument("--password", default=None)
    ap.add_argument("--community", "--pool-slug", dest="community", default=None)
    ap.add_argument("--base-url", default=None)
    ap.add_argument("--timeout", type=float, default=None)
    ap.add_argument("--proxy", default=None)
    ap.add_argument("--out", default=None, help="JSON in Datei schreiben statt auf stdout")
    ap.add_argument("-v", "--verbose", action="store_true")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("open", help="Offene Spiele")
    p.add_argument("--matchday", type=int, default=None)
    p.set_defaults(func=cmd_open)

    p = sub.add_parser("placed", help="Abgegebene Tipps")
    p.add_argument("--matchday", type=int, default=None)
    p.set_defaults(func=cmd_placed)

    p = sub.add_parser("standings", help="Tabelle")
    p.set_defaults(func=cmd_standings)

    p = sub.add_parser("history", help="Offene Spiele mit Formkurve beider Teams")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("h2h", help="Direkter Vergleich")
    p.add_argument("home")
    p.add_argument("away")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--detailed", action="store_true", help="mit Wettbewerb, Spieltag und Datum")
    mode.add_argument("--home-away", action="store_true", help="Heimspiele Heimteam / Auswärtsspiele Gastteam")
    p.set_defaults(func=cmd_h2h)

    p = sub.add_parser("bet", help="Tipps abgeben")
    p.add_argument("--tip", nargs=3, action="append", required=True, metavar=("HEIM", "GAST", "TIPP"),
                   help='z.B. --tip "FC Bayern München" "Werder Bremen" 2:1')
    p.add_argument("--override", action="store_true", help="bestehende Tipps überschreiben")
    p.add_argument("--verify", action="store_true", help="nach dem Absenden neu laden und prüfen")
    p.set_defaults(func=cmd_bet)

    p = sub.add_parser("bonus", help="Offene Bonusfragen und abgegebene Bonustipps")
    p.set_defaults(func=cmd_bonus)

    p = sub.add_parser("bonus-bet", help="Bonustipps abgeben")
    p.add_argument("--answer", nargs="+", action="append", required=True, metavar="FELD_ODER_ID",
                   help='Formularfeld gefolgt von Antwort-IDs, z.B. --answer "bonusForms[2].antwortIds[0]" 201 203')
    p.add_argument("--override", action="store_true", help="bestehende Bonustipps überschreiben")
    p.add_argument("--verify", action="store_true", help="nach dem Absenden neu laden und prüfen")
    p.set_defaults(func=cmd_bonus_bet)
    return ap


def build_client(settings: Settings) -> KicktippClient:
    session = KicktippSession(settings.username, settings.password, base_url=settings.base_url,
                              timeout=settings.timeout, proxy=settings.proxy)
    return KicktippClient(session, settings=settings.cache, base_url=settings.base_url)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    cfg = load_config(args.config)
    settings = load_settings({
        "username": args.username,
        "password": args.password,
        "community": args.community,
        "base_url": args.base_url,
        "timeout": args.timeout,
        "proxy": args.proxy,
    }, cfg)
    if args.command in ("bet", "bonus-bet") and not args.override:
        args.override = parse_bool(get_ini_value(cfg, ["override"], INI_SECTIONS), False)

    if not settings.username or not settings.password or not settings.community:
        print("Fehler: username/password/community fehlen (config.ini/ENV/CLI).", file=sys.stderr)
        return 2
    log.info(settings.describe())

    try:
        client = build_client(settings)
    except CredentialsError as e:
        print(f"Fehler: {e}", file=sys.stderr)
        return 2

    data, code = args.func(client, settings.community, args)
    emit(data, args.out)
    return code


if __name__ == "__main__":
    sys.exit(main())
