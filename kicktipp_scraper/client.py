"""
High-level kicktipp.de operations on top of a ``Transport``.

Every public method degrades to an empty / ``False`` result when a page
cannot be fetched or no longer looks the way the parsers expect; the cause
is logged. Only argument validation (``CredentialsError``, ``ValueError``)
propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import requests

from .bonus import BONUS_PARAMS, extract_open_bonus_questions, extract_placed_bonus_predictions, reconcile_bonus
from .cache import ExpiringCache
from .config import CacheSettings
from .errors import CredentialsError, IssueKind, KicktippError, ScrapeIssue, ScrapeResult
from .fixtures import Clock, extract_open_matches, extract_placed_predictions, site_now
from .history import (
    AWAY_HISTORY_CLASS,
    HOME_HISTORY_CLASS,
    VIEW_HEAD_TO_HEAD,
    VIEW_HOME_AWAY,
    HistoryPaginator,
    extract_head_to_head,
    extract_team_history,
    find_spielinfo_link,
    head_to_head_as_results,
)
from .models import (
    BonusPrediction,
    BonusQuestion,
    HeadToHeadResult,
    Match,
    MatchResult,
    MatchWithHistory,
    Prediction,
    TeamStanding,
)
from .reconcile import Reconciliation, reconcile, resolve_action
from .session import BASE_URL, PageResponse, Transport
from .standings import parse_standings

log = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    FORM_FETCHED = "form_fetched"
    ROWS_WALKED = "rows_walked"
    PAYLOAD_BUILT = "payload_built"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class BetSubmission:
    state: SubmissionState = SubmissionState.IDLE
    reconciliation: Optional[Reconciliation] = None
    ok: bool = False
    message: str = ""
    issues: List[ScrapeIssue] = field(default_factory=list)

    @property
    def placed(self) -> int:
        return self.reconciliation.placed if self.reconciliation else 0

    @property
    def skipped(self) -> int:
        return self.reconciliation.skipped if self.reconciliation else 0

    def fail(self, message: str) -> "BetSubmission":
        log.error(f"[Submit] {message}")
        self.state = SubmissionState.FAILED
        self.ok = False
        self.message = message
        return self


class KicktippClient:
    def __init__(self,
                 transport: Transport,
                 cache: Optional[ExpiringCache] = None,
                 now: Optional[Clock] = None,
                 settings: CacheSettings = CacheSettings(),
                 base_url: str = BASE_URL) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else ExpiringCache()
        self.now = now or site_now
        self.settings = settings
        self.base_url = base_url.rstrip("/")

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------
    def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None,
                 data: Optional[List[Tuple[str, str]]] = None) -> Optional[PageResponse]:
        try:
            if method == "POST":
                resp = self.transport.post(path, data or [])
            else:
                resp = self.transport.get(path, params)
        except CredentialsError:
            raise
        except (requests.RequestException, KicktippError) as e:
            log.error(f"{method} {path} fehlgeschlagen: {e}")
            return None
        if not resp.ok:
            log.error(f"{method} {path} fehlgeschlagen: HTTP {resp.status}")
            return None
        return resp

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Optional[PageResponse]:
        return self._request("GET", path, params=params)

    def _fetch_text(self, community: str):
        """Fetch callback for the paginator; relative links resolve below the community."""
        def fetch(url: str) -> Optional[str]:
            resp = self._get(resolve_action(url, url, community, self.base_url))
            return resp.text if resp is not None else None
        return fetch

    @staticmethod
    def _bet_page(community: str) -> str:
        return f"{community}/tippabgabe"

    def _bet_page_params(self, matchday: Optional[int]) -> Optional[Dict[str, str]]:
        return {"spieltagIndex": str(matchday)} if matchday is not None else None

    # -------------------------------------------------------------------------
    # Fixtures
    # -------------------------------------------------------------------------
    def get_open_matches(self, community: str, matchday: Optional[int] = None) -> List[Match]:
        resp = self._get(self._bet_page(community), self._bet_page_params(matchday))
        if resp is None:
            return []
        return extract_open_matches(resp.text, self.now).value

    def get_placed_predictions(self, community: str,
                               matchday: Optional[int] = None) -> Dict[Match, Optional[Prediction]]:
        resp = self._get(self._bet_page(community), self._bet_page_params(matchday))
        if resp is None:
            return {}
        return extract_placed_predictions(resp.text, self.now).value

    # -------------------------------------------------------------------------
    # Bets
    # -------------------------------------------------------------------------
    def _post(self, sub: BetSubmission, res: ScrapeResult[Optional[Reconciliation]], what: str) -> BetSubmission:
        """Shared tail of every submission: no-op check, POST, bookkeeping."""
        sub.issues.extend(res.issues)
        rec = res.value
        if rec is None:
            return sub.fail(f"Formular nicht auswertbar ({what}).")
        sub.reconciliation = rec
        sub.state = SubmissionState.ROWS_WALKED

        if rec.is_noop:
            sub.ok = True
            sub.message = (f"Keine {what} zu setzen ({rec.skipped} übersprungen, "
                           f"{len(rec.unmatched)} nicht gefunden).")
            log.info(f"[Submit] {sub.message}")
            return sub
        sub.state = SubmissionState.PAYLOAD_BUILT

        log.info(f"[Submit] POST {rec.action_url} – {rec.placed} {what}, {len(rec.payload)} Felder")
        if self._request("POST", rec.action_url, data=rec.pairs()) is None:
            return sub.fail(f"POST an {rec.action_url} fehlgeschlagen.")
        sub.state = SubmissionState.SUBMITTED
        sub.ok = True
        sub.message = f"{rec.placed} {what} übertragen, {rec.skipped} übersprungen."
        log.info(f"[Submit] {sub.message}")
        return sub

    @staticmethod
    def _verify(sub: BetSubmission, stored: Mapping, expected: Mapping) -> None:
        rec = sub.reconciliation
        ok_count = sum(1 for key in rec.placed_keys if stored.get(key) == expected[key])
        msg = f"[Verify] {ok_count}/{rec.placed} gespeichert."
        if ok_count == rec.placed:
            log.info(msg)
            sub.state = SubmissionState.VERIFIED
            sub.message = msg
            return
        sub.fail(msg)

    def submit_bets(self, community: str, bets: Mapping[Match, Prediction],
                    override: bool = False, verify: bool = False) -> BetSubmission:
        """
        Fetch the form, merge ``bets`` into it and POST the result.

        Nothing is posted when no row needs writing; that counts as success.
        With ``verify`` the form is fetched again and every written row must
        show the new values.
        """
        sub = BetSubmission()
        desired = {m.key: p for m, p in bets.items()}

        resp = self._get(self._bet_page(community))
        if resp is None:
            return sub.fail("Tippabgabe-Seite nicht abrufbar.")
        sub.state = SubmissionState.FORM_FETCHED

        res = reconcile(resp.text, desired, override=override, page_url=resp.url,
                        community=community, base_url=self.base_url)
        self._post(sub, res, "Tipps")
        if verify and sub.state is SubmissionState.SUBMITTED:
            stored = {m.key: p for m, p in self.get_placed_predictions(community).items()}
            self._verify(sub, stored, desired)
        return sub

    def place_bet(self, community: str, match: Match, prediction: Prediction,
                  override: bool = False) -> bool:
        """
        Single bet. An existing prediction without ``override`` is a success
        and nothing is posted; a match missing from the form is a failure.
        """
        sub = self.submit_bets(community, {match: prediction}, override=override)
        if not sub.ok:
            return False
        rec = sub.reconciliation
        if not rec.matched_all_requested:
            log.warning(f"Spiel {match} nicht im Tippformular – kein Tipp gesetzt.")
            return False
        if rec.skipped:
            log.info(f"{match}: bereits getippt, nichts zu tun.")
        return True

    def place_bets(self, community: str, bets: Mapping[Match, Prediction],
                   override: bool = False) -> bool:
        """
        Batch bets. Unmatched and skipped matches do not fail the batch; the
        payload carries every other row's current values.
        """
        return self.submit_bets(community, bets, override=override).ok

    # -------------------------------------------------------------------------
    # Bonus questions
    # -------------------------------------------------------------------------
    def _get_bonus_page(self, community: str) -> Optional[PageResponse]:
        return self._get(self._bet_page(community), dict(BONUS_PARAMS))

    def get_open_bonus_questions(self, community: str) -> List[BonusQuestion]:
        resp = self._get_bonus_page(community)
        if resp is None:
            return []
        return extract_open_bonus_questions(resp.text, self.now).value

    def get_placed_bonus_predictions(self, community: str) -> Dict[str, Optional[BonusPrediction]]:
        resp = self._get_bonus_page(community)
        if resp is None:
            return {}
        return extract_placed_bonus_predictions(resp.text).value

    def submit_bonus_predictions(self, community: str, predictions: Mapping[str, BonusPrediction],
                                 override: bool = False, verify: bool = False) -> BetSubmission:
        """Like ``submit_bets`` for the bonus form; ``predictions`` are keyed by form field name."""
        sub = BetSubmission()
        resp = self._get_bonus_page(community)
        if resp is None:
            return sub.fail("Bonus-Seite nicht abrufbar.")
        sub.state = SubmissionState.FORM_FETCHED

        res = reconcile_bonus(resp.text, predictions, override=override, page_url=resp.url,
                              community=community, base_url=self.base_url)
        self._post(sub, res, "Bonustipps")
        if verify and sub.state is SubmissionState.SUBMITTED:
            self._verify(sub, self.get_placed_bonus_predictions(community), predictions)
        return sub

    def place_bonus_predictions(self, community: str, predictions: Mapping[str, BonusPrediction],
                                override: bool = False) -> bool:
        """
        Batch bonus answers. Nothing to place is a success without any request;
        an answer the form cannot take (unknown option, too many picks) fails
        the call, the other answers are still posted.
        """
        if not predictions:
            log.info("Keine Bonustipps übergeben.")
            return True
        sub = self.submit_bonus_predictions(community, predictions, override=override)
        if not sub.ok:
            return False
        return not sub.reconciliation.rejected

    # -------------------------------------------------------------------------
    # Standings
    # -------------------------------------------------------------------------
    def _load_standings(self, community: str) -> ScrapeResult[List[TeamStanding]]:
        resp = self._get(f"{community}/tabellen")
        if resp is None:
            result: ScrapeResult[List[TeamStanding]] = ScrapeResult([])
            result.add(IssueKind.TRANSPORT, "Tabelle nicht abrufbar")
            return result
        return parse_standings(resp.text)

    def get_standings(self, community: str) -> List[TeamStanding]:
        result = self.cache.get_or_create(
            f"standings_{community}",
            lambda: self._load_standings(community),
            self.settings.standings_ttl,
            self.settings.standings_sliding_ttl,
            should_cache=lambda r: r.ok,
        )
        return result.value

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------
    def _spielinfo_start(self, community: str) -> Optional[str]:
        resp = self._get(self._bet_page(community))
        if resp is None:
            return None
        link = find_spielinfo_link(resp.text)
        if link is None:
            log.warning(f"Kein Spielinfo-Link auf der Tippabgabe von {community} gefunden.")
        return link

    def _load_matches_with_history(self, community: str) -> ScrapeResult[List[MatchWithHistory]]:
        start = self._spielinfo_start(community)
        if start is None:
            result: ScrapeResult[List[MatchWithHistory]] = ScrapeResult([])
            result.add(IssueKind.STRUCTURE, "Spielinfo-Einstieg nicht gefunden")
            return result
        return HistoryPaginator(self._fetch_text(community), self.now).crawl(start)

    def get_matches_with_history(self, community: str) -> List[MatchWithHistory]:
        result = self.cache.get_or_create(
            f"matches_history_{community}",
            lambda: self._load_matches_with_history(community),
            self.settings.history_ttl,
            self.settings.history_sliding_ttl,
            should_cache=lambda r: r.ok,
        )
        return result.value

    def _find_detail_page(self, community: str, home_team: str, away_team: str, view: int):
        start = self._spielinfo_start(community)
        if start is None:
            return None
        paginator = HistoryPaginator(self._fetch_text(community), self.now)
        return paginator.find_page(start, home_team, away_team, view)

    def get_home_away_history(self, community: str, home_team: str,
                              away_team: str) -> Tuple[List[MatchResult], List[MatchResult]]:
        """Home team's home games and away team's away games."""
        soup = self._find_detail_page(community, home_team, away_team, VIEW_HOME_AWAY)
        if soup is None:
            return [], []
        return (extract_team_history(soup, HOME_HISTORY_CLASS, home_team),
                extract_team_history(soup, AWAY_HISTORY_CLASS, away_team))

    def get_head_to_head_detailed_history(self, community: str, home_team: str,
                                          away_team: str) -> List[HeadToHeadResult]:
        soup = self._find_detail_page(community, home_team, away_team, VIEW_HEAD_TO_HEAD)
        if soup is None:
            return []
        return extract_head_to_head(soup)

    def get_head_to_head_history(self, community: str, home_team: str, away_team: str) -> List[MatchResult]:
        detailed = self.get_head_to_head_detailed_history(community, home_team, away_team)
        return head_to_head_as_results(detailed, home_team)
