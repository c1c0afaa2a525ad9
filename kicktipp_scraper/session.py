"""
Authenticated HTTP transport for kicktipp.de.

``KicktippSession`` logs in lazily before the first request and once more
when a response looks like the session expired (401/403 or a bounce to the
login page). Everything else (status codes, redirects, bodies) is handed to
the caller untouched as a ``PageResponse``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple
from urllib.parse import urljoin

import requests

from .dom import soup_of
from .errors import CredentialsError, LoginError

log = logging.getLogger(__name__)

BASE_URL = "https://www.kicktipp.de"
LOGIN_PATH = "/info/profil/login"
DEFAULT_TIMEOUT = 25.0


@dataclass(frozen=True)
class PageResponse:
    status: int
    text: str
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> PageResponse: ...

    def post(self, path: str, data: List[Tuple[str, str]]) -> PageResponse: ...


# -----------------------------------------------------------------------------
# HTTP
# -----------------------------------------------------------------------------
def new_session(proxy: Optional[str] = None) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) KicktippScraper/1.0",
        "Accept-Language": "de-DE,de;q=0.9,en;q=0.8",
    })
    if proxy:
        s.proxies.update({"http": proxy, "https": proxy})
    return s


def is_login_url(url: Optional[str]) -> bool:
    return bool(url) and ("/profil/login" in url or "/login" in url)


class KicktippSession:
    def __init__(self,
                 username: Optional[str],
                 password: Optional[str],
                 base_url: str = BASE_URL,
                 timeout: float = DEFAULT_TIMEOUT,
                 proxy: Optional[str] = None,
                 session: Optional[requests.Session] = None) -> None:
        if not username or not password:
            raise CredentialsError("Kicktipp-Zugangsdaten fehlen (username/password).")
        self.username = username
        self._password = password
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else new_session(proxy)
        self._logged_in = False
        self._login_lock = threading.Lock()

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return urljoin(self.base_url + "/", path.lstrip("/"))

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> PageResponse:
        return self._send("GET", path, params=params)

    def post(self, path: str, data: List[Tuple[str, str]]) -> PageResponse:
        return self._send("POST", path, data=data)

    def _send(self, method: str, path: str, **kwargs: Any) -> PageResponse:
        self.ensure_logged_in()
        url = self.url_for(path)
        log.debug(f"{method} {url}")
        r = self.session.request(method, url, timeout=self.timeout, allow_redirects=True, **kwargs)
        if r.status_code in (401, 403) or is_login_url(r.url):
            log.warning("Anmeldung offenbar abgelaufen – melde neu an …")
            self._logged_in = False
            self.ensure_logged_in()
            r = self.session.request(method, url, timeout=self.timeout, allow_redirects=True, **kwargs)
        return PageResponse(r.status_code, r.text, r.url or url)

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------
    def ensure_logged_in(self) -> None:
        if self._logged_in:
            return
        with self._login_lock:
            if not self._logged_in:
                self.login()

    def login(self) -> None:
        login_url = self.url_for(LOGIN_PATH)
        r = self.session.get(login_url, timeout=self.timeout)
        if not 200 <= r.status_code < 300:
            raise LoginError(f"Login-Seite nicht erreichbar: HTTP {r.status_code}")

        soup = soup_of(r.text)
        form = soup.select_one("form#loginFormular") or soup.find("form")
        if form is None:
            raise LoginError("Kein Login-Formular gefunden.")
        action = (form.get("action") or "").strip()
        action_url = urljoin(r.url or login_url, action) if action else login_url

        payload: List[Tuple[str, str]] = [("kennung", self.username), ("passwort", self._password)]
        for inp in form.find_all("input", attrs={"type": "hidden"}):
            if inp.get("name"):
                payload.append((inp["name"], inp.get("value") or ""))

        log.info("POST login action")
        r2 = self.session.post(action_url, data=payload, timeout=self.timeout, allow_redirects=True)
        if not 200 <= r2.status_code < 300:
            raise LoginError(f"Login fehlgeschlagen: HTTP {r2.status_code}")
        if is_login_url(r2.url) or soup_of(r2.text).select_one("form#loginFormular") is not None:
            raise LoginError("Login fehlgeschlagen – Zugangsdaten prüfen.")

        log.info(f"Login erfolgreich als {self.username}.")
        self._logged_in = True
