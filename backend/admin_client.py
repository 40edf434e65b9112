"""Thin HTTP client for the admin API, used by scripts and operators.

Each client owns its session's anti-forgery token. State-changing calls go
through ``CsrfRetryPolicy``: a 403 refreshes the token once and replays the
request; a second 403 is returned to the caller as an error.
"""
import logging
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
DEFAULT_TIMEOUT_SECONDS = 15


class AdminClientError(RuntimeError):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class CsrfTokenHolder:
    def __init__(self, token: Optional[str] = None):
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def update(self, token: Optional[str]) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class CsrfRetryPolicy:
    def __init__(self, max_retries: int = 1):
        self.max_retries = max_retries

    def execute(self, send: Callable[[], requests.Response], refresh: Callable[[], None]) -> requests.Response:
        response = send()
        retries = 0
        while response.status_code == 403 and retries < self.max_retries:
            logger.info("Request rejected with 403; refreshing CSRF token and retrying")
            refresh()
            retries += 1
            response = send()
        return response


def _detail(response: requests.Response) -> Any:
    try:
        return response.json().get("detail", response.text)
    except ValueError:
        return response.text[:200]


class AdminClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        csrf: Optional[CsrfTokenHolder] = None,
        retry_policy: Optional[CsrfRetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.csrf = csrf or CsrfTokenHolder()
        self.retry_policy = retry_policy or CsrfRetryPolicy(max_retries=1)
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _check(self, response: requests.Response) -> requests.Response:
        if response.status_code >= 400:
            raise AdminClientError(response.status_code, _detail(response))
        return response

    def login(self, email: str, password: str) -> Dict[str, Any]:
        response = self.session.post(
            self._url("auth/login"),
            json={"email": email, "password": password},
            timeout=self.timeout,
        )
        data = self._check(response).json()
        self.session.headers["Authorization"] = f"Bearer {data['access_token']}"
        self.csrf.update(data.get("csrf_token"))
        return data

    def refresh_csrf(self) -> Optional[str]:
        response = self.session.get(self._url("auth/csrf"), timeout=self.timeout)
        self.csrf.update(self._check(response).json().get("csrf_token"))
        return self.csrf.token

    def logout(self) -> Dict[str, Any]:
        data = self._mutate("POST", "auth/logout").json()
        self.session.headers.pop("Authorization", None)
        self.csrf.clear()
        return data

    def _get(self, path: str, **kwargs) -> requests.Response:
        return self._check(self.session.get(self._url(path), timeout=self.timeout, **kwargs))

    def _mutate(self, method: str, path: str, **kwargs) -> requests.Response:
        extra_headers = kwargs.pop("headers", None) or {}

        def send() -> requests.Response:
            headers = dict(extra_headers)
            if self.csrf.token:
                headers[CSRF_HEADER] = self.csrf.token
            return self.session.request(method, self._url(path), headers=headers, timeout=self.timeout, **kwargs)

        return self._check(self.retry_policy.execute(send, self.refresh_csrf))

    def list_teams(self):
        return self._get("admin/teams").json()

    def get_team(self, team_id: str):
        return self._get(f"admin/teams/{team_id}").json()

    def decide(self, team_id: str, status: str, note: Optional[str] = None) -> Dict[str, Any]:
        body = {"status": status}
        if note:
            body["note"] = note
        return self._mutate("PATCH", f"admin/teams/{team_id}/status", json=body).json()

    def retry_delivery(self, team_id: str) -> Dict[str, Any]:
        return self._mutate("POST", f"admin/teams/{team_id}/retry-delivery").json()

    def set_gallery_visibility(self, team_id: str, visible: bool) -> Dict[str, Any]:
        return self._mutate("PATCH", f"admin/teams/{team_id}/gallery", json={"showInGallery": visible}).json()

    def get_settings(self) -> Dict[str, str]:
        return self._get("admin/settings").json()

    def update_settings(self, updates: Dict[str, str]) -> Dict[str, Any]:
        return self._mutate("POST", "admin/settings", json=updates).json()

    def export_teams(self, format: str = "csv") -> bytes:
        return self._get("admin/export", params={"format": format}).content
