# Overview: HTTP client for the admin panel's session endpoints (sign-out and verification clearing).

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(5.0, connect=3.0)


class AdminSessionClient:
    """
    Thin client over /api/auth for the admin panel front end.

    Every call has a bounded timeout. The bearer token is held locally and
    dropped on sign-out even if the server could not be reached.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.token = token
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def signed_in(self) -> bool:
        return self.token is not None

    def clear_admin_verification(self, reason: str = "sign_out") -> bool:
        """
        Ask the server to drop AdminPanelVerified for this session.

        Raises httpx.HTTPError on transport failures and non-2xx answers, and
        ValueError when a 2xx body is not JSON; callers decide whether that is
        fatal.
        """
        response = self._client.post(
            "/api/auth/clear-admin-verification",
            json={"reason": reason},
            headers=self._headers(),
        )
        response.raise_for_status()
        return bool(response.json().get("success", True))

    def sign_out(self, clear_verification: bool = True) -> bool:
        """
        Sign out: clear admin verification, revoke the session, drop the token.

        Server-side failures are logged and never fail the sign-out.
        """
        if clear_verification and self.token:
            try:
                self.clear_admin_verification(reason="sign_out")
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Clearing admin verification failed during sign-out: %s", exc)

        if self.token:
            try:
                response = self._client.post("/api/auth/logout", headers=self._headers())
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Session revocation failed during sign-out: %s", exc)

        self.token = None
        return True

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AdminSessionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
