# builder_api/app/integrations/github/client.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class DispatchError(RuntimeError):
    """Raised when GitHub answers a repository_dispatch with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"repository_dispatch failed ({status_code}): {body[:500]}")
        self.status_code = status_code
        self.body = body


class GitHubDispatcher:
    """
    Fires `repository_dispatch` events at one repository. One attempt per
    call; transport errors propagate unchanged.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        event_type: str = "build-app",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.event_type = event_type
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github.v3+json",
            "Content-Type": "application/json",
        }

    async def dispatch(self, client_payload: Dict[str, Any]) -> None:
        body = {"event_type": self.event_type, "client_payload": client_payload}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.post(self.url, json=body, headers=self._headers())
        if not r.is_success:
            raise DispatchError(r.status_code, r.text)
