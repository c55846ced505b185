"""Async HTTP client for the auction API."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

import httpx

from liveauction.models import PlayerRecord, PlayerStatus, TeamRecord


class ApiError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


class AuctionApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` speaking the ``/api`` routes.

    ``headers`` carry the caller's identity (see
    ``liveauction.tenancy.HeaderPrincipalResolver``). Pass ``transport`` to
    talk to an in-process app.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=dict(headers or {}),
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "AuctionApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise ApiError(response.status_code, _detail(response))
        return response.json()

    async def list_teams(self) -> List[TeamRecord]:
        data = await self._request("GET", "/api/teams")
        return [TeamRecord.model_validate(item) for item in data]

    async def list_players(self, status: PlayerStatus | None = None) -> List[PlayerRecord]:
        params = {"status": status.value} if status is not None else None
        data = await self._request("GET", "/api/players", params=params)
        return [PlayerRecord.model_validate(item) for item in data]

    async def random_player(self) -> PlayerRecord:
        return PlayerRecord.model_validate(await self._request("GET", "/api/players/random"))

    async def get_player(self, player_id: str) -> PlayerRecord:
        return PlayerRecord.model_validate(await self._request("GET", f"/api/players/{player_id}"))

    async def assign(self, player_id: str, team_id: str, amount: float) -> dict:
        return await self._request(
            "POST",
            f"/api/players/{player_id}/assign",
            json={"teamId": team_id, "amount": amount},
        )

    async def mark_unsold(self, player_id: str) -> dict:
        return await self._request("POST", f"/api/players/{player_id}/unsold")

    async def remove_from_team(self, player_id: str) -> dict:
        return await self._request("DELETE", f"/api/players/{player_id}/remove-from-team")

    async def final_results(self) -> List[dict]:
        return await self._request("GET", "/api/teams/results/final")

    async def reset(self) -> dict:
        return await self._request("POST", "/api/auction/reset")
