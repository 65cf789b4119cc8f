from __future__ import annotations

from typing import Any

import httpx

from boardsync.errors import TransportError, error_for_status


def _extract_error(payload: Any) -> str:
  if isinstance(payload, dict):
    detail = payload.get("detail")
    if isinstance(detail, str) and detail.strip():
      return detail.strip()
    if isinstance(detail, dict):
      return str(detail.get("message") or detail)
    if isinstance(detail, list) and detail:
      first = detail[0]
      if isinstance(first, dict):
        loc = ".".join(str(x) for x in first.get("loc", []) if x != "body")
        return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
      return str(first)
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500]
  return "Request failed"


class HttpMutationClient:
  """Persists board mutations through the JSON API and raises typed errors."""

  def __init__(
    self,
    base_url: str | None = None,
    token: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 30,
  ) -> None:
    self._owns_client = client is None
    if client is None:
      if not base_url:
        raise ValueError("base_url or client is required")
      client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
    self._client = client
    self._headers = {"Accept": "application/json"}
    if token:
      self._headers["Authorization"] = f"Bearer {token}"

  async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
    try:
      r = await self._client.request(method, path, headers=self._headers, **kwargs)
    except httpx.TimeoutException as exc:
      raise TransportError(f"Request timed out: {method} {path}") from exc
    except httpx.TransportError as exc:
      raise TransportError(f"Network error: {exc}") from exc
    if r.status_code >= 400:
      try:
        payload = r.json()
      except ValueError:
        payload = (r.text or "")[:800]
      raise error_for_status(r.status_code, _extract_error(payload))
    if r.status_code == 204:
      return None
    return r.json()

  async def move_task(self, task_id: str, column_id: str, position: int, version: int | None = None) -> dict:
    body: dict[str, Any] = {"columnId": column_id, "position": position}
    if version is not None:
      body["version"] = version
    return await self._request("POST", f"/tasks/{task_id}/move", json=body)

  async def create_task(self, data: dict) -> dict:
    return await self._request("POST", "/tasks", json={k: v for k, v in data.items() if v is not None})

  async def update_task(self, task_id: str, data: dict) -> dict:
    body = dict(data)
    if body.get("version") is None:
      body.pop("version", None)
    return await self._request("PATCH", f"/tasks/{task_id}", json=body)

  async def delete_task(self, task_id: str) -> dict:
    return await self._request("DELETE", f"/tasks/{task_id}")

  async def create_comment(self, data: dict) -> dict:
    return await self._request("POST", "/comments", json=data)

  async def fetch_board(self, board_id: str) -> dict:
    return await self._request("GET", f"/boards/{board_id}")

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()
