import requests
from typing import Optional


class WorkoutClient:
    """Simple REST client for the workout lifecycle API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: str = "",
        session=None,
        gateway_key: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.headers = {"X-User-Id": user_id}
        if gateway_key:
            self.headers["X-Gateway-Key"] = gateway_key

    def _request(self, method: str, path: str, **kwargs):
        resp = self.http.request(
            method, f"{self.base_url}{path}", headers=self.headers, **kwargs
        )
        resp.raise_for_status()
        return resp.json()

    def create_plan(self, name: str, exercises: list[dict], **fields) -> dict:
        return self._request(
            "POST", "/plans", json={"name": name, "exercises": exercises, **fields}
        )

    def list_plans(self, include_shared: bool = False) -> list[dict]:
        return self._request(
            "GET", "/plans", params={"include_shared": include_shared}
        )

    def schedule(self, plan_id: int, date: str, **fields) -> dict:
        return self._request(
            "POST", "/scheduled", json={"plan_id": plan_id, "date": date, **fields}
        )

    def start_session(self, scheduled_id: int) -> dict:
        return self._request(
            "POST", "/sessions/start", json={"scheduled_id": scheduled_id}
        )

    def log_set(self, session_id: int, set_id: int, **actuals) -> dict:
        return self._request(
            "PATCH", f"/sessions/{session_id}/sets/{set_id}", json=actuals
        )

    def complete_session(self, session_id: int, notes: Optional[str] = None) -> dict:
        return self._request(
            "POST", f"/sessions/{session_id}/complete", json={"notes": notes}
        )

    def quick_complete(self, scheduled_id: int, **fields) -> dict:
        return self._request("POST", f"/scheduled/{scheduled_id}/complete", json=fields)

    def overview(self, start: str, end: str) -> dict:
        return self._request(
            "GET", "/analytics/overview", params={"from": start, "to": end}
        )
