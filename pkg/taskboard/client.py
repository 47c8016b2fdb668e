# Taskboard HTTP client
#
# Thin wrapper over the JSON API for scripts and other services. Keeps the
# session cookie between calls, so log in (or register) first.

import requests
from typing import Any, Dict, List, Optional


class TaskboardAPIError(Exception):
    """Non-2xx answer from the Taskboard API."""

    def __init__(self, status_code: int, message: str, detail: str = ""):
        super().__init__(f"{status_code} {message}: {detail}" if detail else f"{status_code} {message}")
        self.status_code = status_code
        self.message = message
        self.detail = detail


class TaskboardClient:
    """HTTP client for the Taskboard API."""

    def __init__(self, base_url: str = "http://localhost:3000", api_prefix: str = "/api",
                 timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        r = self.session.request(
            method, f"{self.base_url}{self.api_prefix}{path}",
            timeout=self.timeout, **kwargs,
        )
        if not r.ok:
            try:
                body = r.json()
            except ValueError:
                body = {}
            raise TaskboardAPIError(r.status_code, body.get("message", r.reason or ""),
                                    body.get("error", ""))
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # ── Auth ──

    def register(self, username: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/register",
                             json={"username": username, "password": password})

    def login(self, username: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/login",
                             json={"username": username, "password": password})

    def logout(self):
        self._request("POST", "/auth/logout")

    # ── Tasks ──

    def create_task(self, title: str, **fields) -> Dict[str, Any]:
        return self._request("POST", "/tasks", json={"title": title, **fields})

    def list_tasks(self, status: Optional[str] = None, location_id: Optional[int] = None,
                   due_today: bool = False) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if status:
            params["status"] = status
        if location_id is not None:
            params["locationId"] = location_id
        if due_today:
            params["dueToday"] = "true"
        return self._request("GET", "/tasks", params=params)

    def update_task(self, task_id: int, **fields) -> Dict[str, Any]:
        return self._request("PATCH", f"/tasks/{task_id}", json=fields)

    def delete_task(self, task_id: int):
        self._request("DELETE", f"/tasks/{task_id}")

    def log_time(self, task_id: int, minutes: int = 0, hours: int = 0) -> Dict[str, Any]:
        return self._request("POST", f"/tasks/{task_id}/time",
                             json={"hours": hours, "minutes": minutes})

    def stats(self) -> Dict[str, int]:
        return self._request("GET", "/task-stats")

    # ── AI extraction ──

    def extract(self, text: str, reference_date: Optional[str] = None) -> List[Dict[str, Any]]:
        """Candidate tasks found in text (not saved)."""
        body = {"text": text}
        if reference_date:
            body["referenceDate"] = reference_date
        return self._request("POST", "/extract-tasks", json=body)["tasks"]

    def accept(self, candidates: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Save accepted candidates; returns {results, created, failed}."""
        return self._request("POST", "/extract-tasks/accept", json={"tasks": candidates})

    # ── Reports ──

    def generate_report(self, kind: str = "daily", day: Optional[str] = None) -> Dict[str, Any]:
        body = {"type": kind}
        if day:
            body["date"] = day
        return self._request("POST", "/reports", json=body)

    def health(self) -> bool:
        """Check if the server is reachable."""
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=2)
            return r.ok
        except requests.RequestException:
            return False
