"""
Planner API client — the external 3D design tool that owns project geometry.

Every call returns the decoded JSON response. Transport failures are folded
into the planner's own error shape ({"error": ...}) so callers check one
thing: planner_error(response). The planner is auxiliary data, never the
system of record, so nothing here raises on a failed call.
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

from .config import settings
from .schemas import Scene

logger = logging.getLogger(__name__)


def planner_error(response) -> Optional[str]:
    """
    Error message of a planner response, or None on success.

    The planner reports errors as {"error": ...} or as
    {"result": {"error": ...}} / {"result": {"errorMessage": ...}}.
    """
    if not response:
        return "Empty response from planner"
    if response.get("error"):
        return str(response["error"])
    result = response.get("result")
    if isinstance(result, dict) and (result.get("error") or result.get("errorMessage")):
        return str(result.get("errorMessage") or result.get("error"))
    return None


def parse_scene(response: dict) -> Scene:
    """Scene counts from a successful get_scene_by_key response."""
    result = response.get("result") or {}

    def _counts(key):
        return {str(k): float(v) for k, v in (result.get(key) or {}).items()}

    return Scene(
        build=_counts("build"),
        demolish=_counts("demolish"),
        build_doors_and_windows=_counts("buildDoorsAndWindows"),
        demolish_doors_and_windows=_counts("demolishDoorsAndWindows"),
    )


class PlannerClient:

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.base_url = (base_url or settings.PLANNER_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.PLANNER_API_TOKEN
        self.timeout = timeout or settings.PLANNER_TIMEOUT_SECONDS

    def get_scene_by_key(self, key: str) -> dict:
        """Element counts of a planner project: build, demolish and the door/window buckets."""
        if not key:
            return {"error": "Project has no planner key"}
        return self._request("GET", f"/projects/{urllib.parse.quote(key)}/elements")

    def create_scene(self, name: str, project_type: str) -> dict:
        """Create a planner project. On success result.key holds the new planner key."""
        return self._request("POST", "/projects", {"name": name, "projectType": project_type})

    def update_scene_name(self, key: str, name: str) -> dict:
        return self._request("PATCH", f"/projects/{urllib.parse.quote(key)}", {"name": name})

    def archive_scene(self, key: str) -> dict:
        return self._request("POST", f"/projects/{urllib.parse.quote(key)}/archive")

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        url = self.base_url + path
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                body = response.read()
                return json.loads(body) if body else {}
        except urllib.error.HTTPError as e:
            logger.warning(f"Planner {method} {path} failed with HTTP {e.code}")
            return {"error": f"HTTP {e.code}: {e.reason}"}
        except (urllib.error.URLError, TimeoutError, ValueError) as e:
            logger.warning(f"Planner {method} {path} failed: {e}")
            return {"error": str(e)}
