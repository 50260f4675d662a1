import logging
from typing import Any, Dict, List, Optional

import requests
from requests import RequestException

from cgpatrack.config.settings import settings
from cgpatrack.state.session_state import SessionState

logger = logging.getLogger(__name__)


class ApiClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class CgpaApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 90,
        session_state: Optional[SessionState] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ApiClientError("Missing CGPA_API_URL in environment")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session_state = session_state or SessionState()
        self.http = http or requests.Session()
        self.http.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_settings(cls, session_state: Optional[SessionState] = None) -> "CgpaApiClient":
        return cls(settings.api_url, settings.api_timeout, session_state=session_state)

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        skip_auth_redirect: bool = False,
    ) -> Any:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {}
        if self.session_state.token:
            headers["Authorization"] = f"Bearer {self.session_state.token}"

        try:
            res = self.http.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except RequestException as exc:
            logger.error("API request failed: %s %s", method, url)
            raise ApiClientError("API_UNAVAILABLE") from exc

        if res.status_code == 401:
            if not skip_auth_redirect:
                self.session_state.clear()
            raise ApiClientError("Unauthorized", status_code=401)

        try:
            data = res.json()
        except ValueError:
            data = None

        if res.status_code >= 400:
            detail = data.get("detail") if isinstance(data, dict) else None
            message = detail if isinstance(detail, str) else f"HTTP {res.status_code}"
            raise ApiClientError(message, status_code=res.status_code, detail=detail)

        return data

    def _remember(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.session_state.uid = str(data["uid"])
        self.session_state.email = data.get("email")
        self.session_state.username = data.get("username")
        self.session_state.token = data["token"]
        return data

    def register(self, username: str, email: str, password: str, college_id: Optional[int] = None) -> Dict:
        return self._remember(
            self._request(
                "POST",
                "/auth/register",
                {"username": username, "email": email, "password": password, "college_id": college_id},
            )
        )

    def login(self, email: str, password: str, remember_me: bool = False) -> Dict:
        return self._remember(
            self._request("POST", "/auth/login", {"email": email, "password": password, "remember_me": remember_me})
        )

    def logout(self) -> None:
        self.session_state.clear()
        # The server also sets the token as a cookie on the shared session.
        self.http.cookies.clear()

    def me(self) -> Optional[Dict]:
        """Return the current user, or None when the session is not valid."""
        if not self.session_state.is_authenticated:
            return None
        try:
            return self._request("GET", "/users/me", skip_auth_redirect=True)
        except ApiClientError as exc:
            if exc.status_code == 401:
                return None
            raise

    def complete_profile(self, college_id: int) -> Dict:
        return self._request("POST", "/users/me/profile", {"college_id": college_id})

    def list_colleges(self) -> List[Dict]:
        return self._request("GET", "/colleges").get("colleges", [])

    def create_college(
        self,
        name: str,
        grading_scale: str = "TEN_POINT",
        grades: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict:
        """Create a college, or return the existing one when the name is taken."""
        payload: Dict[str, Any] = {"name": name, "grading_scale": grading_scale}
        if grades:
            payload["grades"] = grades
        try:
            data = self._request("POST", "/colleges", payload)
        except ApiClientError as exc:
            if exc.status_code == 409 and isinstance(exc.detail, dict) and exc.detail.get("college"):
                return exc.detail["college"]
            raise
        return data["college"]

    def list_semesters(self) -> List[Dict]:
        return self._request("GET", "/semesters")

    def create_semester(
        self,
        semester_number: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict:
        return self._request(
            "POST",
            "/semesters",
            {"semester_number": semester_number, "start_date": start_date, "end_date": end_date},
        )

    def get_semester(self, semester_id: int) -> Dict:
        return self._request("GET", f"/semesters/{semester_id}")

    def delete_semester(self, semester_id: int) -> None:
        self._request("DELETE", f"/semesters/{semester_id}")

    def add_subject(self, semester_id: int, name: str, credits: float, **grade: Any) -> Dict:
        return self._request("POST", f"/semesters/{semester_id}/subjects", {"name": name, "credits": credits, **grade})

    def update_subject(self, subject_id: int, **changes: Any) -> Dict:
        return self._request("PATCH", f"/subjects/{subject_id}", changes)

    def delete_subject(self, subject_id: int) -> None:
        self._request("DELETE", f"/subjects/{subject_id}")

    def semester_gpa(self, semester_id: int) -> Dict:
        return self._request("GET", f"/semesters/{semester_id}/gpa")

    def cgpa(self) -> Dict:
        return self._request("GET", "/gpa")
