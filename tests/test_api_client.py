import unittest
from unittest import mock

from requests import ConnectionError as RequestsConnectionError

from cgpatrack.services.api_client import ApiClientError, CgpaApiClient
from cgpatrack.state.session_state import SessionState


def response(status_code, payload=None):
    res = mock.Mock(status_code=status_code)
    if payload is None:
        res.json.side_effect = ValueError("no body")
    else:
        res.json.return_value = payload
    return res


class ApiClientTests(unittest.TestCase):
    def setUp(self):
        self.http = mock.Mock()
        self.http.headers = {}
        self.state = SessionState()
        self.client = CgpaApiClient("http://api.test/", timeout=5, session_state=self.state, http=self.http)

    def test_login_remembers_session_and_sends_token(self):
        self.http.request.return_value = response(200, {"uid": 7, "email": "a@b.c", "username": "alice", "token": "t0k"})
        self.client.login("a@b.c", "pw", remember_me=True)
        self.assertTrue(self.state.is_authenticated)
        self.assertEqual((self.state.uid, self.state.token), ("7", "t0k"))
        self.assertEqual(self.http.request.call_args.kwargs["json"]["remember_me"], True)

        self.http.request.return_value = response(200, {"cgpa": 8.5})
        self.assertEqual(self.client.cgpa(), {"cgpa": 8.5})
        self.http.request.assert_called_with(
            "GET", "http://api.test/gpa", json=None, headers={"Authorization": "Bearer t0k"}, timeout=5
        )
        self.assertEqual(self.http.headers["Content-Type"], "application/json")

    def test_unauthorized_clears_session(self):
        self.state.uid, self.state.token = "7", "t0k"
        self.http.request.return_value = response(401, {"detail": "Unknown user"})
        with self.assertRaises(ApiClientError) as ctx:
            self.client.list_semesters()
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertFalse(self.state.is_authenticated)

    def test_me_keeps_session_on_401(self):
        self.state.uid, self.state.token = "7", "t0k"
        self.http.request.return_value = response(401, {"detail": "Unknown user"})
        self.assertIsNone(self.client.me())
        self.assertEqual(self.state.uid, "7")

    def test_me_without_session_skips_request(self):
        self.assertIsNone(self.client.me())
        self.http.request.assert_not_called()

    def test_error_detail_is_surfaced(self):
        self.state.uid, self.state.token = "7", "t0k"
        errors = {"errors": [{"field": "name", "kind": "InvalidNameError", "message": "Subject name is required"}]}
        self.http.request.return_value = response(400, {"detail": errors})
        with self.assertRaises(ApiClientError) as ctx:
            self.client.add_subject(1, "", 3)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.detail, errors)
        self.assertEqual(str(ctx.exception), "HTTP 400")

    def test_create_college_returns_existing_on_conflict(self):
        existing = {"id": 3, "name": "State University"}
        self.http.request.return_value = response(409, {"detail": {"message": "College already exists", "college": existing}})
        self.assertEqual(self.client.create_college("state university"), existing)

    def test_transport_failure(self):
        self.http.request.side_effect = RequestsConnectionError("down")
        with self.assertRaises(ApiClientError) as ctx:
            self.client.list_colleges()
        self.assertEqual(str(ctx.exception), "API_UNAVAILABLE")

    def test_logout(self):
        self.state.uid, self.state.token = "7", "t0k"
        self.client.logout()
        self.assertIsNone(self.state.uid)
        self.assertIsNone(self.state.token)
        self.http.cookies.clear.assert_called_once_with()

    def test_register_starts_session(self):
        self.http.request.return_value = response(201, {"uid": 9, "email": "c@d.e", "username": "carol", "token": "abc"})
        self.client.register("carol", "c@d.e", "secret123")
        self.assertEqual(self.state.token, "abc")

    def test_custom_college_sends_grades(self):
        grades = [{"grade_letter": "Pass", "grade_point": 1, "min_percentage": 50, "max_percentage": 100}]
        self.http.request.return_value = response(201, {"college": {"id": 4, "name": "Custom U"}})
        self.client.create_college("Custom U", "CUSTOM", grades)
        self.assertEqual(
            self.http.request.call_args.kwargs["json"],
            {"name": "Custom U", "grading_scale": "CUSTOM", "grades": grades},
        )

    def test_missing_base_url(self):
        with self.assertRaises(ApiClientError):
            CgpaApiClient("")


if __name__ == "__main__":
    unittest.main()
