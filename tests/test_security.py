from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from attendance_desk.errors import ApiError
from attendance_desk.security import create_access_token, decode_token, user_from_claims
from attendance_desk.settings import get_settings


class SecurityTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_token_roundtrip_builds_user_context(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": "test-secret"}, clear=False):
            get_settings.cache_clear()
            token, expires_in, _ = create_access_token(
                sub="u2",
                role="Manager",
                username="mgr",
                department_id="D7",
            )
            user = user_from_claims(decode_token(token))

        self.assertEqual(expires_in, 3600)
        self.assertEqual(user.user_id, "u2")
        self.assertEqual(user.role_name, "Manager")
        self.assertEqual(user.manager_department_id, "D7")
        self.assertIsNone(user.employee_id)
        self.assertEqual(user.username, "mgr")

    def test_token_signed_with_other_secret_is_rejected(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": "first-secret"}, clear=False):
            get_settings.cache_clear()
            token, _, _ = create_access_token(sub="u1", role="Admin")
        with patch.dict(os.environ, {"JWT_SECRET": "second-secret"}, clear=False):
            get_settings.cache_clear()
            with self.assertRaises(ApiError) as ctx:
                decode_token(token)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_claim_aliases(self) -> None:
        user = user_from_claims({"sub": "42", "userId": "u42", "role": "employee", "employeeId": 7})
        self.assertEqual(user.user_id, "u42")
        self.assertEqual(user.role_name, "employee")
        self.assertEqual(user.employee_id, "7")


if __name__ == "__main__":
    unittest.main()
