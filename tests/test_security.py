from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from app.errors import ApiError, ErrorCode, code_for_status, user_message
from app.models import Role
from app.security import (
    create_access_token,
    decode_token,
    ensure_login_attempt_allowed,
    hash_password,
    register_login_failure,
    register_login_success,
    verify_password,
)
from app.settings import get_settings


class TokenTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_token_round_trip_keeps_role_and_department(self) -> None:
        token, expires_in, claims = create_access_token(
            user_id=42,
            email="jefa@example.com",
            role=Role.DEPARTMENT_HEAD,
            department_id=7,
        )

        actor = decode_token(token)

        self.assertEqual(actor.user_id, 42)
        self.assertEqual(actor.role, Role.DEPARTMENT_HEAD)
        self.assertEqual(actor.department_id, 7)
        self.assertEqual(expires_in, get_settings().access_token_minutes * 60)
        self.assertEqual(claims["typ"], "access")

    def test_token_signed_with_other_secret_is_rejected(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": "otro-secreto"}, clear=False):
            get_settings.cache_clear()
            token, _, _ = create_access_token(
                user_id=42,
                email="jefa@example.com",
                role=Role.EMPLOYEE,
                department_id=None,
            )
        get_settings.cache_clear()

        with self.assertRaises(ApiError) as ctx:
            decode_token(token)

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.code, "UNAUTHORIZED")


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        password_hash = hash_password("secreto1")

        self.assertTrue(verify_password("secreto1", password_hash))
        self.assertFalse(verify_password("secreto2", password_hash))

    def test_malformed_hash_does_not_raise(self) -> None:
        self.assertFalse(verify_password("secreto1", "not-a-bcrypt-hash"))


class LoginThrottleTests(unittest.TestCase):
    ip = "203.0.113.9"

    def tearDown(self) -> None:
        register_login_success(self.ip)

    def test_repeated_failures_are_throttled(self) -> None:
        for _ in range(10):
            ensure_login_attempt_allowed(self.ip)
            register_login_failure(self.ip)

        with self.assertRaises(ApiError) as ctx:
            ensure_login_attempt_allowed(self.ip)

        self.assertEqual(ctx.exception.status_code, 429)

    def test_success_resets_failures(self) -> None:
        for _ in range(10):
            register_login_failure(self.ip)

        register_login_success(self.ip)

        ensure_login_attempt_allowed(self.ip)


class ErrorMessageTests(unittest.TestCase):
    def test_known_codes_have_localized_messages(self) -> None:
        self.assertEqual(user_message(ErrorCode.REST_DAY), "Hoy es tu día de descanso")
        self.assertEqual(user_message("INVALID_MARK_TYPE"), "Tipo de marcaje inválido")

    def test_unknown_code_falls_back(self) -> None:
        self.assertEqual(user_message("SOMETHING_ELSE"), "Error interno del servidor")
        self.assertEqual(user_message("SOMETHING_ELSE", "Otro"), "Otro")

    def test_status_mapping(self) -> None:
        self.assertEqual(code_for_status(404), ErrorCode.NOT_FOUND)
        self.assertEqual(code_for_status(503), ErrorCode.CONNECTION_ERROR)
        self.assertEqual(code_for_status(502), ErrorCode.INTERNAL_ERROR)


if __name__ == "__main__":
    unittest.main()
