import unittest
from unittest import mock

import requests

from cms_backend.errors import IdentityProviderError
from cms_backend.identity import (
    UNAUTHENTICATED,
    AuthUser,
    GoTrueIdentityProvider,
    derive_auth_context,
    parse_bearer_token,
)


class StubProvider:
    def __init__(self, users=None, error=None):
        self.users = users or {}
        self.error = error
        self.calls = []

    def verify_token(self, token):
        self.calls.append(token)
        if self.error:
            raise self.error
        return self.users.get(token)


def _response(status_code, payload=None):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class ParseBearerTokenTests(unittest.TestCase):
    def test_rejects_missing_or_malformed_headers(self):
        for header in (None, "", "   ", "Malformed abc", "Basic abc", "Bearer", "Bearer    ", 42):
            with self.subTest(header=header):
                self.assertIsNone(parse_bearer_token(header))

    def test_accepts_bearer_in_any_case(self):
        self.assertEqual(parse_bearer_token("Bearer abc"), "abc")
        self.assertEqual(parse_bearer_token("bearer abc"), "abc")
        self.assertEqual(parse_bearer_token("  BEARER   abc  "), "abc")


class DeriveAuthContextTests(unittest.TestCase):
    def setUp(self):
        self.user = AuthUser(id="user-1", email="editor@example.com")
        self.provider = StubProvider(users={"good": self.user})

    def test_valid_token_yields_user_and_credential(self):
        context = derive_auth_context("Bearer good", self.provider)

        self.assertTrue(context.is_authenticated)
        self.assertEqual(context.user, self.user)
        self.assertEqual(context.credential.access_token, "good")
        self.assertEqual(context.credential.claims["sub"], "user-1")
        self.assertEqual(context.credential.claims["email"], "editor@example.com")

    def test_rejected_token_is_unauthenticated(self):
        self.assertEqual(derive_auth_context("Bearer bad", self.provider), UNAUTHENTICATED)

    def test_missing_header_skips_provider(self):
        self.assertEqual(derive_auth_context(None, self.provider), UNAUTHENTICATED)
        self.assertEqual(self.provider.calls, [])

    def test_provider_outage_is_unauthenticated(self):
        provider = StubProvider(error=IdentityProviderError("down"))
        context = derive_auth_context("Bearer good", provider)
        self.assertFalse(context.is_authenticated)
        self.assertIsNone(context.credential)

    def test_no_provider_is_unauthenticated(self):
        self.assertEqual(derive_auth_context("Bearer good", None), UNAUTHENTICATED)


class AuthUserTests(unittest.TestCase):
    def test_as_dict_merges_metadata(self):
        user = AuthUser(
            id="u1",
            email="a@example.com",
            metadata={"name": "Ada", "id": "spoofed"},
        )
        self.assertEqual(
            user.as_dict(), {"name": "Ada", "id": "u1", "email": "a@example.com"}
        )


class GoTrueIdentityProviderTests(unittest.TestCase):
    def setUp(self):
        self.http = mock.Mock()
        self.provider = GoTrueIdentityProvider(
            "https://project.supabase.co/", "anon-key", timeout=3.0, session=self.http
        )

    def test_requires_url_and_key(self):
        with self.assertRaises(ValueError):
            GoTrueIdentityProvider("", "key")

    def test_verify_token_success(self):
        self.http.request.return_value = _response(
            200,
            {"id": "u1", "email": "a@example.com", "user_metadata": {"name": "Ada"}},
        )

        user = self.provider.verify_token("tok")

        self.assertEqual(user, AuthUser(id="u1", email="a@example.com", metadata={"name": "Ada"}))
        args, kwargs = self.http.request.call_args
        self.assertEqual(args, ("GET", "https://project.supabase.co/auth/v1/user"))
        self.assertEqual(kwargs["headers"]["apikey"], "anon-key")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["timeout"], 3.0)

    def test_verify_token_rejected(self):
        self.http.request.return_value = _response(401, {"msg": "invalid JWT"})
        self.assertIsNone(self.provider.verify_token("tok"))

    def test_server_error_raises(self):
        self.http.request.return_value = _response(503)
        with self.assertRaises(IdentityProviderError):
            self.provider.verify_token("tok")

    def test_transport_error_raises(self):
        self.http.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(IdentityProviderError):
            self.provider.verify_token("tok")

    def test_non_json_body_raises(self):
        response = _response(200)
        response.json.side_effect = requests.JSONDecodeError(
            "Expecting value", "<html>gateway</html>", 0
        )
        self.http.request.return_value = response

        with self.assertRaises(IdentityProviderError):
            self.provider.verify_token("tok")
        with self.assertRaises(IdentityProviderError):
            self.provider.issue_session("a@example.com", "secret")

    def test_non_object_body_raises(self):
        self.http.request.return_value = _response(200, ["not", "an", "object"])
        with self.assertRaises(IdentityProviderError):
            self.provider.verify_token("tok")
        with self.assertRaises(IdentityProviderError):
            self.provider.refresh_session("old")

    def test_malformed_reply_derives_unauthenticated(self):
        response = _response(200)
        response.json.side_effect = requests.JSONDecodeError(
            "Expecting value", "<html>gateway</html>", 0
        )
        self.http.request.return_value = response

        self.assertEqual(derive_auth_context("Bearer abc", self.provider), UNAUTHENTICATED)

    def test_odd_user_fields_are_tolerated(self):
        self.http.request.return_value = _response(
            200,
            {"access_token": "a", "refresh_token": None, "user": ["x"]},
        )
        session = self.provider.refresh_session("old")
        self.assertEqual(session.refresh_token, "")
        self.assertIsNone(session.user)

        self.http.request.return_value = _response(
            200, {"id": "u1", "user_metadata": ["bad"]}
        )
        self.assertEqual(self.provider.verify_token("tok").metadata, {})

    def test_issue_session(self):
        self.http.request.return_value = _response(
            200,
            {
                "access_token": "access",
                "refresh_token": "refresh",
                "user": {"id": "u1", "email": "a@example.com"},
            },
        )

        session = self.provider.issue_session("a@example.com", "secret")

        self.assertEqual(session.access_token, "access")
        self.assertEqual(session.refresh_token, "refresh")
        self.assertEqual(session.user.id, "u1")
        _, kwargs = self.http.request.call_args
        self.assertEqual(kwargs["params"], {"grant_type": "password"})
        self.assertEqual(kwargs["json"], {"email": "a@example.com", "password": "secret"})
        self.assertNotIn("Authorization", kwargs["headers"])

    def test_issue_session_bad_credentials(self):
        self.http.request.return_value = _response(400, {"error": "invalid_grant"})
        self.assertIsNone(self.provider.issue_session("a@example.com", "wrong"))

    def test_refresh_session(self):
        self.http.request.return_value = _response(
            200, {"access_token": "new", "refresh_token": "next"}
        )

        session = self.provider.refresh_session("old")

        self.assertEqual((session.access_token, session.refresh_token), ("new", "next"))
        self.assertIsNone(session.user)
        _, kwargs = self.http.request.call_args
        self.assertEqual(kwargs["params"], {"grant_type": "refresh_token"})

    def test_sign_out(self):
        self.http.request.return_value = _response(204)
        self.provider.sign_out("tok")
        args, _ = self.http.request.call_args
        self.assertEqual(args, ("POST", "https://project.supabase.co/auth/v1/logout"))

        self.http.request.return_value = _response(401)
        with self.assertRaises(IdentityProviderError):
            self.provider.sign_out("tok")


if __name__ == "__main__":
    unittest.main()
