"""Tests for Signature Version 2 request signing."""

import base64
import hashlib
import hmac

import pytest

from ec2_query.models import Credentials
from ec2_query.signer import canonical_query, encode, sign, string_to_sign

HOST = "ec2.us-east-1.amazonaws.com"


def base_params() -> dict[str, str]:
    return {
        "Action": "DescribeInstances",
        "Version": "2013-02-01",
        "Timestamp": "2013-02-01T12:30:45Z",
    }


class TestEncode:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("abcXYZ019", "abcXYZ019"),
            ("-_.~", "-_.~"),
            ("a b", "a%20b"),
            ("a+b", "a%2Bb"),
            ("a/b", "a%2Fb"),
            ("2013-02-01T12:30:45Z", "2013-02-01T12%3A30%3A45Z"),
            ("é", "%C3%A9"),
        ],
    )
    def test_rfc3986(self, raw: str, expected: str) -> None:
        assert encode(raw) == expected


class TestStringToSign:
    def test_layout(self) -> None:
        params = {"b": "2", "a": "x y"}
        assert string_to_sign("GET", HOST, "/", params) == f"GET\n{HOST}\n/\na=x%20y&b=2"

    def test_canonical_query_sorted_by_encoded_key(self) -> None:
        params = {"Filter.1.Name": "n", "Action": "A", "AWSAccessKeyId": "k"}
        assert canonical_query(params) == "AWSAccessKeyId=k&Action=A&Filter.1.Name=n"


class TestSign:
    def test_adds_authentication_parameters(self, credentials: Credentials) -> None:
        params = base_params()
        sign(credentials, "GET", "/", params, HOST)
        assert params["AWSAccessKeyId"] == credentials.access_key
        assert params["SignatureVersion"] == "2"
        assert params["SignatureMethod"] == "HmacSHA256"
        assert "SecurityToken" not in params
        assert params["Signature"]

    def test_signature_is_hmac_of_string_to_sign(self, credentials: Credentials) -> None:
        params = base_params()
        sign(credentials, "GET", "/", params, HOST)

        unsigned = {k: v for k, v in params.items() if k != "Signature"}
        digest = hmac.new(
            credentials.secret_key.encode(),
            string_to_sign("GET", HOST, "/", unsigned).encode(),
            hashlib.sha256,
        ).digest()
        assert params["Signature"] == base64.b64encode(digest).decode()

    def test_deterministic(self, credentials: Credentials) -> None:
        first, second = base_params(), base_params()
        sign(credentials, "GET", "/", first, HOST)
        sign(credentials, "GET", "/", second, HOST)
        assert first["Signature"] == second["Signature"]

    @pytest.mark.parametrize(
        "method,path,host,extra",
        [
            ("POST", "/", HOST, {}),
            ("GET", "/other", HOST, {}),
            ("GET", "/", "ec2.eu-west-1.amazonaws.com", {}),
            ("GET", "/", HOST, {"InstanceId.1": "i-1"}),
        ],
    )
    def test_any_input_change_changes_signature(
        self, credentials: Credentials, method: str, path: str, host: str, extra: dict
    ) -> None:
        reference = base_params()
        sign(credentials, "GET", "/", reference, HOST)

        changed = base_params() | extra
        sign(credentials, method, path, changed, host)
        assert changed["Signature"] != reference["Signature"]

    def test_secret_changes_signature(self, credentials: Credentials) -> None:
        other = Credentials(access_key=credentials.access_key, secret_key="another-secret")
        first, second = base_params(), base_params()
        sign(credentials, "GET", "/", first, HOST)
        sign(other, "GET", "/", second, HOST)
        assert first["Signature"] != second["Signature"]

    def test_session_token_is_signed(self) -> None:
        with_token = Credentials(access_key="AK", secret_key="SK", token="session-token")
        without_token = Credentials(access_key="AK", secret_key="SK")

        first, second = base_params(), base_params()
        sign(with_token, "GET", "/", first, HOST)
        sign(without_token, "GET", "/", second, HOST)

        assert first["SecurityToken"] == "session-token"
        assert first["Signature"] != second["Signature"]

    def test_signing_twice_is_rejected(self, credentials: Credentials) -> None:
        params = base_params()
        sign(credentials, "GET", "/", params, HOST)
        with pytest.raises(ValueError, match="already signed"):
            sign(credentials, "GET", "/", params, HOST)

    def test_credentials_repr_hides_secrets(self) -> None:
        creds = Credentials(access_key="AK", secret_key="very-secret", token="tok-secret")
        assert "very-secret" not in repr(creds)
        assert "tok-secret" not in repr(creds)
