"""Request signing - AWS Signature Version 2 for Query API requests.

The string to sign is

    <METHOD>\\n<host>\\n<path>\\n<canonical query>

where the canonical query is every parameter (authentication parameters
included, Signature excluded) as ``encode(key)=encode(value)``, sorted and
joined with ``&``. ``encode`` is RFC 3986 percent-encoding: only
``A-Z a-z 0-9 - _ . ~`` pass through, everything else becomes ``%XX``
(spaces are ``%20``, never ``+``).

The signature is the base64 HMAC-SHA256 of that string keyed with the
secret key, stored back into the parameters as ``Signature``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from urllib.parse import quote

from ec2_query.models import Credentials

SIGNATURE_VERSION = "2"
SIGNATURE_METHOD = "HmacSHA256"


def encode(value: str) -> str:
    """Percent-encode per RFC 3986 (unreserved characters kept)."""
    return quote(value, safe="-_.~")


def canonical_query(params: dict[str, str]) -> str:
    """Return the sorted, encoded ``key=value`` pairs joined with ``&``."""
    return "&".join(sorted(f"{encode(k)}={encode(v)}" for k, v in params.items()))


def string_to_sign(method: str, host: str, path: str, params: dict[str, str]) -> str:
    return f"{method}\n{host}\n{path}\n{canonical_query(params)}"


def sign(
    credentials: Credentials,
    method: str,
    path: str,
    params: dict[str, str],
    host: str,
) -> None:
    """Add authentication parameters and the Signature to *params* in place.

    Must run after every other parameter is final: anything added later is
    not covered by the signature and the request will be rejected.

    Raises:
        ValueError: If *params* already carries a Signature.
    """
    if "Signature" in params:
        raise ValueError("parameters are already signed")

    params["AWSAccessKeyId"] = credentials.access_key
    params["SignatureVersion"] = SIGNATURE_VERSION
    params["SignatureMethod"] = SIGNATURE_METHOD
    if credentials.token:
        params["SecurityToken"] = credentials.token

    payload = string_to_sign(method, host, path, params)
    digest = hmac.new(
        credentials.secret_key.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    params["Signature"] = base64.b64encode(digest).decode("ascii")
