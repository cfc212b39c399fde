"""Query dispatch - Signs, sends and decodes every EC2 request.

All operations go through QueryDispatcher.execute, which owns the parts of
a request that are the same for every action:

1. Version and Timestamp parameters
2. Endpoint resolution (an empty path means "/")
3. Signing (always the last change to the parameters)
4. The HTTP GET
5. Routing the body to the typed decoder (status 200) or to EC2Error

Transport errors (httpx exceptions) and decode errors (ParseError,
pydantic.ValidationError) are raised unchanged. Nothing is retried.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Callable, TypeVar

import httpx
from pydantic import AliasPath, BaseModel, Field, ValidationError

from ec2_query.models import Credentials, Region, XmlModel
from ec2_query.params import encode_query
from ec2_query.signer import sign
from ec2_query.xml_body import decode_xml

logger = logging.getLogger(__name__)

API_VERSION = "2013-02-01"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

M = TypeVar("M", bound=BaseModel)


# =============================================================================
# Provider errors
# =============================================================================


class EC2Error(Exception):
    """An error reported by EC2 in a non-200 response.

    Only the first error of the response is kept; EC2 rarely sends more than
    one and callers almost always want that one.

    Attributes:
        status_code: HTTP status code (400, 403, 500, ...).
        code: EC2 error code ("InvalidInstanceID.NotFound"), may be empty.
        message: Human readable message; the HTTP status line if EC2 sent none.
        request_id: EC2 request id, may be empty.
    """

    def __init__(self, status_code: int, code: str, message: str, request_id: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.request_id = request_id

    def __str__(self) -> str:
        if not self.code:
            return self.message
        return f"{self.message} ({self.code})"

    def __repr__(self) -> str:
        return (
            f"EC2Error(status_code={self.status_code!r}, code={self.code!r}, "
            f"message={self.message!r}, request_id={self.request_id!r})"
        )


class ErrorDetail(XmlModel):
    code: str = Field(default="", validation_alias="Code")
    message: str = Field(default="", validation_alias="Message")


class ErrorEnvelope(XmlModel):
    """Body of a failed request: ``<Response><Errors><Error>..``."""

    request_id: str = Field(default="", validation_alias="RequestID")
    errors: list[ErrorDetail] = Field(
        default_factory=list, validation_alias=AliasPath("Errors", "Error")
    )


def build_error(status_code: int, reason_phrase: str, body: bytes) -> EC2Error:
    """Build the EC2Error for a non-200 response.

    A body that is empty or not a valid error document yields an empty
    envelope; the status line then serves as the message.
    """
    try:
        envelope = decode_xml(body, ErrorEnvelope, force_list={"Error"})
    except (ET.ParseError, ValidationError):
        envelope = ErrorEnvelope()

    first = envelope.errors[0] if envelope.errors else ErrorDetail()
    message = first.message or f"{status_code} {reason_phrase}".rstrip()
    return EC2Error(
        status_code=status_code,
        code=first.code,
        message=message,
        request_id=envelope.request_id,
    )


# =============================================================================
# Dispatcher
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueryDispatcher:
    """Sends signed Query API requests for one set of credentials and region.

    Usage:
        dispatcher = QueryDispatcher(credentials, region)
        try:
            resp = dispatcher.execute(make_params("DescribeImages"), ImagesResp)
        finally:
            dispatcher.close()

    Safe to share between threads: every call builds its own parameters and
    response, and httpx.Client is thread-safe.
    """

    def __init__(
        self,
        credentials: Credentials,
        region: Region,
        *,
        debug: bool = False,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            credentials: Signing credentials.
            region: Region whose EC2 endpoint receives the requests.
            debug: Log every request URL and raw response at DEBUG level.
            http_client: Transport to use. When omitted the dispatcher creates
                         (and closes) its own client with *timeout*.
            timeout: Transport timeout in seconds for an owned client.
            clock: Source of the request Timestamp; defaults to UTC now.
        """
        self._credentials = credentials
        self._region = region
        self._debug = debug
        self._clock = clock or _utc_now
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.Client(timeout=timeout)

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def region(self) -> Region:
        return self._region

    def close(self) -> None:
        """Close the HTTP client if the dispatcher created it."""
        if self._owns_client:
            self._client.close()

    def timestamp(self) -> str:
        """Return the current time in the wire Timestamp format."""
        return self._clock().astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)

    def build_url(self, params: dict[str, str]) -> httpx.URL:
        """Finalize and sign *params*, returning the request URL.

        Mutates *params*: Version, Timestamp, the authentication parameters
        and Signature are added.
        """
        params["Version"] = API_VERSION
        params["Timestamp"] = self.timestamp()

        endpoint = httpx.URL(self._region.ec2_endpoint)
        path = endpoint.path or "/"
        host = endpoint.netloc.decode("ascii")

        sign(self._credentials, "GET", path, params, host)

        return endpoint.copy_with(path=path, query=encode_query(params).encode("ascii"))

    def execute(self, params: dict[str, str], response_model: type[M]) -> M:
        """Send the request described by *params* and decode the response.

        Args:
            params: Parameter map for one action. Consumed by this call.
            response_model: Model to decode a successful body into.

        Returns:
            A new *response_model* instance.

        Raises:
            EC2Error: If EC2 answers with a status other than 200.
            httpx.HTTPError: If the request could not be sent or received.
            xml.etree.ElementTree.ParseError: If a 200 body is not XML.
            pydantic.ValidationError: If a 200 body does not fit the model.
        """
        url = self.build_url(params)
        if self._debug:
            logger.debug("get { %s } -> {", url)

        with self._client.stream("GET", url) as response:
            body = response.read()

        if self._debug:
            logger.debug("response:\n%s\n}", _dump_response(response, body))

        if response.status_code != 200:
            raise build_error(response.status_code, response.reason_phrase, body)

        return decode_xml(body, response_model)


def _dump_response(response: httpx.Response, body: bytes) -> str:
    """Render a response roughly as it appeared on the wire."""
    lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}"]
    lines.extend(f"{key}: {value}" for key, value in response.headers.multi_items())
    lines.append("")
    lines.append(body.decode("utf-8", errors="replace"))
    return "\n".join(lines)
