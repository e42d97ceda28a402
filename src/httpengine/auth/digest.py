"""RFC 2617 Digest access authentication.

DigestScheme computes the Authorization header answering a ``Digest``
challenge. One instance is one authentication session: it remembers the
last nonce, the nonce count and the client nonce so that successive
requests answering the same nonce increment ``nc``.
"""

import codecs
import hashlib
import secrets
from collections.abc import Callable, Generator, Mapping
from dataclasses import dataclass
from urllib.request import parse_http_list, parse_keqv_list

import httpx
import structlog

from httpengine.constants import DEFAULT_RESPONSE_ENCODING, HTTP_STATUS_UNAUTHORIZED
from httpengine.errors import AuthenticationError


logger = structlog.get_logger()

DIGEST_PREFIX = "Digest "

QOP_AUTH = "auth"
QOP_AUTH_INT = "auth-int"

# Algorithm name -> hashlib constructor name
_ALGORITHMS = {
    "MD5": "md5",
    "SHA-256": "sha256",
    "SHA-512": "sha512",
}
_SESSION_SUFFIX = "-SESS"

# Parameters sent without quotes
_UNQUOTED_PARAMS = frozenset({"nc", "qop", "algorithm"})


@dataclass(frozen=True)
class DigestAuthContext:
    """Request being authenticated.

    Attributes:
        method: HTTP method.
        uri: Request URI as sent on the request line (path and query).
        payload: Request body, used by qop=auth-int.
    """

    method: str
    uri: str
    payload: bytes | None = None

    @property
    def has_payload(self) -> bool:
        """True if the request carries a non-empty body."""
        return bool(self.payload)


def parse_challenge(challenge: str) -> dict[str, str]:
    """Parse a ``WWW-Authenticate: Digest ...`` value into its parameters.

    Args:
        challenge: Header value, with or without the ``Digest`` scheme name.

    Returns:
        Lower-cased parameter names mapped to unquoted values.
    """
    value = challenge.strip()
    if value[: len(DIGEST_PREFIX)].lower() == DIGEST_PREFIX.lower():
        value = value[len(DIGEST_PREFIX) :]
    items = [item for item in parse_http_list(value) if "=" in item]
    return {key.lower(): val for key, val in parse_keqv_list(items).items()}


def _create_cnonce() -> str:
    return secrets.token_hex(8)


class DigestScheme:
    """Stateful Digest response generator."""

    def __init__(self, cnonce_factory: Callable[[], str] = _create_cnonce) -> None:
        """Initialize the scheme.

        Args:
            cnonce_factory: Generates a new client nonce.
        """
        self._cnonce_factory = cnonce_factory
        self.last_nonce: str | None = None
        self.nonce_count = 0
        self.cnonce: str | None = None

    @property
    def nc(self) -> str:
        """Current nonce count as 8 zero-padded hex digits."""
        return f"{self.nonce_count:08x}"

    def create_digest_response(
        self,
        username: str,
        password: str,
        challenge: str | Mapping[str, str],
        context: DigestAuthContext,
    ) -> str:
        """Compute the Authorization header value for a challenge.

        Args:
            username: User name.
            password: Password.
            challenge: ``WWW-Authenticate`` value or its parsed parameters.
            context: Request being authenticated.

        Returns:
            The ``Digest ...`` header value.

        Raises:
            AuthenticationError: If realm or nonce is missing, or if neither
                the qop nor the algorithm is supported.
        """
        if isinstance(challenge, str):
            params = parse_challenge(challenge)
        else:
            params = {key.lower(): value for key, value in challenge.items()}

        realm = params.get("realm")
        if realm is None:
            msg = "No realm value in digest authentication challenge."
            raise AuthenticationError(msg)
        nonce = params.get("nonce")
        if nonce is None:
            msg = "No nonce value in digest authentication challenge."
            raise AuthenticationError(msg)
        opaque = params.get("opaque")
        algorithm = params.get("algorithm") or "MD5"

        qop = self._select_qop(params.get("qop"), context)
        charset = self._charset(params.get("charset"))
        hash_hex = self._hash_function(algorithm)

        if nonce == self.last_nonce:
            self.nonce_count += 1
        else:
            self.nonce_count = 1
            self.cnonce = None
            self.last_nonce = nonce

        if self.cnonce is None:
            self.cnonce = self._cnonce_factory()
        nc = self.nc
        cnonce = self.cnonce

        def h(value: str) -> str:
            return hash_hex(value.encode(charset, errors="replace"))

        ha1 = h(f"{username}:{realm}:{password}")
        if algorithm.upper().endswith(_SESSION_SUFFIX):
            ha1 = h(f"{ha1}:{nonce}:{cnonce}")

        if qop == QOP_AUTH_INT:
            body_hash = hash_hex(context.payload or b"")
            ha2 = h(f"{context.method}:{context.uri}:{body_hash}")
        else:
            ha2 = h(f"{context.method}:{context.uri}")

        if qop is None:
            response = h(f"{ha1}:{nonce}:{ha2}")
        else:
            response = h(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")

        header_params: list[tuple[str, str]] = [
            ("username", username),
            ("realm", realm),
            ("nonce", nonce),
            ("uri", context.uri),
            ("response", response),
        ]
        if qop is not None:
            header_params.extend([("qop", qop), ("nc", nc), ("cnonce", cnonce)])
        header_params.append(("algorithm", algorithm))
        if opaque is not None:
            header_params.append(("opaque", opaque))

        return DIGEST_PREFIX + ", ".join(
            _format_param(name, value) for name, value in header_params
        )

    @staticmethod
    def _select_qop(qop_list: str | None, context: DigestAuthContext) -> str | None:
        if qop_list is None:
            return None

        offered = {variant.strip().lower() for variant in qop_list.split(",")}
        if context.has_payload and QOP_AUTH_INT in offered:
            return QOP_AUTH_INT
        if QOP_AUTH in offered:
            return QOP_AUTH
        if QOP_AUTH_INT in offered:
            return QOP_AUTH_INT

        msg = f"None of the qop methods is supported: {qop_list}"
        raise AuthenticationError(msg)

    @staticmethod
    def _charset(name: str | None) -> str:
        if not name:
            return DEFAULT_RESPONSE_ENCODING
        try:
            codecs.lookup(name)
        except LookupError:
            return DEFAULT_RESPONSE_ENCODING
        return name

    @staticmethod
    def _hash_function(algorithm: str) -> Callable[[bytes], str]:
        name = algorithm.upper()
        if name.endswith(_SESSION_SUFFIX):
            name = name[: -len(_SESSION_SUFFIX)]

        hash_name = _ALGORITHMS.get(name)
        if hash_name is None:
            msg = f"Unsupported digest algorithm: {algorithm}"
            raise AuthenticationError(msg)

        def hash_hex(data: bytes) -> str:
            return hashlib.new(hash_name, data).hexdigest()

        return hash_hex


def _format_param(name: str, value: str) -> str:
    if name in _UNQUOTED_PARAMS:
        return f"{name}={value}"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{name}="{escaped}"'


class DigestAuth(httpx.Auth):
    """httpx authentication flow answering Digest challenges.

    The scheme is kept across requests so ``nc`` increments while the
    server keeps the same nonce.
    """

    requires_request_body = True

    def __init__(
        self,
        username: str,
        password: str,
        scheme: DigestScheme | None = None,
    ) -> None:
        self._username = username
        self._password = password
        self._scheme = scheme or DigestScheme()
        self._challenge: dict[str, str] | None = None

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._challenge is not None:
            # Preemptive answer with the last known nonce
            self._authorize(request, self._challenge)

        response = yield request

        if response.status_code != HTTP_STATUS_UNAUTHORIZED:
            return

        header = response.headers.get("www-authenticate", "")
        if not header.lower().startswith(DIGEST_PREFIX.lower()):
            return

        self._challenge = parse_challenge(header)
        logger.debug("digest_challenge_received", realm=self._challenge.get("realm"))
        self._authorize(request, self._challenge)
        yield request

    def _authorize(self, request: httpx.Request, challenge: dict[str, str]) -> None:
        context = DigestAuthContext(
            method=request.method,
            uri=request.url.raw_path.decode("ascii"),
            payload=request.content,
        )
        request.headers["Authorization"] = self._scheme.create_digest_response(
            self._username, self._password, challenge, context
        )
