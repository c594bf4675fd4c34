from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from gadamagado.logging import get_logger

logger = get_logger(__name__)

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenService:
    """Stateless HS256 bearer tokens carrying ``{"id", "iat", "exp"}``.

    Verification never touches storage: a token is valid iff its signature
    checks out under the current secret and ``exp`` is still in the future.
    Whether the embedded principal still exists is the caller's problem.
    """

    def __init__(
        self,
        secret: str,
        lifetime: timedelta,
        *,
        leeway: timedelta = timedelta(0),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret.encode()
        self.lifetime = lifetime
        self.leeway = leeway
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _sign(self, signing_input: str) -> str:
        return _encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )

    def issue(self, principal_id: str) -> str:
        now = self._clock()
        payload = {
            "id": principal_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.lifetime).timestamp()),
        }
        header_enc = _encode_segment(json.dumps(_HEADER, separators=(",", ":")).encode())
        payload_enc = _encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def decode(self, token: str) -> Optional[dict[str, Any]]:
        """Return the verified payload, or None on any failure."""
        if not token or not isinstance(token, str):
            return None
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to prevent algorithm confusion
        try:
            header = json.loads(_decode_segment(header_b64))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning(
                "jwt_invalid_algorithm",
                alg=header.get("alg") if isinstance(header, dict) else None,
            )
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode("utf-8", "replace")):
            return None
        try:
            payload = json.loads(_decode_segment(payload_b64))
        except (binascii.Error, ValueError, UnicodeDecodeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None

        exp = payload.get("exp")
        if exp is None or isinstance(exp, bool):
            return None
        try:
            exp_ts = float(exp)
        except (TypeError, ValueError):
            return None
        now_ts = self._clock().timestamp()
        if exp_ts <= now_ts - self.leeway.total_seconds():
            return None
        return payload

    def verify(self, token: str) -> Optional[str]:
        """Return the embedded principal id, or None when the token is invalid."""
        payload = self.decode(token)
        if payload is None:
            return None
        principal_id = payload.get("id")
        if principal_id is None or isinstance(principal_id, (dict, list, bool)):
            return None
        principal_id = str(principal_id).strip()
        return principal_id or None


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, credentials = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    credentials = credentials.strip()
    return credentials or None
