"""Short-lived publisher credentials for APNs and FCM.

Both upstreams authenticate the *publisher* (this relay), never a device:

* APNs accepts an ES256 JWT signed with the team's ``.p8`` key.  The JWT
  itself is the credential and is honoured for up to 60 minutes.
* FCM accepts a Google OAuth2 access token.  We sign an RS256 assertion with
  the service account key and exchange it at the token endpoint; the
  returned access token lasts 60 minutes.

:class:`TokenManager` caches each credential in a :class:`KeyValueStore`
with a TTL comfortably inside the upstream limit::

    tokens = TokenManager(store, settings)
    jwt = await tokens.get_credential(Upstream.APNS)
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import StrEnum

import aiohttp

from pushrelay._constants import (
    APNS_JWT_TTL,
    CREDENTIAL_KEY_PREFIX,
    FCM_ASSERTION_LIFETIME,
    FCM_GRANT_TYPE,
    FCM_SCOPE,
    FCM_TOKEN_TTL,
    FCM_TOKEN_URL,
    HTTP_TIMEOUT,
)
from pushrelay._crypto import compact_jwt, sign_es256, sign_rs256
from pushrelay.config import Settings
from pushrelay.store import KeyValueStore

logger = logging.getLogger(__name__)


class Upstream(StrEnum):
    """Upstream push network a publisher credential is issued for."""

    APNS = "apns"
    FCM = "fcm"


class CredentialError(RuntimeError):
    """Raised when a publisher credential cannot be produced.

    Covers unusable key material, signing failures and OAuth2 exchange
    failures.  For token endpoint responses, ``status`` and ``body`` carry
    what the endpoint returned.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass(frozen=True)
class CachedCredential:
    value: str
    generated_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.generated_at < self.ttl

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> CachedCredential:
        data = json.loads(raw)
        return cls(str(data["value"]), float(data["generated_at"]), float(data["ttl"]))


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate_apns_jwt(settings: Settings, *, now: int) -> str:
    """Sign an APNs provider token (``{alg, kid}.{iss, iat}``)."""
    header: dict[str, object] = {"alg": "ES256", "kid": settings.apns_key_id}
    claims: dict[str, object] = {"iss": settings.apns_team_id, "iat": now}
    try:
        return compact_jwt(header, claims, lambda data: sign_es256(data, settings.apns_private_key))
    except (ValueError, IndexError, TypeError) as e:
        raise CredentialError(f"APNs signing key is unusable: {e}") from e


def generate_fcm_assertion(settings: Settings, *, now: int) -> str:
    """Sign the service-account assertion exchanged for an FCM access token."""
    header: dict[str, object] = {"alg": "RS256", "typ": "JWT"}
    claims: dict[str, object] = {
        "iss": settings.fcm_client_email,
        "scope": FCM_SCOPE,
        "aud": FCM_TOKEN_URL,
        "iat": now,
        "exp": now + FCM_ASSERTION_LIFETIME,
    }
    try:
        return compact_jwt(header, claims, lambda data: sign_rs256(data, settings.fcm_private_key))
    except (ValueError, IndexError, TypeError) as e:
        raise CredentialError(f"FCM service account key is unusable: {e}") from e


async def exchange_assertion(assertion: str) -> str:
    """Exchange a signed assertion for a Google OAuth2 access token."""
    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                FCM_TOKEN_URL,
                data={"grant_type": FCM_GRANT_TYPE, "assertion": assertion},
                timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT),
            ) as resp:
                if resp.status // 100 != 2:
                    body = await resp.text()
                    raise CredentialError(
                        f"OAuth2 token exchange failed: {resp.status} {body}",
                        status=resp.status,
                        body=body,
                    )
                data = await resp.json(content_type=None)
    except (aiohttp.ClientError, TimeoutError, ValueError) as e:
        raise CredentialError(f"OAuth2 token exchange failed: {e}") from e

    token = data.get("access_token") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token:
        raise CredentialError("OAuth2 token exchange returned no access_token.")
    return token


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TokenManager:
    """Produces and caches publisher credentials, one cache slot per upstream.

    :meth:`get_credential` serves the cached value while it is fresh and
    otherwise generates one inline, so a cold cache never waits for the
    background refresher.  Two concurrent cold reads may both generate; the
    later store write wins, which is harmless.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    def is_configured(self, upstream: Upstream) -> bool:
        if upstream is Upstream.APNS:
            return self._settings.apns_configured
        return self._settings.fcm_configured

    def configured_upstreams(self) -> list[Upstream]:
        return [u for u in Upstream if self.is_configured(u)]

    async def get_credential(self, upstream: Upstream) -> str:
        """Return a fresh credential for *upstream*, generating one on a miss.

        Raises :class:`CredentialError` if generation is needed and fails.
        """
        cached = await self._read_cache(upstream)
        if cached is not None:
            logger.debug("Using cached %s credential", upstream)
            return cached.value
        return await self._generate_and_store(upstream)

    async def refresh_credential(self, upstream: Upstream) -> None:
        """Generate a new credential and overwrite the cache slot.

        Not retried here; :class:`CredentialError` goes to the caller.
        """
        await self._generate_and_store(upstream)

    async def _read_cache(self, upstream: Upstream) -> CachedCredential | None:
        raw = await self._store.get(_cache_key(upstream))
        if raw is None:
            return None
        try:
            cached = CachedCredential.from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed cached %s credential", upstream)
            return None
        if not cached.is_fresh(self._clock()):
            return None
        return cached

    async def _generate_and_store(self, upstream: Upstream) -> str:
        if not self.is_configured(upstream):
            raise CredentialError(f"No {upstream} publisher credentials are configured.")

        now = self._clock()
        if upstream is Upstream.APNS:
            value = generate_apns_jwt(self._settings, now=int(now))
            ttl = APNS_JWT_TTL
        else:
            assertion = generate_fcm_assertion(self._settings, now=int(now))
            value = await exchange_assertion(assertion)
            ttl = FCM_TOKEN_TTL

        cached = CachedCredential(value, now, ttl)
        await self._store.put(_cache_key(upstream), cached.to_json(), ttl=ttl)
        logger.info("Generated %s credential, cached for %d min", upstream, ttl // 60)
        return value


def _cache_key(upstream: Upstream) -> str:
    return f"{CREDENTIAL_KEY_PREFIX}{upstream}"
