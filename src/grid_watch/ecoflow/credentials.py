"""EcoFlow cloud login and MQTT certificate exchange.

  1. POST https://{api_host}/auth/login            (password base64-encoded)
  2. GET  https://{api_host}/iot-auth/app/certification   (Bearer token)

The certification response carries short-lived broker credentials.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from grid_watch.config.schema import EcoFlowConfig

logger = logging.getLogger(__name__)

TLS_PROTOCOLS = ("mqtts", "ssl", "wss")


class CredentialError(RuntimeError):
    """Login or certificate exchange failed."""


@dataclass(frozen=True)
class MQTTCredentials:
    host: str
    port: int
    username: str
    password: str
    user_id: str
    protocol: str = "mqtts"

    @property
    def use_tls(self) -> bool:
        return self.protocol in TLS_PROTOCOLS

    def __repr__(self) -> str:
        return (
            f"MQTTCredentials(host={self.host!r}, port={self.port}, "
            f"protocol={self.protocol!r}, user_id={self.user_id!r})"
        )


class EcoFlowAuthClient:
    """Fetches MQTT broker credentials for an EcoFlow app account."""

    def __init__(self, config: EcoFlowConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=f"https://{config.api_host}",
            headers={"Accept": "application/json"},
            timeout=config.api_timeout_seconds,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_credentials(self) -> MQTTCredentials:
        """Log in and exchange the token for broker credentials.

        Raises:
            CredentialError: On HTTP failure or a non-zero API ``code``.
        """
        logger.info("Authenticating via %s", self._config.api_host)
        token, user_id = await self._login()
        return await self._certification(token, user_id)

    async def _login(self) -> tuple[str, str]:
        password_b64 = base64.b64encode(self._config.password.encode("utf-8")).decode("ascii")
        body = {
            "os": "linux",
            "scene": "IOT_APP",
            "appVersion": "1.0.0",
            "osVersion": "Python",
            "password": password_b64,
            "oauth": {"bundleId": "com.ef.EcoFlow"},
            "email": self._config.email,
            "userType": "ECOFLOW",
        }
        data = await self._request("POST", "/auth/login", "Login", json=body)

        token = data.get("token")
        user_id = str((data.get("user") or {}).get("userId") or "")
        if not token:
            raise CredentialError("No token received from login")
        logger.info("Login successful, fetching MQTT credentials")
        return token, user_id

    async def _certification(self, token: str, user_id: str) -> MQTTCredentials:
        data = await self._request(
            "GET", "/iot-auth/app/certification", "Certification",
            headers={"Authorization": f"Bearer {token}"},
        )
        host = data.get("url")
        if not host:
            raise CredentialError("Certification response has no broker url")

        creds = MQTTCredentials(
            host=host,
            port=int(data.get("port") or 8883),
            username=data.get("certificateAccount", ""),
            password=data.get("certificatePassword", ""),
            user_id=user_id,
            protocol=data.get("protocol") or "mqtts",
        )
        logger.info("MQTT broker: %s:%d", creds.host, creds.port)
        return creds

    async def _request(self, method: str, path: str, step: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise CredentialError(f"{step} failed: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialError(f"{step} failed: {e}") from e

        if not isinstance(payload, dict):
            raise CredentialError(f"{step} failed: unexpected response")
        if str(payload.get("code")) != "0":
            raise CredentialError(f"{step} error: {payload.get('message') or 'Unknown error'}")
        return payload.get("data") or {}
