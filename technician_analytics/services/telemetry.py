"""
Vehicle telemetry client.

Talks to the fleet telemetry provider over HTTPS with httpx:
1. OAuth2 client-credentials token from the identity endpoint
2. GET {base_url}/vehicles/{vehicle_id} for the vehicle's last position

Route scoring only needs to know whether a live position exists for a
technician's vehicle, so positions are returned as a small dataclass and
missing positions as None.

Error policy:
- missing credentials, transport errors, token failures and non-404 error
  responses raise TelemetryUnavailable
- 404 or a body without latitude/longitude means "no position" (None)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from technician_analytics.core.config import Settings
from technician_analytics.core.exceptions import TelemetryUnavailable


logger = logging.getLogger(__name__)

TOKEN_SCOPE = 'open_api open_api.vehicles'


@dataclass(frozen=True)
class VehiclePosition:
    """Last reported position of a vehicle."""
    vehicle_id: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    last_update: Optional[str] = None
    status: Optional[str] = None


class TelemetryClient:
    """
    Client for the vehicle telemetry API.

    Args:
        base_url: API base URL, e.g. https://api.abax.cloud/v1.
        token_url: OAuth2 token endpoint.
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        timeout: Request timeout in seconds.
        http_client: Shared httpx.AsyncClient; a short-lived client is
            opened per request when None.
    """

    def __init__(
        self,
        base_url: str,
        token_url: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._http_client = http_client
        self._token: Optional[str] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> 'TelemetryClient':
        return cls(
            base_url=settings.telemetry_base_url,
            token_url=settings.telemetry_token_url,
            client_id=settings.telemetry_client_id,
            client_secret=settings.telemetry_client_secret,
            timeout=settings.telemetry_timeout_seconds,
            http_client=http_client,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    async def get_token(self) -> str:
        """
        Fetch (once per client) an access token.

        Returns:
            Bearer token.

        Raises:
            TelemetryUnavailable: If credentials are missing or the token
                request fails.
        """
        if self._token:
            return self._token
        if not self.is_configured:
            raise TelemetryUnavailable("Telemetry credentials are not configured")

        try:
            response = await self._send(
                'POST',
                self.token_url,
                data={
                    'grant_type': 'client_credentials',
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'scope': TOKEN_SCOPE,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TelemetryUnavailable(f"Telemetry token request failed: {e}") from e

        token = payload.get('access_token') if isinstance(payload, dict) else None
        if not token:
            raise TelemetryUnavailable("Telemetry token response has no access_token")

        self._token = token
        return token

    async def get_vehicle_position(self, vehicle_id: str) -> Optional[VehiclePosition]:
        """
        Fetch the last known position of a vehicle.

        Args:
            vehicle_id: Telemetry vehicle identifier.

        Returns:
            VehiclePosition, or None if the provider has no position for it.

        Raises:
            TelemetryUnavailable: If the provider cannot be reached or answers
                with an error other than 404.
        """
        token = await self.get_token()

        try:
            response = await self._send(
                'GET',
                f"{self.base_url}/vehicles/{vehicle_id}",
                headers={'Authorization': f"Bearer {token}", 'accept': 'application/json'},
            )
            if response.status_code == 404:
                logger.warning(f"Telemetry has no vehicle {vehicle_id}")
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TelemetryUnavailable(f"Telemetry request for vehicle {vehicle_id} failed: {e}") from e

        return _parse_position(vehicle_id, payload)


def _parse_position(vehicle_id: str, payload: Any) -> Optional[VehiclePosition]:
    if not isinstance(payload, dict):
        payload = {}
    location: Dict[str, Any] = payload.get('location') or {}
    latitude = location.get('latitude')
    longitude = location.get('longitude')

    if latitude is None or longitude is None:
        logger.warning(f"Vehicle {vehicle_id} has no valid position data")
        return None

    return VehiclePosition(
        vehicle_id=vehicle_id,
        latitude=float(latitude),
        longitude=float(longitude),
        address=location.get('address'),
        last_update=location.get('lastUpdate'),
        status=payload.get('status'),
    )
