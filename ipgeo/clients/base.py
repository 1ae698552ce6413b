from abc import ABC, abstractmethod
from typing import Any

GeoData = dict[str, Any]


class BaseGeolocationClient(ABC):
    """Abstract base for IP geolocation provider clients.

    Implementations return the provider's JSON object as-is. The field set is
    provider-defined, so callers must treat it as an opaque mapping.
    """

    async def lookup(self, ip: str | None = None) -> GeoData:
        """Look up `ip`, or the caller's own address when `ip` is empty."""
        if ip:
            return await self.lookup_ip(ip)
        return await self.lookup_client_ip()

    @abstractmethod
    async def lookup_ip(self, ip: str) -> GeoData:
        """Look up geolocation information for an explicit IP address."""
        raise NotImplementedError

    @abstractmethod
    async def lookup_client_ip(self) -> GeoData:
        """Look up geolocation information for the calling client's IP address."""
        raise NotImplementedError
