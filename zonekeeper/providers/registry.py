"""Provider type to client implementation mapping"""
import logging
from typing import Dict, Optional, Type, Union

import httpx

from zonekeeper.core.exceptions import ConfigurationError
from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.providers.cloudflare import CloudflareClient
from zonekeeper.providers.custom import CustomRestClient
from zonekeeper.providers.powerdns import PowerDnsClient
from zonekeeper.services.remote_service import RemoteExecutor
from zonekeeper.services.tunnel_service import TunnelManager

logger = logging.getLogger(__name__)

# route53 and dnsmasq are recognised types without a client; selecting them
# is a configuration error rather than a silent fallback.
CLIENT_REGISTRY: Dict[ProviderType, Type[DNSProviderClient]] = {
    ProviderType.POWERDNS: PowerDnsClient,
    ProviderType.CLOUDFLARE: CloudflareClient,
    ProviderType.CUSTOM: CustomRestClient,
}


def get_client_class(provider_type: Union[ProviderType, str]) -> Type[DNSProviderClient]:
    """Client class for ``provider_type``; raises ConfigurationError if none"""
    try:
        ptype = ProviderType(provider_type)
    except ValueError:
        raise ConfigurationError(f"Unknown provider type: {provider_type}")

    client_class = CLIENT_REGISTRY.get(ptype)
    if client_class is None:
        raise ConfigurationError(f"No client implementation for provider type '{ptype.value}'")
    return client_class


class ClientFactory:
    """Builds provider clients wired to the shared process state"""

    def __init__(
        self,
        tunnels: Optional[TunnelManager] = None,
        executor: Optional[RemoteExecutor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tunnels = tunnels
        self.executor = executor
        self.transport = transport

    def for_provider(self, provider: DNSProvider) -> DNSProviderClient:
        if provider is None:
            raise ConfigurationError("Zone has no provider")
        if not provider.active or provider.deleted_at is not None:
            raise ConfigurationError(f"Provider {provider.name} is not active")

        client_class = get_client_class(provider.type)
        return client_class(
            provider,
            transport=self.transport,
            tunnels=self.tunnels,
            executor=self.executor,
        )
