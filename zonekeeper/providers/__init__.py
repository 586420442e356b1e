"""DNS provider clients.

Usage:
    from zonekeeper.providers import ClientFactory

    client = ClientFactory(tunnels=TunnelManager()).for_provider(provider)
    result = await client.list_zones()
"""
from zonekeeper.providers.base import DNSProviderClient, ErrorCause, ProviderResult
from zonekeeper.providers.registry import CLIENT_REGISTRY, ClientFactory, get_client_class

__all__ = [
    "DNSProviderClient",
    "ErrorCause",
    "ProviderResult",
    "CLIENT_REGISTRY",
    "ClientFactory",
    "get_client_class",
]
