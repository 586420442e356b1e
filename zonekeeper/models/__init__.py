from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.models.zone import DNSZone, ZoneKind, DnssecState
from zonekeeper.models.record import DNSRecord
