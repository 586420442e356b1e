"""DNS lookups used for FCrDNS and DNSSEC diagnostics"""
import logging
from typing import List, Optional

import dns.exception
import dns.flags
import dns.message
import dns.query
import dns.rdatatype
import dns.resolver
import dns.reversename
from fastapi.concurrency import run_in_threadpool

from zonekeeper.core.config import settings

logger = logging.getLogger(__name__)


class DnsLookup:
    """Thin async wrapper around a dnspython resolver.

    By default every lookup failure (NXDOMAIN, no answer, timeouts) yields
    an empty list so callers can treat "missing" and "not yet propagated"
    the same way. With ``strict=True`` only NXDOMAIN and an empty answer
    count as missing; an unreachable or failing resolver raises so the
    caller can tell an outage from an absent record.
    """

    def __init__(self, nameservers: Optional[List[str]] = None, timeout: Optional[float] = None):
        self.resolver = dns.resolver.Resolver(configure=False)
        self.resolver.nameservers = list(nameservers or settings.RESOLVER_NAMESERVERS)
        self.resolver.timeout = timeout or settings.RESOLVER_TIMEOUT
        self.resolver.lifetime = timeout or settings.RESOLVER_TIMEOUT

    async def resolve(self, name: str, record_type: str, strict: bool = False) -> List[str]:
        try:
            answers = await run_in_threadpool(self.resolver.resolve, name, record_type)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as exc:
            if strict:
                raise
            logger.debug(f"Lookup {name} {record_type} failed: {exc}")
            return []
        return [answer.to_text() for answer in answers]

    async def forward(self, fqdn: str, version: int = 4) -> List[str]:
        """A (version 4) or AAAA (version 6) addresses of ``fqdn``"""
        return await self.resolve(fqdn, "AAAA" if version == 6 else "A")

    async def reverse(self, ip: str) -> List[str]:
        """PTR targets for ``ip``, lowercased without the trailing dot"""
        name = dns.reversename.from_address(ip).to_text()
        return [target.strip().lower().rstrip(".") for target in await self.resolve(name, "PTR")]

    async def has_signatures(self, name: str, record_type: str = "DNSKEY", strict: bool = False) -> bool:
        """True when the answer for ``name``/``record_type`` carries RRSIGs.

        Each nameserver is tried in turn; when none answers, ``strict``
        re-raises the last failure instead of returning False.
        """
        query = dns.message.make_query(name, record_type, want_dnssec=True)
        query.flags |= dns.flags.CD
        failure: Optional[Exception] = None
        for nameserver in self.resolver.nameservers:
            try:
                response = await run_in_threadpool(
                    dns.query.udp, query, nameserver, timeout=self.resolver.timeout
                )
            except (dns.exception.DNSException, OSError) as exc:
                logger.debug(f"RRSIG lookup for {name} via {nameserver} failed: {exc}")
                failure = exc
                continue
            return any(rrset.rdtype == dns.rdatatype.RRSIG for rrset in response.answer)
        if strict and failure is not None:
            raise failure
        return False
