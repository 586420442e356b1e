"""
pdnsutil over SSH
"""
from types import SimpleNamespace

import httpx

from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.providers.base import ErrorCause
from zonekeeper.providers.powerdns import PowerDnsClient
from zonekeeper.schemas.remote import SSHTarget
from zonekeeper.services.remote_service import RemoteExecutor
from zonekeeper.services.tunnel_service import TunnelManager


class FakeSession:
    def __init__(self, shell):
        self.shell = shell

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def run(self, command, timeout=None):
        self.shell.commands.append(command)
        return SimpleNamespace(exit_status=self.shell.exit_status, stdout="", stderr=self.shell.stderr)


class FakeShell:
    """Stands in for asyncssh.connect when used as a context manager"""

    def __init__(self, exit_status=0, stderr=""):
        self.exit_status = exit_status
        self.stderr = stderr
        self.commands = []
        self.hosts = []

    def __call__(self, **kwargs):
        self.hosts.append(kwargs["host"])
        return FakeSession(self)


async def test_pdnsutil_arguments_are_quoted():
    shell = FakeShell()
    result = await RemoteExecutor(connect=shell).pdnsutil(
        SSHTarget(host="pdns1.example.net", password="pw"), "disable-dnssec", "example.com.; rm -rf /",
    )

    assert result.success
    assert shell.commands == ["pdnsutil disable-dnssec 'example.com.; rm -rf /'"]
    assert shell.hosts == ["pdns1.example.net"]


async def test_failed_command_is_reported():
    shell = FakeShell(exit_status=1, stderr="Zone not found")
    result = await RemoteExecutor(connect=shell).execute_command(SSHTarget(host="pdns1.example.net", password="pw"),
                                                                 "pdnsutil list-zone x")
    assert not result.success
    assert result.stderr == "Zone not found"


def pdns_client(shell):
    provider = DNSProvider(
        name="pdns",
        type=ProviderType.POWERDNS,
        connection_config={"api_key": "secret", "ssh_host": "pdns1.example.net", "ssh_password": "pw"},
    )
    return PowerDnsClient(
        provider,
        transport=httpx.MockTransport(lambda request: httpx.Response(204)),
        tunnels=TunnelManager(),
        executor=RemoteExecutor(connect=shell),
    )


async def test_powerdns_disables_dnssec_with_pdnsutil():
    shell = FakeShell()

    result = await pdns_client(shell).set_dnssec("example.com.", False)

    assert result.success
    assert result.data.status == "disabled"
    assert shell.commands == ["pdnsutil disable-dnssec example.com."]


async def test_pdnsutil_failure_is_remote():
    shell = FakeShell(exit_status=1, stderr="Error: zone is not signed")

    result = await pdns_client(shell).set_dnssec("example.com.", False)

    assert not result.success
    assert result.cause != ErrorCause.UNSUPPORTED
    assert "zone is not signed" in result.message
