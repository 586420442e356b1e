"""Initial schema: DNS providers, zones and records."""
from alembic import op
import sqlalchemy as sa

from zonekeeper.models.provider import ProviderType
from zonekeeper.models.zone import ZoneKind, DnssecState

# revision identifiers, used by Alembic.
revision = "5c1e0a9d7b21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    provider_type = sa.Enum(ProviderType, name="providertype")
    zone_kind = sa.Enum(ZoneKind, name="zonekind")
    dnssec_state = sa.Enum(DnssecState, name="dnssecstate")

    bind = op.get_bind()
    for enum_type in (provider_type, zone_kind, dnssec_state):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "dns_providers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", provider_type, nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("connection_config", sa.JSON(), nullable=False),
        sa.Column("version", sa.String(length=50)),
        sa.Column("rate_limit", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("timeout", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_sync", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.UniqueConstraint("name", name="uq_dns_providers_name"),
    )
    op.create_index("ix_dns_providers_name", "dns_providers", ["name"], unique=True)
    op.create_index("ix_dns_providers_type", "dns_providers", ["type"])
    op.create_index("ix_dns_providers_deleted_at", "dns_providers", ["deleted_at"])

    op.create_table(
        "dns_zones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("dns_providers.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("external_id", sa.String(length=255)),
        sa.Column("kind", zone_kind, nullable=False),
        sa.Column("masters", sa.JSON(), nullable=False),
        sa.Column("nameservers", sa.JSON(), nullable=False),
        sa.Column("account", sa.String(length=255)),
        sa.Column("description", sa.Text()),
        sa.Column("serial", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("ttl", sa.Integer(), nullable=False, server_default="3600"),
        sa.Column("auto_dnssec", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dnssec_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dnssec_state", dnssec_state, nullable=False),
        sa.Column("provider_data", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("records_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_check", sa.DateTime()),
        sa.Column("last_synced", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_dns_zones_provider_id", "dns_zones", ["provider_id"])
    op.create_index("ix_dns_zones_name", "dns_zones", ["name"])
    op.create_index("ix_dns_zones_external_id", "dns_zones", ["external_id"])
    op.create_index("ix_dns_zones_deleted_at", "dns_zones", ["deleted_at"])

    op.create_table(
        "dns_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("zone_id", sa.Integer(), sa.ForeignKey("dns_zones.id"), nullable=False),
        sa.Column("external_id", sa.String(length=512)),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("ttl", sa.Integer(), nullable=False, server_default="3600"),
        sa.Column("priority", sa.Integer()),
        sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auth", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("ordername", sa.String(length=255)),
        sa.Column("comment", sa.String(length=255)),
        sa.Column("provider_data", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_synced", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_dns_records_zone_id", "dns_records", ["zone_id"])
    op.create_index("ix_dns_records_external_id", "dns_records", ["external_id"])
    op.create_index("ix_dns_records_name", "dns_records", ["name"])
    op.create_index("ix_dns_records_type", "dns_records", ["type"])
    op.create_index("ix_dns_records_deleted_at", "dns_records", ["deleted_at"])
    op.create_index("ix_dns_records_zone_name_type", "dns_records", ["zone_id", "name", "type"])


def downgrade() -> None:
    op.drop_table("dns_records")
    op.drop_table("dns_zones")
    op.drop_table("dns_providers")

    bind = op.get_bind()
    for name in ("dnssecstate", "zonekind", "providertype"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
