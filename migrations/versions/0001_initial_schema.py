"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


party_kind = sa.Enum(
    "REGULAR", "COMMISSION", "COMPANY",
    name="party_kind_enum", create_constraint=True,
)
commission_mode = sa.Enum(
    "TAKE", "GIVE", "NONE",
    name="commission_mode_enum", create_constraint=True,
)
entry_type = sa.Enum(
    "CREDIT", "DEBIT",
    name="entry_type_enum", create_constraint=True,
)
entry_kind = sa.Enum(
    "PRIMARY", "COMMISSION", "COMPANY", "MIRROR", "SETTLEMENT",
    name="entry_kind_enum", create_constraint=True,
)


def upgrade() -> None:
    op.create_table(
        "user_settings",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("default_commission_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "parties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("kind", party_kind, nullable=False),
        sa.Column("commission_mode", commission_mode, nullable=False),
        sa.Column("commission_rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("monday_final", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_parties_user_name"),
    )
    op.create_index("ix_parties_user_id", "parties", ["user_id"])

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("party_id", sa.Integer(), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("party_name", sa.String(255), nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("seed_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("closing_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("entry_count", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_settlements_user_id", "settlements", ["user_id"])
    op.create_index("ix_settlements_party_id", "settlements", ["party_id"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("party_id", sa.Integer(), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("party_name", sa.String(255), nullable=False),
        sa.Column("entry_type", entry_type, nullable=False),
        sa.Column("entry_kind", entry_kind, nullable=False),
        sa.Column("credit", sa.Numeric(15, 2), nullable=False),
        sa.Column("debit", sa.Numeric(15, 2), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("remarks", sa.Text(), nullable=False),
        sa.Column("is_settled", sa.Boolean(), nullable=False),
        # Not a foreign key: broken links must stay visible to diagnostics
        sa.Column("settlement_id", sa.Integer(), nullable=True),
        sa.Column("balance_snapshot", sa.Numeric(15, 2), nullable=True),
        sa.Column(
            "derived_from_entry_id",
            sa.Integer(),
            sa.ForeignKey("ledger_entries.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ledger_entries_user_id", "ledger_entries", ["user_id"])
    op.create_index("ix_ledger_entries_party_id", "ledger_entries", ["party_id"])
    op.create_index("ix_ledger_entries_entry_date", "ledger_entries", ["entry_date"])
    op.create_index("ix_ledger_entries_settlement_id", "ledger_entries", ["settlement_id"])
    op.create_index(
        "ix_ledger_entries_derived_from_entry_id",
        "ledger_entries",
        ["derived_from_entry_id"],
    )

    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("current_value", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("party_name", sa.String(255), nullable=True),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_user_id", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("sequence_counters")
    op.drop_index("ix_ledger_entries_derived_from_entry_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_settlement_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_entry_date", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_party_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_user_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_index("ix_settlements_party_id", table_name="settlements")
    op.drop_index("ix_settlements_user_id", table_name="settlements")
    op.drop_table("settlements")
    op.drop_index("ix_parties_user_id", table_name="parties")
    op.drop_table("parties")
    op.drop_table("user_settings")

    bind = op.get_bind()
    for enum in (entry_kind, entry_type, commission_mode, party_kind):
        enum.drop(bind, checkfirst=True)
