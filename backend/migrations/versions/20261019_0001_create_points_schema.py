from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False)

def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("store_id", sa.String(length=64), nullable=True),
        sa.Column("display_name", sa.String(length=120), nullable=True),
        sa.Column("linked_participant_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("line_user_id", sa.String(length=64), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("role IN ('participant','caregiver','operator','administrator')", name="ck_accounts_role"),
    )
    op.create_index("ix_accounts_role", "accounts", ["role"])
    op.create_index("ix_accounts_store_id", "accounts", ["store_id"])
    op.create_index("ix_accounts_linked_participant_id", "accounts", ["linked_participant_id"])

    op.create_table(
        "caregiver_links",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("caregiver_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("participant_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        sa.UniqueConstraint("caregiver_id", "participant_id", name="uq_caregiver_link_pair"),
    )
    op.create_index("ix_caregiver_links_caregiver_id", "caregiver_links", ["caregiver_id"])
    op.create_index("ix_caregiver_links_participant_id", "caregiver_links", ["participant_id"])

    op.create_table(
        "wallets",
        sa.Column("account_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True, nullable=False),
        sa.Column("honor_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("local_balance", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("honor_balance >= 0", name="ck_wallet_honor_non_negative"),
        sa.CheckConstraint("local_balance >= 0", name="ck_wallet_local_non_negative"),
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("store_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("winner", sa.String(length=8), nullable=True),
        sa.Column("red_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("yellow_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("completed_at", nullable=True),
        _ts("updated_at"),
        sa.CheckConstraint("status IN ('in_progress','completed','deleted')", name="ck_matches_status"),
        sa.CheckConstraint("winner IS NULL OR winner IN ('red','yellow')", name="ck_matches_winner"),
    )
    op.create_index("ix_matches_store_id", "matches", ["store_id"])

    op.create_table(
        "match_participants",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("match_id", sa.Uuid(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team", sa.String(length=8), nullable=False),
        sa.Column("result", sa.String(length=8), nullable=False),
        sa.UniqueConstraint("match_id", "account_id", name="uq_match_participant_once"),
    )
    op.create_index("ix_match_participants_match_id", "match_participants", ["match_id"])
    op.create_index("ix_match_participants_account_id", "match_participants", ["account_id"])

    op.create_table(
        "match_ends",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("match_id", sa.Uuid(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("end_number", sa.Integer(), nullable=False),
        sa.Column("red_score", sa.Integer(), nullable=False),
        sa.Column("yellow_score", sa.Integer(), nullable=False),
        sa.Column("evidence_url", sa.String(length=1024), nullable=False),
        sa.Column("vibe_video_url", sa.String(length=1024), nullable=True),
    )
    op.create_index("ix_match_ends_match_id", "match_ends", ["match_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("account_id", sa.Uuid(), sa.ForeignKey("wallets.account_id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("honor_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("local_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("honor_after", sa.Integer(), nullable=False),
        sa.Column("local_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("match_id", sa.Uuid(), sa.ForeignKey("matches.id", ondelete="SET NULL"), nullable=True),
        sa.Column("store_id", sa.String(length=64), nullable=True),
        sa.Column("operator_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("evidence_url", sa.String(length=1024), nullable=True),
        sa.Column("external_id", sa.String(length=128), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("external_id", name="uq_transaction_external_id"),
        sa.CheckConstraint("kind IN ('earned','spent','local_grant','match_adjustment')", name="ck_transactions_kind"),
    )
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"])
    op.create_index("ix_transactions_match_id", "transactions", ["match_id"])
    op.create_index("ix_transactions_account_created", "transactions", ["account_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("recipient_id", sa.Uuid(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="info"),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        _ts("sent_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])

def downgrade() -> None:
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_transactions_account_created", table_name="transactions")
    op.drop_index("ix_transactions_match_id", table_name="transactions")
    op.drop_index("ix_transactions_account_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_match_ends_match_id", table_name="match_ends")
    op.drop_table("match_ends")
    op.drop_index("ix_match_participants_account_id", table_name="match_participants")
    op.drop_index("ix_match_participants_match_id", table_name="match_participants")
    op.drop_table("match_participants")
    op.drop_index("ix_matches_store_id", table_name="matches")
    op.drop_table("matches")
    op.drop_table("wallets")
    op.drop_index("ix_caregiver_links_participant_id", table_name="caregiver_links")
    op.drop_index("ix_caregiver_links_caregiver_id", table_name="caregiver_links")
    op.drop_table("caregiver_links")
    op.drop_index("ix_accounts_linked_participant_id", table_name="accounts")
    op.drop_index("ix_accounts_store_id", table_name="accounts")
    op.drop_index("ix_accounts_role", table_name="accounts")
    op.drop_table("accounts")
