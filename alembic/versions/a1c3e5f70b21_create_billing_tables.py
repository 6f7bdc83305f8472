"""create billing tables

Revision ID: a1c3e5f70b21
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70b21"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

payment_kind = sa.Enum("checkout_session", "payment_intent", name="paymentkind")
payment_status = sa.Enum("completed", "succeeded", "failed", name="paymentstatus")
invoice_status = sa.Enum("paid", "failed", name="invoicestatus")
delivery_status = sa.Enum("processed", "failed", name="deliverystatus")


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("kind", payment_kind, nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("customer_id", sa.String(255)),
        sa.Column("customer_email", sa.String(320)),
        sa.Column("user_id", sa.String(255)),
        sa.Column("payment_intent_id", sa.String(255)),
        sa.Column("amount", sa.Integer()),
        sa.Column("currency", sa.String(3)),
        sa.Column("failure_reason", sa.Text()),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("last_event_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])
    op.create_index("ix_payments_user_created", "payments", ["user_id", "created_at"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("customer_id", sa.String(255)),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("price_id", sa.String(255)),
        sa.Column("current_period_start", sa.DateTime()),
        sa.Column("current_period_end", sa.DateTime()),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("canceled_at", sa.DateTime()),
        sa.Column("ended_at", sa.DateTime()),
        sa.Column("terminated", sa.Boolean(), nullable=False),
        sa.Column("last_event_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("customer_id", sa.String(255)),
        sa.Column("subscription_id", sa.String(255)),
        sa.Column("status", invoice_status, nullable=False),
        sa.Column("amount_paid", sa.Integer()),
        sa.Column("amount_due", sa.Integer()),
        sa.Column("currency", sa.String(3)),
        sa.Column("attempt_count", sa.Integer()),
        sa.Column("next_payment_attempt", sa.DateTime()),
        sa.Column("needs_dunning", sa.Boolean(), nullable=False),
        sa.Column("last_event_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_index("ix_invoices_subscription_id", "invoices", ["subscription_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("type", sa.String(255), nullable=False),
        sa.Column("livemode", sa.Boolean(), nullable=False),
        sa.Column("event_created", sa.DateTime()),
        sa.Column("status", delivery_status, nullable=False),
        sa.Column("error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhook_events_type", "webhook_events", ["type"])


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("invoices")
    op.drop_table("subscriptions")
    op.drop_table("payments")
    bind = op.get_bind()
    for enum_type in (delivery_status, invoice_status, payment_status, payment_kind):
        enum_type.drop(bind, checkfirst=True)
