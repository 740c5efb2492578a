"""create rooms, room_participants and chat_messages tables

Revision ID: 8e5d0b7a41c2
Revises: 3c1f6a2b9d04
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import mysql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8e5d0b7a41c2"
down_revision: str | Sequence[str] | None = "3c1f6a2b9d04"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create room and chat message tables."""
    message_timestamp = sa.DateTime(timezone=True).with_variant(
        mysql.DATETIME(fsp=6), "mysql"
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_rooms_creator_id"), "rooms", ["creator_id"], unique=False)

    op.create_table(
        "room_participants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("room_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "room_id", "user_id", name="uq_room_participants_room_user"
        ),
    )
    op.create_index(
        op.f("ix_room_participants_room_id"),
        "room_participants",
        ["room_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_room_participants_user_id"),
        "room_participants",
        ["user_id"],
        unique=False,
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("room_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("created_at", message_timestamp, nullable=False),
        sa.Column("updated_at", message_timestamp, nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_chat_messages_room_id_created_at",
        "chat_messages",
        ["room_id", "created_at"],
        unique=False,
    )
    op.create_index(
        op.f("ix_chat_messages_sender_id"),
        "chat_messages",
        ["sender_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop room and chat message tables."""
    op.drop_index(op.f("ix_chat_messages_sender_id"), table_name="chat_messages")
    op.drop_index("ix_chat_messages_room_id_created_at", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index(op.f("ix_room_participants_user_id"), table_name="room_participants")
    op.drop_index(op.f("ix_room_participants_room_id"), table_name="room_participants")
    op.drop_table("room_participants")
    op.drop_index(op.f("ix_rooms_creator_id"), table_name="rooms")
    op.drop_table("rooms")
