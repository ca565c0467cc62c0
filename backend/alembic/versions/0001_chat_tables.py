"""chat rooms, members and messages

Revision ID: 0001_chat_tables
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = "0001_chat_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "chat_rooms",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("kind", sa.Enum("direct", "group", name="roomkind"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("room_key", sa.String(length=600), nullable=False),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_rooms_room_key", "chat_rooms", ["room_key"], unique=True)
    op.create_index("ix_chat_rooms_last_message_at", "chat_rooms", ["last_message_at"])

    op.create_table(
        "chat_room_members",
        sa.Column("room_id", sa.String(length=36), nullable=False),
        sa.Column("member_id", sa.String(length=255), nullable=False),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("room_id", "member_id"),
    )
    op.create_index("ix_chat_room_members_member_id", "chat_room_members", ["member_id"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("room_id", sa.String(length=36), nullable=False),
        sa.Column("sender_id", sa.String(length=255), nullable=False),
        sa.Column("sender_display_name", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("media", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("edited_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_messages_room_created", "chat_messages", ["room_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_chat_messages_room_created", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_chat_room_members_member_id", table_name="chat_room_members")
    op.drop_table("chat_room_members")
    op.drop_index("ix_chat_rooms_last_message_at", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_room_key", table_name="chat_rooms")
    op.drop_table("chat_rooms")
    sa.Enum(name="roomkind").drop(op.get_bind(), checkfirst=True)
