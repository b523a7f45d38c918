# alembic/versions/20261018_initial_groups_invites.py
"""
Initial: users, groups (privacy), group_invites, group_members.

Ключевые ограничения:
  • UNIQUE (group_id, user_id) на group_members — арбитр гонок при вступлении;
  • UNIQUE code на group_invites;
  • CHECK: персональный инвайт — одноразовый и не самому себе; одноразовый погашается максимум раз;
    срок действия позже момента создания.
"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20261018_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


group_privacy = sa.Enum("open", "moderator_invite", "owner_invite", name="group_privacy")
group_role = sa.Enum("member", "moderator", "owner", name="group_role")


def upgrade() -> None:
    # 1) users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("language_code", sa.String(length=8), nullable=True),
        sa.Column("allows_write_to_pm", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "is_admin",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Системный администратор",
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"], unique=True)
    op.create_index("ix_users_username", "users", ["username"])
    op.create_index("ix_users_name", "users", ["name"])

    # 2) groups
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "privacy",
            group_privacy,
            nullable=False,
            server_default="moderator_invite",
            comment="Кто выпускает инвайты: open|moderator_invite|owner_invite",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_groups_id", "groups", ["id"])
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_groups_owner_id", "groups", ["owner_id"])

    # 3) group_invites
    op.create_table(
        "group_invites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("invited_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("one_time_use", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("invited_user_id IS NULL OR one_time_use", name="ck_group_invites_targeted_one_time"),
        sa.CheckConstraint(
            "invited_user_id IS NULL OR invited_user_id <> created_by_id",
            name="ck_group_invites_not_self",
        ),
        sa.CheckConstraint("NOT one_time_use OR times_used <= 1", name="ck_group_invites_one_time_used_once"),
        sa.CheckConstraint(
            "expires_at IS NULL OR expires_at > created_at",
            name="ck_group_invites_expiry_after_creation",
        ),
    )
    op.create_index("ix_group_invites_id", "group_invites", ["id"])
    op.create_index("ix_group_invites_group_id", "group_invites", ["group_id"])
    op.create_index("ix_group_invites_code", "group_invites", ["code"], unique=True)
    op.create_index("ix_group_invites_created_by", "group_invites", ["created_by_id"])

    # 4) group_members
    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", group_role, nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "invite_id",
            sa.Integer(),
            sa.ForeignKey("group_invites.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )
    op.create_index("ix_group_members_id", "group_members", ["id"])
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])
    op.create_index("ix_group_members_group_role", "group_members", ["group_id", "role"])


def downgrade() -> None:
    op.drop_table("group_members")
    op.drop_table("group_invites")
    op.drop_table("groups")
    op.drop_table("users")

    bind = op.get_bind()
    group_role.drop(bind, checkfirst=True)
    group_privacy.drop(bind, checkfirst=True)
