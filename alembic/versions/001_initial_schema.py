"""Initial console schema: users, posts/tags/comments, system configs,
API partner configs, push (configs, audiences, tokens, templates, tasks) and content.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = insp.get_table_names()

    if "users" in existing:
        return  # Already applied (e.g. from create_all)

    # ── Users / posts ──
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=True, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "tags",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=True, server_default="#1890ff"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.String(500), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="DRAFT"),
        sa.Column("views", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("author_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_posts_status", "posts", ["status"], unique=False)
    op.create_index("ix_posts_author", "posts", ["author_id"], unique=False)

    op.create_table(
        "post_tags",
        sa.Column("post_id", sa.Uuid(), nullable=False),
        sa.Column("tag_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("post_id", "tag_id"),
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("post_id", sa.Uuid(), nullable=False),
        sa.Column("author_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "system_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=True, server_default="STRING"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
    )

    # ── API partners ──
    url_columns = [
        "ios_download_url", "android_download_url", "admittance_url", "credential_stuffing_url",
        "push_user_data_url", "credit_data_url", "loan_product_url", "loan_contract_url",
        "submit_loan_url", "loan_preview_url", "bank_list_url", "bind_bank_url",
        "set_default_bank_url", "pre_bind", "get_bank", "user_loan_amt", "order_status_url",
        "repay_plan_url", "repay_details_url", "contract_sign_url", "query_user_url",
    ]
    op.create_table(
        "api_partner_conf",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("app_id", sa.Integer(), nullable=False),
        sa.Column("partner_logo", sa.String(500), nullable=True),
        sa.Column("partner_name", sa.String(255), nullable=False),
        sa.Column("partner_description", sa.Text(), nullable=True),
        sa.Column("partner_phone", sa.String(50), nullable=True),
        sa.Column("partner_api", sa.String(500), nullable=False),
        sa.Column("type", sa.Integer(), nullable=True),
        sa.Column("secret_key", sa.Text(), nullable=False),
        sa.Column("default_amount", sa.Float(), nullable=True),
        sa.Column("default_loan_days", sa.Integer(), nullable=True),
        sa.Column("default_interest_rate", sa.Float(), nullable=True),
        sa.Column("extend", sa.Text(), nullable=True),
        *[sa.Column(name, sa.String(500), nullable=True) for name in url_columns],
        sa.Column("status", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("is_head", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("add_bank", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("is_sign", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("is_reload", sa.Integer(), nullable=True, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("app_id"),
    )
    op.create_index("ix_api_partner_conf_status", "api_partner_conf", ["status"], unique=False)

    # ── Push ──
    op.create_table(
        "push_configs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("app_id", sa.String(100), nullable=False),
        sa.Column("platform", sa.String(20), nullable=True, server_default="all"),
        sa.Column("project_id", sa.String(255), nullable=False),
        sa.Column("server_key", sa.Text(), nullable=True),
        sa.Column("service_account", sa.Text(), nullable=True),
        sa.Column("vapid_key", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("app_id", "platform", name="uq_push_configs_app_platform"),
    )

    op.create_table(
        "push_audiences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token", sa.String(512), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        sa.Column("last_active_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_push_tokens_status", "push_tokens", ["status"], unique=False)

    op.create_table(
        "push_audience_tokens",
        sa.Column("audience_id", sa.Integer(), nullable=False),
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["audience_id"], ["push_audiences.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["token_id"], ["push_tokens.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("audience_id", "token_id"),
    )

    op.create_table(
        "push_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("template_key", sa.String(100), nullable=False),
        sa.Column("push_config_id", sa.Integer(), nullable=False),
        sa.Column("push_audience_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data_payload", sa.JSON(), nullable=True),
        sa.Column("click_action", sa.String(500), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["push_config_id"], ["push_configs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["push_audience_id"], ["push_audiences.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_key", "push_config_id", name="uq_push_templates_key_config"),
    )
    op.create_index("ix_push_templates_enabled", "push_templates", ["enabled"], unique=False)

    op.create_table(
        "push_tasks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("push_template_id", sa.Integer(), nullable=True),
        sa.Column("push_config_id", sa.Integer(), nullable=True),
        sa.Column("push_audience_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="draft"),
        sa.Column("schedule_time", sa.DateTime(), nullable=True),
        sa.Column("total_tokens", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["push_template_id"], ["push_templates.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["push_config_id"], ["push_configs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["push_audience_id"], ["push_audiences.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_push_tasks_status", "push_tasks", ["status"], unique=False)

    # ── Content ──
    op.create_table(
        "content",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("app_id", sa.Integer(), nullable=True, server_default="15"),
        sa.Column("parent_id", sa.Integer(), nullable=True, server_default="10"),
        sa.Column("type", sa.Integer(), nullable=True, server_default="2"),
        sa.Column("title", sa.String(255), nullable=True, server_default=""),
        sa.Column("subtitle", sa.String(255), nullable=True, server_default=""),
        sa.Column("author", sa.String(100), nullable=True, server_default=""),
        sa.Column("content", sa.Text(), nullable=True, server_default=""),
        sa.Column("alias", sa.String(255), nullable=True, server_default=""),
        sa.Column("url_path", sa.String(255), nullable=True),
        sa.Column("title_img01", sa.String(500), nullable=True, server_default=""),
        sa.Column("enabled", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("published_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.Column("sort_num", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_app_alias", "content", ["app_id", "alias"], unique=False)
    op.create_index("ix_content_app_type", "content", ["app_id", "type"], unique=False)


def downgrade() -> None:
    for name in (
        "content", "push_tasks", "push_templates", "push_audience_tokens", "push_tokens",
        "push_audiences", "push_configs", "api_partner_conf", "system_configs",
        "comments", "post_tags", "posts", "tags", "users",
    ):
        op.drop_table(name)
