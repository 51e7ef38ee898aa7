"""
Ops Console — Database Models
Console-owned schema (Base) plus the read-only lending-core tables the reports
aggregate (ReportBase).
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, DateTime, Uuid,
    JSON, ForeignKey, Index, UniqueConstraint, Table, Column,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from opsconsole.database import Base, ReportBase


def _utcnow() -> datetime:
    """Naive UTC now, matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    MODERATOR = "MODERATOR"


class PostStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ConfigType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"


class PushPlatform(str, enum.Enum):
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"
    ALL = "all"


class PushTaskStatus(str, enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ══════════════════════════════════════════════════════════════════════
#  USERS
# ══════════════════════════════════════════════════════════════════════

class User(Base):
    """Console operator account."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_users_role", "role"),
    )


# ══════════════════════════════════════════════════════════════════════
#  POSTS / TAGS / COMMENTS
# ══════════════════════════════════════════════════════════════════════

post_tags = Table(
    "post_tags",
    Base.metadata,
    Column("post_id", Uuid, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#1890ff")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    posts: Mapped[list["Post"]] = relationship(secondary=post_tags, back_populates="tags")


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PostStatus.DRAFT.value)
    views: Mapped[int] = mapped_column(Integer, default=0)
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    author: Mapped["User"] = relationship(lazy="selectin")
    tags: Mapped[list["Tag"]] = relationship(secondary=post_tags, back_populates="posts", lazy="selectin")
    comments: Mapped[list["Comment"]] = relationship(
        back_populates="post",
        cascade="all, delete-orphan",
        order_by="Comment.created_at.desc()",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_posts_status", "status"),
        Index("ix_posts_author", "author_id"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    post_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    post: Mapped["Post"] = relationship(back_populates="comments")
    author: Mapped["User"] = relationship(lazy="selectin")


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM CONFIG — key/value settings + per-user preferences
# ══════════════════════════════════════════════════════════════════════

class SystemConfig(Base):
    __tablename__ = "system_configs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), default=ConfigType.STRING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


# ══════════════════════════════════════════════════════════════════════
#  API PARTNERS — loan-partner integration records
# ══════════════════════════════════════════════════════════════════════

class ApiPartnerConfig(Base):
    """One partner integration. secret_key is Fernet-encrypted at rest."""
    __tablename__ = "api_partner_conf"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    app_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    partner_logo: Mapped[str] = mapped_column(String(500), nullable=True)
    partner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    partner_description: Mapped[str] = mapped_column(Text, nullable=True)
    partner_phone: Mapped[str] = mapped_column(String(50), nullable=True)
    partner_api: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[int] = mapped_column(Integer, nullable=True)
    secret_key: Mapped[str] = mapped_column(Text, nullable=False)
    default_amount: Mapped[float] = mapped_column(Float, nullable=True)
    default_loan_days: Mapped[int] = mapped_column(Integer, nullable=True)
    default_interest_rate: Mapped[float] = mapped_column(Float, nullable=True)
    extend: Mapped[str] = mapped_column(Text, nullable=True)
    ios_download_url: Mapped[str] = mapped_column(String(500), nullable=True)
    android_download_url: Mapped[str] = mapped_column(String(500), nullable=True)
    admittance_url: Mapped[str] = mapped_column(String(500), nullable=True)
    credential_stuffing_url: Mapped[str] = mapped_column(String(500), nullable=True)
    push_user_data_url: Mapped[str] = mapped_column(String(500), nullable=True)
    credit_data_url: Mapped[str] = mapped_column(String(500), nullable=True)
    loan_product_url: Mapped[str] = mapped_column(String(500), nullable=True)
    loan_contract_url: Mapped[str] = mapped_column(String(500), nullable=True)
    submit_loan_url: Mapped[str] = mapped_column(String(500), nullable=True)
    loan_preview_url: Mapped[str] = mapped_column(String(500), nullable=True)
    bank_list_url: Mapped[str] = mapped_column(String(500), nullable=True)
    bind_bank_url: Mapped[str] = mapped_column(String(500), nullable=True)
    set_default_bank_url: Mapped[str] = mapped_column(String(500), nullable=True)
    pre_bind: Mapped[str] = mapped_column(String(500), nullable=True)
    get_bank: Mapped[str] = mapped_column(String(500), nullable=True)
    user_loan_amt: Mapped[str] = mapped_column(String(500), nullable=True)
    order_status_url: Mapped[str] = mapped_column(String(500), nullable=True)
    repay_plan_url: Mapped[str] = mapped_column(String(500), nullable=True)
    repay_details_url: Mapped[str] = mapped_column(String(500), nullable=True)
    contract_sign_url: Mapped[str] = mapped_column(String(500), nullable=True)
    query_user_url: Mapped[str] = mapped_column(String(500), nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=1)
    is_head: Mapped[int] = mapped_column(Integer, default=0)
    add_bank: Mapped[int] = mapped_column(Integer, default=1)
    is_sign: Mapped[int] = mapped_column(Integer, default=1)
    is_reload: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_api_partner_conf_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  PUSH — configs, audiences, tokens, templates, tasks
# ══════════════════════════════════════════════════════════════════════

class PushConfig(Base):
    """FCM credentials for one app/platform. server_key and service_account are encrypted."""
    __tablename__ = "push_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    app_id: Mapped[str] = mapped_column(String(100), nullable=False)
    platform: Mapped[str] = mapped_column(String(20), default=PushPlatform.ALL.value)
    project_id: Mapped[str] = mapped_column(String(255), nullable=False)
    server_key: Mapped[str] = mapped_column(Text, nullable=True)
    service_account: Mapped[str] = mapped_column(Text, nullable=True)
    vapid_key: Mapped[str] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("app_id", "platform", name="uq_push_configs_app_platform"),
    )


push_audience_tokens = Table(
    "push_audience_tokens",
    Base.metadata,
    Column("audience_id", Integer, ForeignKey("push_audiences.id", ondelete="CASCADE"), primary_key=True),
    Column("token_id", Integer, ForeignKey("push_tokens.id", ondelete="CASCADE"), primary_key=True),
)


class PushAudience(Base):
    __tablename__ = "push_audiences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active, inactive
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class PushToken(Base):
    """Device registration token. Belongs to zero or more audiences."""
    __tablename__ = "push_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    tags: Mapped[list] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active, revoked
    last_active_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    audiences: Mapped[list["PushAudience"]] = relationship(secondary=push_audience_tokens, lazy="selectin")

    __table_args__ = (
        Index("ix_push_tokens_status", "status"),
    )


class PushTemplate(Base):
    __tablename__ = "push_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_key: Mapped[str] = mapped_column(String(100), nullable=False)
    push_config_id: Mapped[int] = mapped_column(Integer, ForeignKey("push_configs.id", ondelete="CASCADE"), nullable=False)
    push_audience_id: Mapped[int] = mapped_column(Integer, ForeignKey("push_audiences.id", ondelete="SET NULL"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data_payload: Mapped[dict] = mapped_column(JSON, nullable=True)
    click_action: Mapped[str] = mapped_column(String(500), nullable=True)
    image_url: Mapped[str] = mapped_column(String(500), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    push_config: Mapped["PushConfig"] = relationship(lazy="selectin")
    push_audience: Mapped["PushAudience"] = relationship(lazy="selectin")

    __table_args__ = (
        UniqueConstraint("template_key", "push_config_id", name="uq_push_templates_key_config"),
        Index("ix_push_templates_enabled", "enabled"),
    )


class PushTask(Base):
    """One send of a template to its audience. Status only moves via explicit execute."""
    __tablename__ = "push_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    push_template_id: Mapped[int] = mapped_column(Integer, ForeignKey("push_templates.id", ondelete="SET NULL"), nullable=True)
    push_config_id: Mapped[int] = mapped_column(Integer, ForeignKey("push_configs.id", ondelete="SET NULL"), nullable=True)
    push_audience_id: Mapped[int] = mapped_column(Integer, ForeignKey("push_audiences.id", ondelete="SET NULL"), nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PushTaskStatus.DRAFT.value)
    schedule_time: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    push_template: Mapped["PushTemplate"] = relationship(lazy="selectin")
    push_config: Mapped["PushConfig"] = relationship(lazy="selectin")
    push_audience: Mapped["PushAudience"] = relationship(lazy="selectin")
    creator: Mapped["User"] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_push_tasks_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CONTENT — news categories (type 1) and articles (type 2)
# ══════════════════════════════════════════════════════════════════════

class Content(Base):
    __tablename__ = "content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    app_id: Mapped[int] = mapped_column(Integer, default=15)
    parent_id: Mapped[int] = mapped_column(Integer, default=10)
    type: Mapped[int] = mapped_column(Integer, default=2)  # 1 = category, 2 = article
    title: Mapped[str] = mapped_column(String(255), default="")
    subtitle: Mapped[str] = mapped_column(String(255), default="")
    author: Mapped[str] = mapped_column(String(100), default="")
    content: Mapped[str] = mapped_column(Text, default="")
    alias: Mapped[str] = mapped_column(String(255), default="")
    url_path: Mapped[str] = mapped_column(String(255), nullable=True)
    title_img01: Mapped[str] = mapped_column(String(500), default="")
    enabled: Mapped[int] = mapped_column(Integer, default=1)
    published_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    sort_num: Mapped[int] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_content_app_alias", "app_id", "alias"),
        Index("ix_content_app_type", "app_id", "type"),
    )


# ══════════════════════════════════════════════════════════════════════
#  REPORTING SOURCES — lending-core tables, read-only from the console
# ══════════════════════════════════════════════════════════════════════

class AdjustEventRecord(ReportBase):
    __tablename__ = "adjust_event_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    event_name: Mapped[str] = mapped_column(String(100), nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class AdjustEventConfig(ReportBase):
    __tablename__ = "adjust_event_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_name: Mapped[str] = mapped_column(String(100), nullable=True)
    is_enabled: Mapped[int] = mapped_column(Integer, default=1)


class AppsflyerCallback(ReportBase):
    __tablename__ = "appsflyer_callback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appsflyer_id: Mapped[str] = mapped_column(String(100), nullable=True)
    customer_user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    app_id: Mapped[str] = mapped_column(String(100), nullable=True)
    media_source: Mapped[str] = mapped_column(String(100), nullable=True)
    af_c_id: Mapped[str] = mapped_column(String(100), nullable=True)
    event_name: Mapped[str] = mapped_column(String(100), nullable=True)
    callback_status: Mapped[str] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserLoginRecord(ReportBase):
    __tablename__ = "user_login_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    is_new_user: Mapped[int] = mapped_column(Integer, default=0)
    request_time: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserOcrRecord(ReportBase):
    __tablename__ = "user_ocr_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    event_name: Mapped[str] = mapped_column(String(100), nullable=True)
    recognition_status: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserInfo(ReportBase):
    __tablename__ = "user_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserUploadRecord(ReportBase):
    __tablename__ = "user_upload_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserCredit(ReportBase):
    __tablename__ = "user_credit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    credit_status: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserLoan(ReportBase):
    __tablename__ = "user_loans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    status: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserRating(ReportBase):
    __tablename__ = "user_rating"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=True)
    rating_level: Mapped[str] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
