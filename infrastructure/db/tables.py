"""
Relational schema (SQLAlchemy Core).

One table per aggregate plus the two favorites link tables. Lists and
slot maps are JSON columns; ids are UUIDs; timestamps are timezone-aware.
"""

from __future__ import annotations

import sqlalchemy as sa

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = sa.MetaData(naming_convention=NAMING_CONVENTION)

Timestamp = sa.DateTime(timezone=True)


users = sa.Table(
    "users",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("nickname", sa.String(80), nullable=False, unique=True),
    sa.Column("login", sa.String(80), nullable=False, unique=True),
    sa.Column("email", sa.String(320), nullable=False, unique=True),
    sa.Column("avatar", sa.Text, nullable=False, server_default=""),
    sa.Column("password", sa.LargeBinary, nullable=False),
    sa.Column("time_of_register", Timestamp, nullable=False),
    sa.Column("num_of_templates", sa.Integer, nullable=False, server_default="0"),
    sa.Column("num_of_readmes", sa.Integer, nullable=False, server_default="0"),
)

verifications = sa.Table(
    "verifications",
    metadata,
    sa.Column("email", sa.String(320), primary_key=True),
    sa.Column("login", sa.String(80), nullable=False),
    sa.Column("nickname", sa.String(80), nullable=False),
    sa.Column("password", sa.LargeBinary, nullable=False),
    sa.Column("code", sa.LargeBinary, nullable=False),
    sa.Column("expired_time", Timestamp, nullable=False),
    sa.Column("attempts", sa.Integer, nullable=False),
    sa.CheckConstraint("attempts >= 0", name="attempts_non_negative"),
)

templates = sa.Table(
    "templates",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    # the nil owner marks built-in templates, so no foreign key here
    sa.Column("owner_id", sa.Uuid, nullable=False, index=True),
    sa.Column("title", sa.String(80), nullable=False),
    sa.Column("image", sa.Text, nullable=False, server_default=""),
    sa.Column("description", sa.Text, nullable=False, server_default=""),
    sa.Column("text", sa.JSON, nullable=False),
    sa.Column("links", sa.JSON, nullable=False),
    sa.Column("widgets", sa.JSON, nullable=False),
    sa.Column("render_order", sa.JSON, nullable=False),
    sa.Column("likes", sa.Integer, nullable=False, server_default="0"),
    sa.Column("num_of_users", sa.Integer, nullable=False, server_default="0"),
    sa.Column("create_time", Timestamp, nullable=False),
    sa.Column("last_update_time", Timestamp, nullable=False),
    sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.true()),
)

widgets = sa.Table(
    "widgets",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("title", sa.String(120), nullable=False),
    sa.Column("image", sa.Text, nullable=False, server_default=""),
    sa.Column("description", sa.Text, nullable=False, server_default=""),
    sa.Column("type", sa.String(80), nullable=False, server_default=""),
    sa.Column("tags", sa.JSON, nullable=False),
    sa.Column("link", sa.Text, nullable=False, server_default=""),
    sa.Column("likes", sa.Integer, nullable=False, server_default="0"),
    sa.Column("num_of_users", sa.Integer, nullable=False, server_default="0"),
)

readmes = sa.Table(
    "readmes",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column(
        "owner_id",
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    sa.Column("template_id", sa.Uuid, nullable=False),
    sa.Column("title", sa.String(80), nullable=False),
    sa.Column("image", sa.Text, nullable=False, server_default=""),
    sa.Column("text", sa.JSON, nullable=False),
    sa.Column("links", sa.JSON, nullable=False),
    sa.Column("widgets", sa.JSON, nullable=False),
    sa.Column("render_order", sa.JSON, nullable=False),
    sa.Column("create_time", Timestamp, nullable=False),
    sa.Column("last_update_time", Timestamp, nullable=False),
)

favorite_templates = sa.Table(
    "favorite_templates",
    metadata,
    sa.Column(
        "template_id",
        sa.Uuid,
        sa.ForeignKey("templates.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    sa.Column(
        "user_id",
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

favorite_widgets = sa.Table(
    "favorite_widgets",
    metadata,
    sa.Column(
        "widget_id",
        sa.Uuid,
        sa.ForeignKey("widgets.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    sa.Column(
        "user_id",
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)
