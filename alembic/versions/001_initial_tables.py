"""Initial fee ledger schema and seed SuperAdmin

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from src.core.auth.password import hash_password

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    # Document sequences table
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_document_sequences"),
        sa.UniqueConstraint("prefix", "year", name="uq_document_sequence_prefix_year"),
    )

    # Audit logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])

    # Grades and students (owned by the student records service)
    op.create_table(
        "grades",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_grades"),
        sa.UniqueConstraint("code", name="uq_grades_code"),
    )

    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("grade_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_students"),
        sa.ForeignKeyConstraint(
            ["grade_id"], ["grades.id"], name="fk_students_grade_id_grades"
        ),
    )
    op.create_index("ix_students_student_number", "students", ["student_number"], unique=True)
    op.create_index("ix_students_grade_id", "students", ["grade_id"])
    op.create_index("ix_students_status", "students", ["status"])

    # Academic years
    op.create_table(
        "academic_years",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_academic_years"),
        sa.UniqueConstraint("name", name="uq_academic_years_name"),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_academic_years_created_by_id_users"
        ),
    )
    op.create_index("ix_academic_years_is_current", "academic_years", ["is_current"])

    # Discount rules
    op.create_table(
        "discount_rules",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("value_type", sa.String(20), nullable=False),
        sa.Column("value", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_discount_rules"),
        sa.UniqueConstraint("name", name="uq_discount_rules_name"),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_discount_rules_created_by_id_users"
        ),
    )

    # Fee catalog
    op.create_table(
        "fee_catalog_entries",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="termly"),
        sa.Column("grade_id", sa.BigInteger(), nullable=True),
        sa.Column("academic_year_id", sa.BigInteger(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("due_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_fee_catalog_entries"),
        sa.ForeignKeyConstraint(
            ["grade_id"], ["grades.id"], name="fk_fee_catalog_entries_grade_id_grades"
        ),
        sa.ForeignKeyConstraint(
            ["academic_year_id"],
            ["academic_years.id"],
            name="fk_fee_catalog_entries_academic_year_id_academic_years",
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_fee_catalog_entries_created_by_id_users"
        ),
        sa.CheckConstraint("amount >= 0", name="ck_fee_catalog_entries_amount_non_negative"),
    )
    op.create_index("ix_fee_catalog_entries_name", "fee_catalog_entries", ["name"])
    op.create_index("ix_fee_catalog_entries_grade_id", "fee_catalog_entries", ["grade_id"])
    op.create_index(
        "ix_fee_catalog_entries_academic_year_id", "fee_catalog_entries", ["academic_year_id"]
    )
    op.create_index("ix_fee_catalog_entries_is_active", "fee_catalog_entries", ["is_active"])

    # Student fee ledger
    op.create_table(
        "student_fee_ledger_entries",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("entry_number", sa.String(50), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("fee_catalog_entry_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year_id", sa.BigInteger(), nullable=False),
        sa.Column("principal_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("final_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("discount_rule_id", sa.BigInteger(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_student_fee_ledger_entries"),
        sa.ForeignKeyConstraint(
            ["student_id"], ["students.id"], name="fk_student_fee_ledger_entries_student_id_students"
        ),
        sa.ForeignKeyConstraint(
            ["fee_catalog_entry_id"],
            ["fee_catalog_entries.id"],
            name="fk_student_fee_ledger_entries_fee_catalog_entry_id_fee_catalog_entries",
        ),
        sa.ForeignKeyConstraint(
            ["academic_year_id"],
            ["academic_years.id"],
            name="fk_student_fee_ledger_entries_academic_year_id_academic_years",
        ),
        sa.ForeignKeyConstraint(
            ["discount_rule_id"],
            ["discount_rules.id"],
            name="fk_student_fee_ledger_entries_discount_rule_id_discount_rules",
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_student_fee_ledger_entries_created_by_id_users"
        ),
        sa.UniqueConstraint(
            "student_id",
            "fee_catalog_entry_id",
            "academic_year_id",
            name="uq_student_fee_ledger_entries_assignment",
        ),
        sa.CheckConstraint(
            "principal_amount >= 0", name="ck_student_fee_ledger_entries_principal_non_negative"
        ),
        sa.CheckConstraint(
            "discount_amount >= 0 AND discount_amount <= principal_amount",
            name="ck_student_fee_ledger_entries_discount_within_principal",
        ),
    )
    op.create_index(
        "ix_student_fee_ledger_entries_entry_number",
        "student_fee_ledger_entries",
        ["entry_number"],
        unique=True,
    )
    for column in ("student_id", "fee_catalog_entry_id", "academic_year_id", "due_date", "status"):
        op.create_index(
            f"ix_student_fee_ledger_entries_{column}", "student_fee_ledger_entries", [column]
        )

    # Fee payments (append-only)
    op.create_table(
        "fee_payments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("ledger_entry_id", sa.BigInteger(), nullable=False),
        sa.Column("receipt_number", sa.String(50), nullable=False),
        sa.Column("external_reference", sa.String(100), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("cheque_number", sa.String(50), nullable=True),
        sa.Column("cheque_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("recorded_by_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_fee_payments"),
        sa.ForeignKeyConstraint(
            ["ledger_entry_id"],
            ["student_fee_ledger_entries.id"],
            name="fk_fee_payments_ledger_entry_id_student_fee_ledger_entries",
        ),
        sa.ForeignKeyConstraint(
            ["recorded_by_id"], ["users.id"], name="fk_fee_payments_recorded_by_id_users"
        ),
        sa.UniqueConstraint("external_reference", name="uq_fee_payments_external_reference"),
        sa.CheckConstraint("amount > 0", name="ck_fee_payments_amount_positive"),
    )
    op.create_index(
        "ix_fee_payments_receipt_number", "fee_payments", ["receipt_number"], unique=True
    )
    op.create_index("ix_fee_payments_ledger_entry_id", "fee_payments", ["ledger_entry_id"])

    # Seed SuperAdmin
    op.execute(
        sa.text(
            """
            INSERT INTO users (email, password_hash, full_name, role, is_active, created_at, updated_at)
            VALUES (
                'admin@school.com',
                :password_hash,
                'System Administrator',
                'SuperAdmin',
                true,
                now(),
                now()
            )
            """
        ).bindparams(password_hash=hash_password("Admin123!"))
    )


def downgrade() -> None:
    op.drop_table("fee_payments")
    op.drop_table("student_fee_ledger_entries")
    op.drop_table("fee_catalog_entries")
    op.drop_table("discount_rules")
    op.drop_table("academic_years")
    op.drop_table("students")
    op.drop_table("grades")
    op.drop_table("audit_logs")
    op.drop_table("document_sequences")
    op.drop_table("users")
