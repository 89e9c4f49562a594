from __future__ import annotations

from sqlalchemy import CheckConstraint

from batchcodes.db.models import Base, Code, CodeBatch, CodeExport  # noqa: F401


def test_all_tables_registered() -> None:
    assert set(Base.metadata.tables) == {"code_batches", "codes", "code_exports"}


def test_check_constraints_are_named() -> None:
    names = {
        constraint.name
        for table in Base.metadata.tables.values()
        for constraint in table.constraints
        if isinstance(constraint, CheckConstraint)
    }

    assert {
        "ck_code_batches_status",
        "ck_code_batches_quantity_positive",
        "ck_code_batches_code_length_positive",
        "ck_code_batches_generated_count_bounds",
        "ck_codes_status",
    } <= names


def test_codes_reference_batches() -> None:
    foreign_keys = list(Base.metadata.tables["codes"].c.batch_id.foreign_keys)
    assert [fk.target_fullname for fk in foreign_keys] == ["code_batches.id"]
    assert not Base.metadata.tables["code_exports"].foreign_keys
