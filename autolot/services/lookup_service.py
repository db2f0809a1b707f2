"""Lookup-or-create for makes, models, tags, and features.

Race-safe: the row is inserted with ON CONFLICT DO NOTHING (PostgreSQL, SQLite)
or inside a SAVEPOINT that swallows the unique violation (other dialects), then
the id is selected. Concurrent callers resolving the same name always end up
with the same row. Names are matched exactly as given.
"""

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autolot.database.models import VehicleMake, VehicleModel, VehicleTag, VehicleFeature
from autolot.services.errors import ValidationError

LOOKUP_MODELS = {
    "make": VehicleMake,
    "model": VehicleModel,
    "tag": VehicleTag,
    "feature": VehicleFeature,
}

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def resolve(db: Session, kind: str, name: str, parent_id: int | None = None) -> int:
    """Return the id for ``name`` (scoped under ``parent_id`` for models), creating it if absent."""
    model = LOOKUP_MODELS[kind]
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{kind.capitalize()} name must be a non-empty string")
    if kind == "model" and parent_id is None:
        raise ValueError("Model lookups require the owning make id")

    values = {"name": name}
    conflict_cols = ["name"]
    if kind == "model":
        values["make_id"] = parent_id
        conflict_cols = ["make_id", "name"]

    existing = _select_id(db, model, values)
    if existing is not None:
        return existing

    insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if insert is not None:
        db.execute(insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_cols))
    else:
        try:
            with db.begin_nested():
                db.add(model(**values))
        except IntegrityError:
            # Another transaction created it first
            pass

    return _select_id(db, model, values)


def resolve_make(db: Session, name: str) -> int:
    return resolve(db, "make", name)


def resolve_model(db: Session, make_id: int, name: str) -> int:
    return resolve(db, "model", name, parent_id=make_id)


def resolve_tag(db: Session, name: str) -> int:
    return resolve(db, "tag", name)


def resolve_feature(db: Session, name: str) -> int:
    return resolve(db, "feature", name)


def _select_id(db: Session, model, values: dict) -> int | None:
    stmt = select(model.id)
    for column, value in values.items():
        stmt = stmt.where(getattr(model, column) == value)
    return db.execute(stmt).scalar_one_or_none()
