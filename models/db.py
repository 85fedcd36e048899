from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def status_type(enum_cls, length=20):
    # Stores the enum *value* ("paid"), rejects anything outside the enum
    return db.Enum(
        enum_cls,
        native_enum=False,
        validate_strings=True,
        length=length,
        values_callable=lambda e: [m.value for m in e],
    )
