"""Infrastructure layer: SQLAlchemy storage and the text-blob codec.

The cascade engine talks to the database only through
:class:`~relcascade.infrastructure.database.store.Store`.
"""
