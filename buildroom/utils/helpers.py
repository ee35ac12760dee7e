"""Shared service-layer helpers.

get_or_raise:        primary-key lookup that raises NotFoundError
commit_or_rollback:  the single commit point of every mutating service call
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from buildroom.core.exceptions import NotFoundError
from buildroom.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None, *, for_update=False):
    """Fetch a model instance by primary key or raise ``NotFoundError``.

    ``for_update`` takes a row lock (``SELECT ... FOR UPDATE``) on backends
    that support it, so concurrent transitions on the same row serialize and
    the loser re-reads the winner's state.
    """
    label = label or model.__name__
    obj = db.session.get(model, pk, with_for_update=for_update or None)
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def commit_or_rollback(on_integrity_error: Exception | None = None) -> None:
    """Commit the current session; roll back everything on failure.

    The state change and its activity row live in the same session, so they
    are committed or discarded together.

    IntegrityError → ``on_integrity_error`` when given, else re-raised
    Other SQLAlchemyError → logged with traceback and re-raised
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        if on_integrity_error is not None:
            raise on_integrity_error from exc
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise
