"""
ORM guard for append-only tables.

Posted invoices, payments, adjustments and audit entries are historical
facts; corrections go through compensating entries, never UPDATE/DELETE.
"""

from sqlalchemy import event

from poultry_backend.app.core.exceptions import ImmutableRecordError


def append_only(model):
    """Class decorator rejecting flushes that update or delete a row of `model`."""

    @event.listens_for(model, "before_update")
    def _reject_update(mapper, connection, target):
        raise ImmutableRecordError(model.__name__, getattr(target, "id", None))

    @event.listens_for(model, "before_delete")
    def _reject_delete(mapper, connection, target):
        raise ImmutableRecordError(model.__name__, getattr(target, "id", None))

    return model
