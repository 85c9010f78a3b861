"""
Change notification for the document collections.

Stores record the ids they touch on the SQLAlchemy session; once the session
commits, one blinker signal per collection is sent with those ids. A rollback
discards the pending notifications, so receivers only hear about confirmed
writes.

Receivers run after the transaction has ended and must not use the session
that sent the signal.
"""
import logging

from blinker import Namespace
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_signals = Namespace()

products_changed = _signals.signal('products-changed')
sales_changed = _signals.signal('sales-changed')
promotions_changed = _signals.signal('promotions-changed')

COLLECTION_SIGNALS = {
    'products': products_changed,
    'sales': sales_changed,
    'promotions': promotions_changed,
}

_PENDING_KEY = 'pos_pending_changes'


def mark_changed(session, collection: str, doc_id: str) -> None:
    """Remember that ``doc_id`` in ``collection`` changed in this session."""
    pending = session.info.setdefault(_PENDING_KEY, {})
    pending.setdefault(collection, set()).add(doc_id)


@event.listens_for(Session, 'after_commit')
def _dispatch_changes(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for collection, ids in pending.items():
        signal = COLLECTION_SIGNALS.get(collection)
        if signal is None:
            continue
        logger.debug(f"[EVENTS] {collection} changed: {sorted(ids)}")
        signal.send(collection, ids=frozenset(ids))


@event.listens_for(Session, 'after_rollback')
def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)
