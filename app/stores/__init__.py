"""
Document stores: path-addressed collections of records keyed by string id.

Every store works on the caller's session and never commits; services own the
unit of work so that stock updates and sale records land in one commit.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from app.events import COLLECTION_SIGNALS, mark_changed
from app.exceptions import BusinessLogicError
from app.models import Product, Promotion, Sale

# Managed by the database, never written through a store
_READ_ONLY_FIELDS = frozenset({'id', 'created_at', 'updated_at'})


class DocumentStore:
    """Generic get/list/save/delete/subscribe over one model."""

    model = None
    collection = None

    def __init__(self, session: Session):
        self.session = session
        self._columns = {
            col.key: col for col in inspect(self.model).columns
            if col.key not in _READ_ONLY_FIELDS
        }

    @property
    def fields(self) -> frozenset:
        return frozenset(self._columns)

    def _query(self):
        return self.session.query(self.model)

    def list(self) -> List[Any]:
        return self._query().order_by(self.model.id).all()

    def get(self, doc_id: str):
        return self.session.get(self.model, doc_id)

    def get_many(self, doc_ids: Iterable[str], for_update: bool = False) -> Dict[str, Any]:
        """Fetch several records at once, optionally locking them FOR UPDATE."""
        ids = list(set(doc_ids))
        if not ids:
            return {}
        query = self._query().filter(self.model.id.in_(ids))
        if for_update:
            query = query.with_for_update()
        return {obj.id: obj for obj in query.all()}

    def exists(self, doc_id: str) -> bool:
        return self.get(doc_id) is not None

    def _check_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        clean = {k: v for k, v in fields.items() if k != 'id'}
        unknown = set(clean) - set(self._columns)
        if unknown:
            raise BusinessLogicError(
                f'Unknown fields for {self.collection}: {", ".join(sorted(unknown))}'
            )
        return clean

    def _column_default(self, key: str):
        default = self._columns[key].default
        if default is None:
            return None
        if default.is_callable:
            return default.arg(None)
        return default.arg

    def save(self, doc_id: str, fields: Dict[str, Any], merge: bool = True):
        """
        Create or update the record ``doc_id``.

        With ``merge=True`` only the given fields change; with ``merge=False``
        the record is replaced and omitted fields return to their defaults.
        """
        clean = self._check_fields(fields)
        obj = self.get(doc_id)
        if obj is None:
            obj = self.model(id=doc_id)
            self.session.add(obj)
        elif not merge:
            for key in self._columns:
                if key not in clean:
                    setattr(obj, key, self._column_default(key))

        for key, value in clean.items():
            setattr(obj, key, value)

        # Sessions run with autoflush off; flush so later get() calls see the row
        self.session.flush()
        mark_changed(self.session, self.collection, doc_id)
        return obj

    def delete(self, doc_id: str) -> bool:
        obj = self.get(doc_id)
        if obj is None:
            return False
        self.session.delete(obj)
        self.session.flush()
        mark_changed(self.session, self.collection, doc_id)
        return True

    @classmethod
    def subscribe(cls, on_change: Callable[[frozenset], None]) -> Callable[[], None]:
        """
        Call ``on_change(ids)`` after every commit that touched this collection.

        Returns the function that removes the subscription.
        """
        signal = COLLECTION_SIGNALS[cls.collection]

        def receiver(sender, ids=frozenset(), **kwargs):
            on_change(ids)

        signal.connect(receiver, weak=False)
        return lambda: signal.disconnect(receiver)


class ProductStore(DocumentStore):
    model = Product
    collection = 'products'

    def search(self, category: Optional[str] = None, text: Optional[str] = None) -> List[Product]:
        query = self._query()
        if category:
            query = query.filter(Product.category == category)
        if text:
            like = f'%{text.lower()[:100]}%'
            query = query.filter(
                Product.name.ilike(like) | Product.id.ilike(like)
            )
        return query.order_by(Product.name).all()


class PromotionStore(DocumentStore):
    model = Promotion
    collection = 'promotions'


class SaleStore(DocumentStore):
    model = Sale
    collection = 'sales'

    def list(self) -> List[Sale]:
        return self._query().order_by(Sale.timestamp.desc(), Sale.id.desc()).all()

    def by_status(self, status) -> List[Sale]:
        return self._query().filter(Sale.status == status).order_by(Sale.timestamp.desc()).all()


__all__ = ['DocumentStore', 'ProductStore', 'PromotionStore', 'SaleStore']
