"""Storefront domain services: products, FAQs and contact submissions.

Each one only binds a collection name and its query shapes onto
CollectionService.
"""

import logging
from typing import Any, Dict, List, Optional

from storesync.core.services.collection_service import CollectionService
from storesync.core.services.data_access_service import DataAccessService
from storesync.domain.models.common import Record
from storesync.domain.models.query import ASCENDING, DESCENDING, Query

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
# Highest code point in the Unicode private use area; closes a prefix range
PREFIX_RANGE_END = "\uf8ff"


class ProductService(CollectionService[Record]):
    def __init__(self, data_access: DataAccessService):
        super().__init__(data_access, collection="products", item_prefix="product")

    async def get_all_products(self, limit: Optional[int] = None) -> List[Record]:
        query = Query().order("createdAt", DESCENDING)
        if limit:
            query = query.limited(limit)
            return await self.query(query, signature=f"all|limit={limit}")
        return await self.list_all(query)

    async def get_product_by_id(self, product_id: str) -> Record:
        return await self.get(product_id)

    async def search_products(self, term: str) -> List[Record]:
        """Prefix match on name; document stores have no full-text search."""
        query = (Query()
                 .where("name", ">=", term)
                 .where("name", "<=", term + PREFIX_RANGE_END)
                 .limited(SEARCH_LIMIT))
        return await self.query(query, signature=f"search:{term}")

    async def get_products_by_category(self, category: str) -> List[Record]:
        query = Query().where("category", "==", category).order("createdAt", DESCENDING)
        return await self.query(query, signature=f"category:{category}")

    async def create_product(self, data: Dict[str, Any]) -> Record:
        return await self.create(data)

    async def update_product(self, product_id: str, updates: Dict[str, Any]) -> Record:
        return await self.update(product_id, updates)

    async def delete_product(self, product_id: str) -> Record:
        return await self.delete(product_id)


class FaqService(CollectionService[Record]):
    def __init__(self, data_access: DataAccessService):
        super().__init__(data_access, collection="faqs", item_prefix="faq")

    async def get_all_faqs(self) -> List[Record]:
        return await self.list_all(Query().order("order", ASCENDING))

    async def vote_faq(self, faq_id: str, vote_type: str) -> None:
        if vote_type not in ("up", "down"):
            raise ValueError(f"vote_type must be 'up' or 'down', got {vote_type!r}")
        await self.increment(faq_id, "upvotes" if vote_type == "up" else "downvotes")

    async def create_faq(self, data: Dict[str, Any]) -> Record:
        return await self.create({**data, "upvotes": 0, "downvotes": 0})

    async def update_faq(self, faq_id: str, updates: Dict[str, Any]) -> Record:
        return await self.update(faq_id, updates)

    async def delete_faq(self, faq_id: str) -> Record:
        return await self.delete(faq_id)


class ContactService(CollectionService[Record]):
    """Contact submissions hold personal data, so list reads are never cached."""

    def __init__(self, data_access: DataAccessService):
        super().__init__(data_access, collection="contacts", item_prefix="contact", cache_lists=False)

    async def submit_contact(self, data: Dict[str, Any]) -> Record:
        return await self.create({**data, "status": "new"})

    async def get_all_contacts(self) -> List[Record]:
        return await self.list_all(Query().order("createdAt", DESCENDING))

    async def update_contact_status(self, contact_id: str, status: str) -> Record:
        return await self.update(contact_id, {"status": status})

    async def delete_contact(self, contact_id: str) -> Record:
        return await self.delete(contact_id)
