import logging
from typing import Optional

from storefront import auth
from storefront.config import Settings
from storefront.errors import AuthError
from storefront.stores import MergedOrder, ReplicatingStore

logger = logging.getLogger(__name__)


class AdminReadService:
    """Order listing for the shop owner, merged from every store."""

    def __init__(self, store: ReplicatingStore, settings: Settings):
        self.store = store
        self.settings = settings

    def login(self, password: Optional[str]) -> dict:
        try:
            auth.check_password(self.settings, password)
        except AuthError:
            logger.warning("admin login rejected")
            raise
        listing = self.listing()
        listing["token"] = auth.issue_token(self.settings)
        return listing

    def listing(self) -> dict:
        orders = self.store.read_all()
        return {
            "success": True,
            "orders": [self._present(m) for m in orders],
            "hasDatabase": self.store.has_database,
        }

    def _present(self, merged: MergedOrder) -> dict:
        record = merged.order.to_record()
        record["amount"] = float(merged.order.amount)
        record["source"] = merged.origin
        if not self.settings.admin_expose_client_secret:
            record.pop("clientSecret", None)
        return record
