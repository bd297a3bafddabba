"""
deals/service.py -- Deal use cases with authorization applied.

Every public method takes the request's Caller as its first argument and asks
auth/policy.py before reading or writing. The store below does no checks of
its own, so this class is the only supported way to touch deals from the API.

Returned Deal objects are full domain values. Field-level redaction for the
caller's role (hiding deal_value from non-admins) happens at the response
boundary via auth.policy.project_for_role().
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import Caller
from auth.policy import Capability, can_delete_annotation, can_read_single, can_write_sensitive_field, require
from core.errors import AccessDenied, NotFound
from deals.models import Deal, DealNote, DealStage, DealType, Page
from deals.store import DealStore

logger = logging.getLogger("dealpipeline.deals")

MAX_PAGE_SIZE = 100
# Keeps page * size inside SQLite's 64-bit OFFSET
MAX_PAGE = 100_000


class DealService:
    def __init__(self, store: DealStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_deal(self, caller: Caller, deal_id: int) -> Deal:
        """Return one deal. Only its owner or an admin may read it."""
        deal = self._load(deal_id)
        if not can_read_single(deal, caller):
            logger.info("Read of deal %d denied for %s", deal_id, caller.username)
            raise AccessDenied("You do not own this deal.")
        return deal

    def list_deals(
        self,
        caller: Caller,
        stage: Optional[DealStage] = None,
        sector: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[Deal]:
        """List every deal, filtered by stage and/or sector.

        Open to any caller. Sensitive fields are stripped at the response
        boundary, not here.
        """
        return self._page(page, size, stage=stage, sector=sector)

    def list_all_deals(
        self,
        caller: Caller,
        stage: Optional[DealStage] = None,
        sector: Optional[str] = None,
        page: int = 0,
        size: int = 10,
    ) -> Page[Deal]:
        """Admin-only listing, always returned with sensitive fields."""
        require(caller, Capability.LIST_ALL_RESOURCES, message="Admin access required.")
        return self._page(page, size, stage=stage, sector=sector)

    def my_deals(self, caller: Caller, page: int = 0, size: int = 20) -> Page[Deal]:
        return self._page(page, size, owner_id=caller.user_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_deal(
        self,
        caller: Caller,
        title: str,
        sector: Optional[str] = None,
        deal_type: Optional[DealType] = None,
        deal_value: Optional[float] = None,
    ) -> Deal:
        """Create a deal owned by the caller, starting at LEAD.

        A deal_value from a non-admin is dropped without error.
        """
        if deal_value is not None and not can_write_sensitive_field(caller):
            logger.info("Discarding deal_value supplied by non-admin %s", caller.username)
            deal_value = None
        deal_id = self.store.create_deal(
            Deal(
                title=title,
                sector=sector,
                deal_type=deal_type,
                stage=DealStage.LEAD,
                deal_value=deal_value,
                owner_id=caller.user_id,
            )
        )
        logger.info("Deal %d created by %s", deal_id, caller.username)
        return self._load(deal_id)

    def update_deal(
        self,
        caller: Caller,
        deal_id: int,
        title: Optional[str] = None,
        sector: Optional[str] = None,
        deal_type: Optional[DealType] = None,
        stage: Optional[DealStage] = None,
    ) -> Deal:
        """Update non-sensitive fields. Owner or admin only.

        Only arguments that are not None are written. Any stage may follow any
        other.
        """
        deal = self._load(deal_id)
        require(caller, Capability.MODIFY_RESOURCE, deal.owner_id, message="Not allowed to update this deal.")
        changes = {
            key: value
            for key, value in (("title", title), ("sector", sector), ("deal_type", deal_type), ("stage", stage))
            if value is not None
        }
        if changes:
            self.store.update_deal(deal_id, **changes)
        return self._load(deal_id)

    def update_deal_value(self, caller: Caller, deal_id: int, deal_value: Optional[float]) -> Deal:
        """Set or clear the sensitive deal_value. Admin only."""
        require(caller, Capability.WRITE_SENSITIVE_FIELD, message="Admin access required.")
        self._load(deal_id)
        self.store.update_deal(deal_id, deal_value=deal_value)
        logger.info("Deal %d value updated by %s", deal_id, caller.username)
        return self._load(deal_id)

    def delete_deal(self, caller: Caller, deal_id: int) -> None:
        require(caller, Capability.DELETE_RESOURCE, message="Admin access required.")
        if not self.store.delete_deal(deal_id):
            raise NotFound(f"Deal not found: {deal_id}")
        logger.info("Deal %d deleted by %s", deal_id, caller.username)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def add_note(self, caller: Caller, deal_id: int, text: str) -> Deal:
        """Append a note authored by the caller. Any authenticated caller may comment."""
        self._load(deal_id)
        self.store.add_note(deal_id, DealNote.new(caller.user_id, text))
        return self._load(deal_id)

    def delete_note(self, caller: Caller, deal_id: int, note_id: str) -> Deal:
        """Remove a note. Its author or an admin only."""
        deal = self._load(deal_id)
        note = next((n for n in deal.notes if n.note_id == note_id), None)
        if note is None:
            raise NotFound(f"Note not found: {note_id}")
        if not can_delete_annotation(note, caller):
            logger.info("Delete of note %s on deal %d denied for %s", note_id, deal_id, caller.username)
            raise AccessDenied("Not allowed to delete this note.")
        if not self.store.remove_note(deal_id, note_id):
            # Removed by a concurrent request between the read and the delete.
            raise NotFound(f"Note not found: {note_id}")
        return self._load(deal_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, deal_id: int) -> Deal:
        deal = self.store.get_deal(deal_id)
        if deal is None:
            raise NotFound(f"Deal not found: {deal_id}")
        return deal

    def _page(self, page: int, size: int, **filters) -> Page[Deal]:
        page = min(max(page, 0), MAX_PAGE)
        size = min(max(size, 1), MAX_PAGE_SIZE)
        items, total = self.store.list_deals(offset=page * size, limit=size, **filters)
        return Page(items=items, page=page, size=size, total=total)
