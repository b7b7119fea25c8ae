"""Ledger item access used by the dispute workflow.

The workflow only ever flips payment status, so it depends on this narrow
interface rather than on the ledger tables directly.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from sqlalchemy.orm import Session
from common import config
from common.db import utcnow
from common.enums import StatusPagamento, TipoItem
from common.exceptions import ConflictError
from services.ledger.models import Guia, ItemFinanceiro, LoteFinanceiro
import logging

logger = logging.getLogger(__name__)


class LedgerItemRepository(ABC):
    """Lookup and payment-status mutation of billing items."""

    @abstractmethod
    def get_lote(self, lote_id: int) -> Optional[LoteFinanceiro]:
        """Return the batch or None."""

    @abstractmethod
    def get_guia(self, guia_id: int) -> Optional[Guia]:
        """Return the item only if it exists and is a guia."""

    @abstractmethod
    def find_children(self, parent_id: int, codigo_item: str) -> List[ItemFinanceiro]:
        """Non-guia children of a guia carrying the given code, in insertion order."""

    @abstractmethod
    def mark_paid(self, item_id: int) -> Optional[ItemFinanceiro]:
        """Flip an item to pago. Idempotent; returns None if the item is absent."""

    def find_child(self, parent_id: int, codigo_item: str) -> Optional[ItemFinanceiro]:
        """
        Resolve a disputed code to one child of the guia.

        Codes are only assumed unique within one guia. When they are not, the
        first row by insertion order wins, unless strict resolution is enabled.
        """
        candidates = self.find_children(parent_id, codigo_item)
        if not candidates:
            return None
        if len(candidates) > 1:
            if config.LEDGER_STRICT_ITEM_CODES:
                raise ConflictError(
                    f"Código {codigo_item} aparece {len(candidates)} vezes na guia {parent_id}"
                )
            logger.warning(
                f"Ambiguous ledger code {codigo_item} under guia {parent_id}: "
                f"{len(candidates)} matches, using item {candidates[0].id}"
            )
        return candidates[0]

    def mark_glosado(self, parent_id: int, codigo_item: str) -> Optional[ItemFinanceiro]:
        """Flag the matching child as glosado. Returns None on a lookup miss."""
        item = self.find_child(parent_id, codigo_item)
        if item is None:
            return None
        item.status_pagamento = StatusPagamento.GLOSADO.value
        return item


class SqlLedgerItemRepository(LedgerItemRepository):
    """Ledger repository bound to the caller's session (and therefore its transaction)."""

    def __init__(self, db: Session):
        self.db = db

    def get_lote(self, lote_id: int) -> Optional[LoteFinanceiro]:
        return self.db.query(LoteFinanceiro).filter(LoteFinanceiro.id == lote_id).first()

    def get_guia(self, guia_id: int) -> Optional[Guia]:
        return self.db.query(Guia).filter(Guia.id == guia_id).first()

    def find_children(self, parent_id: int, codigo_item: str) -> List[ItemFinanceiro]:
        return (
            self.db.query(ItemFinanceiro)
            .filter(
                ItemFinanceiro.parent_id == parent_id,
                ItemFinanceiro.codigo_item == codigo_item,
                ItemFinanceiro.tipo_item != TipoItem.GUIA.value,
            )
            .order_by(ItemFinanceiro.id)
            .all()
        )

    def mark_paid(self, item_id: int) -> Optional[ItemFinanceiro]:
        item = self.db.query(ItemFinanceiro).filter(ItemFinanceiro.id == item_id).first()
        if item is None:
            return None
        if item.status_pagamento != StatusPagamento.PAGO.value:
            item.status_pagamento = StatusPagamento.PAGO.value
            item.data_pagamento = utcnow()
        return item
