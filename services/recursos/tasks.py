"""Celery tasks for dispute housekeeping."""

from typing import Optional
from common.celery_app import celery_app
from common.db import SessionLocal, transaction
from common.enums import StatusPagamento, TERMINAL_STATUSES
from services.ledger.repository import SqlLedgerItemRepository
from services.recursos.models import Recurso
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="reconciliar_itens_glosados")
def reconciliar_itens_glosados(recurso_id: Optional[int] = None):
    """
    Re-flag disputed ledger items that creation could not mark glosado.

    Runs over every open dispute, or only the given one. Items whose ledger
    child still cannot be found are counted and left for the next run.
    """
    db = SessionLocal()
    try:
        query = db.query(Recurso).filter(
            Recurso.status_recurso.notin_([s.value for s in TERMINAL_STATUSES])
        )
        if recurso_id is not None:
            query = query.filter(Recurso.id == recurso_id)
        recursos = query.order_by(Recurso.id).all()

        ledger = SqlLedgerItemRepository(db)
        marcados = 0
        ausentes = 0

        with transaction(db):
            for recurso in recursos:
                for item in recurso.itens:
                    ledger_item = ledger.find_child(recurso.guia_id, item.codigo_item)
                    if ledger_item is None:
                        ausentes += 1
                        continue
                    if ledger_item.status_pagamento == StatusPagamento.GLOSADO.value:
                        continue
                    ledger.mark_glosado(recurso.guia_id, item.codigo_item)
                    marcados += 1
                    logger.info(f"Ledger item {ledger_item.id} flagged glosado for recurso {recurso.id}")

        if ausentes:
            logger.warning(f"Reconciliation left {ausentes} disputed items without a ledger match")

        return {
            "status": "success",
            "recursos": len(recursos),
            "itens_marcados": marcados,
            "itens_ausentes": ausentes,
        }

    except Exception as e:
        logger.error(f"Error reconciling disputed items: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
