"""Operator/auditor side-channel chat scoped to one dispute.

Chat does not depend on the dispute status and never touches the aggregate,
so each call commits on its own.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from common.db import transaction, utcnow
from common.enums import Papel
from services.recursos.models import Recurso, RecursoMensagem
from services.recursos.validator import require
import logging

logger = logging.getLogger(__name__)

CHAT_PARTIES = (Papel.OPERADORA, Papel.AUDITOR)


def _other_party(papel: Papel) -> Papel:
    return Papel.AUDITOR if papel == Papel.OPERADORA else Papel.OPERADORA


def send_message(
    db: Session,
    recurso: Recurso,
    remetente: Papel,
    remetente_id: Optional[int],
    remetente_nome: Optional[str],
    mensagem: Optional[str],
    anexos: Optional[List[Dict[str, Any]]] = None,
) -> RecursoMensagem:
    """Post a message on the dispute thread."""
    if remetente not in CHAT_PARTIES:
        raise ValueError(f"{remetente.value} cannot post on the dispute chat")
    require("Mensagem é obrigatória", mensagem=mensagem)

    with transaction(db):
        message = RecursoMensagem(
            recurso_id=recurso.id,
            tipo_remetente=remetente.value,
            remetente_id=remetente_id,
            remetente_nome=remetente_nome,
            mensagem=mensagem.strip(),
            anexos=anexos or [],
            lida=False,
        )
        db.add(message)

    db.refresh(message)
    logger.info(f"Chat message {message.id} on recurso {recurso.id} from {remetente.value} {remetente_id}")
    return message


def list_messages(db: Session, recurso: Recurso, leitor: Papel) -> List[RecursoMensagem]:
    """
    Return the thread in posting order.

    Unread messages from the other party are marked read as a side effect.
    """
    with transaction(db):
        unread = (
            db.query(RecursoMensagem)
            .filter(
                RecursoMensagem.recurso_id == recurso.id,
                RecursoMensagem.tipo_remetente == _other_party(leitor).value,
                RecursoMensagem.lida.is_(False),
            )
            .all()
        )
        now = utcnow()
        for message in unread:
            message.lida = True
            message.data_leitura = now

    if unread:
        logger.debug(f"Marked {len(unread)} messages read on recurso {recurso.id} for {leitor.value}")

    return (
        db.query(RecursoMensagem)
        .filter(RecursoMensagem.recurso_id == recurso.id)
        .order_by(RecursoMensagem.id)
        .all()
    )
