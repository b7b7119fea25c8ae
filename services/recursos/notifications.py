"""Notification fan-out for dispute transitions.

Rows are written in the session of the triggering transition, so they commit
or roll back together with it. Delivery (push, e-mail) is not handled here.
"""

from typing import Optional
from sqlalchemy.orm import Session
from common.enums import Papel, TipoNotificacao
from services.recursos.models import Recurso, RecursoNotificacao
import logging

logger = logging.getLogger(__name__)


def clinica_link(recurso_id: int) -> str:
    return f"/recursos-glosas/{recurso_id}"


def auditor_link(recurso_id: int) -> str:
    return f"/auditor/recursos/{recurso_id}"


def notify(
    db: Session,
    recurso: Recurso,
    destinatario_tipo: Papel,
    destinatario_id,
    tipo: TipoNotificacao,
    titulo: str,
    mensagem: str,
    link: Optional[str] = None,
) -> RecursoNotificacao:
    """Queue one notification row for the next responsible party."""
    notificacao = RecursoNotificacao(
        recurso_id=recurso.id,
        destinatario_tipo=destinatario_tipo.value,
        destinatario_id=str(destinatario_id) if destinatario_id is not None else None,
        tipo=tipo.value,
        titulo=titulo,
        mensagem=mensagem,
        link=link,
    )
    db.add(notificacao)
    logger.debug(f"Notification {tipo.value} for {destinatario_tipo.value} {destinatario_id} on recurso {recurso.id}")
    return notificacao


def notify_clinica_decisao(db: Session, recurso: Recurso, deferido: bool, motivo: Optional[str] = None) -> RecursoNotificacao:
    if deferido:
        titulo = "Recurso Aprovado"
        mensagem = "Seu recurso de glosa foi aprovado pela operadora. A guia será paga."
    else:
        titulo = "Recurso Negado"
        mensagem = "Seu recurso de glosa foi negado pela operadora."
        if motivo:
            mensagem += f" Motivo: {motivo}"
    return notify(
        db,
        recurso,
        Papel.CLINICA,
        recurso.clinica_id,
        TipoNotificacao.DECISAO_FINAL,
        titulo,
        mensagem,
        clinica_link(recurso.id),
    )


def notify_auditor_parecer_solicitado(db: Session, recurso: Recurso, auditor_id: int) -> RecursoNotificacao:
    return notify(
        db,
        recurso,
        Papel.AUDITOR,
        auditor_id,
        TipoNotificacao.PARECER_SOLICITADO,
        "Nova Solicitação de Parecer",
        "A operadora solicitou seu parecer técnico sobre um recurso de glosa.",
        auditor_link(recurso.id),
    )


def notify_operadora_parecer_emitido(db: Session, recurso: Recurso, recomendacao: str) -> RecursoNotificacao:
    # Addressed to the operator user who received the dispute, or the operator itself
    destinatario_id = recurso.usuario_operadora_id or recurso.operadora_registro_ans
    return notify(
        db,
        recurso,
        Papel.OPERADORA,
        destinatario_id,
        TipoNotificacao.PARECER_EMITIDO,
        "Parecer Técnico Emitido",
        f"O auditor emitiu parecer técnico sobre o recurso. Recomendação: {recomendacao}",
        clinica_link(recurso.id),
    )


def notify_operadora_recurso_criado(db: Session, recurso: Recurso) -> RecursoNotificacao:
    return notify(
        db,
        recurso,
        Papel.OPERADORA,
        recurso.operadora_registro_ans,
        TipoNotificacao.RECURSO_CRIADO,
        "Novo Recurso de Glosa",
        f"A clínica enviou um recurso de glosa para a guia {recurso.guia_id}.",
        clinica_link(recurso.id),
    )
