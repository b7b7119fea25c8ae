"""FastAPI routes for the operator side of glosa disputes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from common.db import get_db
from common.identity import OperadoraActor, get_operadora_actor
from services.recursos.facades import OperadoraFacade
from services.recursos.schemas import (
    AuditorResponse,
    DecisaoRequest,
    Envelope,
    MensagemCreate,
    MensagemResponse,
    NegativaRequest,
    RecursoDetalheResponse,
    RecursoResponse,
    SolicitarParecerRequest,
    StatusUpdateRequest,
)

router = APIRouter(prefix="/operadora", tags=["recursos-operadora"])


def _recurso_envelope(recurso, message: str) -> Envelope[RecursoResponse]:
    return Envelope[RecursoResponse](data=RecursoResponse.model_validate(recurso), message=message)


@router.get("/recursos", response_model=Envelope[List[RecursoResponse]])
def list_recursos(
    status_recurso: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """List disputes addressed to the operator."""
    recursos = OperadoraFacade(db, actor).list(status_recurso)
    return Envelope[List[RecursoResponse]](data=[RecursoResponse.model_validate(r) for r in recursos])


@router.get("/recursos/{recurso_id}", response_model=Envelope[RecursoDetalheResponse])
def get_recurso(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    return Envelope[RecursoDetalheResponse](data=OperadoraFacade(db, actor).detail(recurso_id))


@router.get("/recursos/{recurso_id}/proximas-acoes", response_model=Envelope[Dict[str, Any]])
def get_next_actions(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Actions the operator can take from the dispute's current status."""
    return Envelope[Dict[str, Any]](data=OperadoraFacade(db, actor).next_actions(recurso_id))


@router.post("/recursos/{recurso_id}/receber", response_model=Envelope[RecursoResponse])
def receive_recurso(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    recurso = OperadoraFacade(db, actor).receive(recurso_id)
    return _recurso_envelope(recurso, "Recurso recebido para análise")


@router.post("/recursos/{recurso_id}/aprovar", response_model=Envelope[RecursoResponse])
def approve_recurso(
    recurso_id: int,
    body: Optional[DecisaoRequest] = None,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Approve the dispute and pay the guia."""
    observacoes = body.observacoes if body else None
    recurso = OperadoraFacade(db, actor).approve(recurso_id, observacoes)
    return _recurso_envelope(recurso, "Recurso aprovado com sucesso")


@router.post("/recursos/{recurso_id}/negar", response_model=Envelope[RecursoResponse])
def deny_recurso(
    recurso_id: int,
    body: NegativaRequest,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    recurso = OperadoraFacade(db, actor).deny(recurso_id, body.motivo)
    return _recurso_envelope(recurso, "Recurso negado")


@router.post("/recursos/{recurso_id}/solicitar-parecer", response_model=Envelope[RecursoResponse])
def request_opinion(
    recurso_id: int,
    body: SolicitarParecerRequest,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Delegate the dispute to an active auditor."""
    recurso = OperadoraFacade(db, actor).request_opinion(recurso_id, body.auditor_id, body.observacoes)
    return _recurso_envelope(recurso, "Parecer solicitado ao auditor")


@router.patch("/recursos/{recurso_id}/status", response_model=Envelope[RecursoResponse])
def update_recurso_status(
    recurso_id: int,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Generic status edit for older clients; restricted to the legacy transitions."""
    recurso = OperadoraFacade(db, actor).update_status(recurso_id, body.status, body.observacao)
    return _recurso_envelope(recurso, "Status atualizado")


@router.post("/recursos/{recurso_id}/mensagens", response_model=Envelope[MensagemResponse])
def send_message(
    recurso_id: int,
    body: MensagemCreate,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    message = OperadoraFacade(db, actor).send_message(recurso_id, body.mensagem, body.anexos)
    return Envelope[MensagemResponse](data=MensagemResponse.model_validate(message))


@router.get("/recursos/{recurso_id}/mensagens", response_model=Envelope[List[MensagemResponse]])
def list_messages(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Chat thread; auditor messages are marked read."""
    messages = OperadoraFacade(db, actor).list_messages(recurso_id)
    return Envelope[List[MensagemResponse]](data=[MensagemResponse.model_validate(m) for m in messages])


@router.get("/auditores", response_model=Envelope[List[AuditorResponse]])
def list_auditores(
    db: Session = Depends(get_db),
    actor: OperadoraActor = Depends(get_operadora_actor),
):
    """Active auditors available for opinion requests."""
    auditores = OperadoraFacade(db, actor).list_auditores()
    return Envelope[List[AuditorResponse]](data=[AuditorResponse.model_validate(a) for a in auditores])
