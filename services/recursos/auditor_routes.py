"""FastAPI routes for auditors working on delegated disputes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from common.db import get_db
from common.identity import AuditorActor, get_auditor_actor
from services.recursos.facades import AuditorFacade
from services.recursos.schemas import (
    Envelope,
    MensagemCreate,
    MensagemResponse,
    ParecerCreate,
    ParecerResponse,
    RecursoDetalheResponse,
    RecursoResponse,
)

router = APIRouter(prefix="/auditor/recursos", tags=["recursos-auditor"])


@router.get("/", response_model=Envelope[List[RecursoResponse]])
def list_recursos(
    status_recurso: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: AuditorActor = Depends(get_auditor_actor),
):
    """Disputes bound to the calling auditor."""
    recursos = AuditorFacade(db, actor).list(status_recurso)
    return Envelope[List[RecursoResponse]](data=[RecursoResponse.model_validate(r) for r in recursos])


@router.get("/{recurso_id}", response_model=Envelope[RecursoDetalheResponse])
def get_recurso(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: AuditorActor = Depends(get_auditor_actor),
):
    return Envelope[RecursoDetalheResponse](data=AuditorFacade(db, actor).detail(recurso_id))


@router.post("/{recurso_id}/parecer", response_model=Envelope[ParecerResponse], status_code=status.HTTP_201_CREATED)
def emit_opinion(
    recurso_id: int,
    body: ParecerCreate,
    db: Session = Depends(get_db),
    actor: AuditorActor = Depends(get_auditor_actor),
):
    """Submit the technical opinion; returns the dispute to the operator."""
    parecer = AuditorFacade(db, actor).emit_opinion(recurso_id, body)
    return Envelope[ParecerResponse](
        data=ParecerResponse.model_validate(parecer),
        message="Parecer técnico emitido com sucesso",
    )


@router.post("/{recurso_id}/mensagens", response_model=Envelope[MensagemResponse])
def send_message(
    recurso_id: int,
    body: MensagemCreate,
    db: Session = Depends(get_db),
    actor: AuditorActor = Depends(get_auditor_actor),
):
    message = AuditorFacade(db, actor).send_message(recurso_id, body.mensagem, body.anexos)
    return Envelope[MensagemResponse](data=MensagemResponse.model_validate(message))


@router.get("/{recurso_id}/mensagens", response_model=Envelope[List[MensagemResponse]])
def list_messages(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: AuditorActor = Depends(get_auditor_actor),
):
    """Chat thread; operator messages are marked read."""
    messages = AuditorFacade(db, actor).list_messages(recurso_id)
    return Envelope[List[MensagemResponse]](data=[MensagemResponse.model_validate(m) for m in messages])
