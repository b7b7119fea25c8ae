"""FastAPI routes for the clinic side of glosa disputes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from common.db import get_db
from common.identity import ClinicaActor, get_clinica_actor
from services.recursos.facades import ClinicaFacade
from services.recursos.schemas import Envelope, RecursoCreate, RecursoDetalheResponse, RecursoResponse

router = APIRouter(prefix="/clinica/recursos", tags=["recursos-clinica"])


@router.post("/", response_model=Envelope[RecursoResponse], status_code=status.HTTP_201_CREATED)
def create_recurso(
    payload: RecursoCreate,
    db: Session = Depends(get_db),
    actor: ClinicaActor = Depends(get_clinica_actor),
):
    """Open a dispute against the glosa of one guia."""
    recurso = ClinicaFacade(db, actor).create(payload)
    return Envelope[RecursoResponse](
        data=RecursoResponse.model_validate(recurso),
        message="Recurso de glosa enviado com sucesso",
    )


@router.get("/", response_model=Envelope[List[RecursoResponse]])
def list_recursos(
    status_recurso: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: ClinicaActor = Depends(get_clinica_actor),
):
    """List the clinic's disputes, newest first."""
    recursos = ClinicaFacade(db, actor).list(status_recurso)
    return Envelope[List[RecursoResponse]](data=[RecursoResponse.model_validate(r) for r in recursos])


@router.get("/guia/{guia_id}", response_model=Envelope[Optional[RecursoResponse]])
def get_recurso_by_guia(
    guia_id: int,
    db: Session = Depends(get_db),
    actor: ClinicaActor = Depends(get_clinica_actor),
):
    """Latest dispute for a guia, or null when it was never disputed."""
    recurso = ClinicaFacade(db, actor).latest_for_guia(guia_id)
    return Envelope[Optional[RecursoResponse]](
        data=RecursoResponse.model_validate(recurso) if recurso else None
    )


@router.get("/{recurso_id}", response_model=Envelope[RecursoDetalheResponse])
def get_recurso(
    recurso_id: int,
    db: Session = Depends(get_db),
    actor: ClinicaActor = Depends(get_clinica_actor),
):
    return Envelope[RecursoDetalheResponse](data=ClinicaFacade(db, actor).detail(recurso_id))
