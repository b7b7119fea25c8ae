"""Role-gated views over the dispute aggregate.

Each façade scopes every query by the caller's identity. A dispute outside that
scope is reported as not found, never as forbidden.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from sqlalchemy.orm import Session
from common.db import transaction
from common.enums import Papel, StatusRecurso
from common.exceptions import NotFoundError, ValidationError
from services.ledger.repository import LedgerItemRepository
from services.recursos import chat
from services.recursos.models import Auditor, Recurso, RecursoMensagem, RecursoParecer
from services.recursos.schemas import (
    DocumentoResponse,
    HistoricoResponse,
    MensagemResponse,
    ParecerCreate,
    ParecerResponse,
    RecursoCreate,
    RecursoDetalheResponse,
    RecursoItemResponse,
    RecursoResponse,
)
from services.recursos.state_machine import RecursoStateMachine
from services.recursos.workflow import RecursoWorkflow
import logging

logger = logging.getLogger(__name__)


def _status_filter(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    try:
        return StatusRecurso(status).value
    except ValueError:
        raise ValidationError("Status inválido", errors=[f"status desconhecido: {status}"])


def build_detalhe(
    recurso: Recurso,
    pareceres: Optional[List[RecursoParecer]] = None,
    mensagens: Optional[List[RecursoMensagem]] = None,
    parecer_anterior: Optional[RecursoParecer] = None,
) -> RecursoDetalheResponse:
    """Assemble the detail view; optional sections stay null unless the façade provides them."""
    base = RecursoResponse.model_validate(recurso).model_dump()
    return RecursoDetalheResponse(
        **base,
        itens=[RecursoItemResponse.model_validate(i) for i in recurso.itens],
        historico=[HistoricoResponse.model_validate(h) for h in recurso.historico],
        documentos=[DocumentoResponse.model_validate(d) for d in recurso.documentos],
        pareceres=[ParecerResponse.model_validate(p) for p in pareceres] if pareceres is not None else None,
        mensagens=[MensagemResponse.model_validate(m) for m in mensagens] if mensagens is not None else None,
        parecer_anterior=ParecerResponse.model_validate(parecer_anterior) if parecer_anterior else None,
    )


class _RecursoFacade(ABC):
    """Shared query plumbing; subclasses define the ownership predicate."""

    papel: Papel

    def __init__(self, db: Session, actor, ledger: Optional[LedgerItemRepository] = None):
        self.db = db
        self.actor = actor
        self.workflow = RecursoWorkflow(db, ledger)

    @abstractmethod
    def _scope(self, query):
        """Restrict a Recurso query to what the caller owns."""

    def _query(self):
        return self._scope(self.db.query(Recurso))

    def list(self, status: Optional[str] = None) -> List[Recurso]:
        query = self._query()
        status_value = _status_filter(status)
        if status_value:
            query = query.filter(Recurso.status_recurso == status_value)
        return query.order_by(Recurso.created_at.desc(), Recurso.id.desc()).all()

    def get(self, recurso_id: int) -> Recurso:
        recurso = self._query().filter(Recurso.id == recurso_id).first()
        if not recurso:
            raise NotFoundError("Recurso", recurso_id)
        return recurso


class ClinicaFacade(_RecursoFacade):
    """Clinic view: create disputes and read its own."""

    papel = Papel.CLINICA

    def _scope(self, query):
        return query.filter(Recurso.clinica_id == self.actor.clinica_id)

    def create(self, payload: RecursoCreate) -> Recurso:
        RecursoWorkflow.validate_create(payload)
        if payload.clinica_id != self.actor.clinica_id:
            raise NotFoundError("Lote", payload.lote_id)

        with transaction(self.db):
            recurso = self.workflow.create(payload, self.actor)
        self.db.refresh(recurso)
        return recurso

    def latest_for_guia(self, guia_id: int) -> Optional[Recurso]:
        return (
            self._query()
            .filter(Recurso.guia_id == guia_id)
            .order_by(Recurso.created_at.desc(), Recurso.id.desc())
            .first()
        )

    def detail(self, recurso_id: int) -> RecursoDetalheResponse:
        return build_detalhe(self.get(recurso_id))


class OperadoraFacade(_RecursoFacade):
    """Operator view: decide, delegate to auditors and talk to them."""

    papel = Papel.OPERADORA

    def _scope(self, query):
        return query.filter(Recurso.operadora_registro_ans == self.actor.registro_ans)

    def detail(self, recurso_id: int) -> RecursoDetalheResponse:
        recurso = self.get(recurso_id)
        # Chat is shown read-only here; listing it through the chat endpoint marks it read
        mensagens = list(recurso.mensagens) if recurso.auditor_id else None
        return build_detalhe(recurso, pareceres=list(recurso.pareceres), mensagens=mensagens)

    def next_actions(self, recurso_id: int) -> dict:
        recurso = self.get(recurso_id)
        current = StatusRecurso(recurso.status_recurso)
        return {
            "recurso_id": recurso.id,
            "status_recurso": current.value,
            "acoes": [a.value for a in RecursoStateMachine.get_valid_actions(current)],
            "proximos_status": [s.value for s in RecursoStateMachine.get_valid_next_states(current)],
        }

    def receive(self, recurso_id: int) -> Recurso:
        recurso = self.get(recurso_id)
        with transaction(self.db):
            self.workflow.receive(recurso, self.actor)
        return recurso

    def approve(self, recurso_id: int, observacoes: Optional[str] = None) -> Recurso:
        recurso = self.get(recurso_id)
        with transaction(self.db):
            self.workflow.approve(recurso, self.actor, observacoes)
        return recurso

    def deny(self, recurso_id: int, motivo: Optional[str]) -> Recurso:
        RecursoWorkflow.validate_deny(motivo)
        recurso = self.get(recurso_id)
        with transaction(self.db):
            self.workflow.deny(recurso, self.actor, motivo)
        return recurso

    def request_opinion(self, recurso_id: int, auditor_id: Optional[int], observacoes: Optional[str] = None) -> Recurso:
        RecursoWorkflow.validate_request_opinion(auditor_id)
        recurso = self.get(recurso_id)
        with transaction(self.db):
            self.workflow.request_opinion(recurso, self.actor, auditor_id, observacoes)
        return recurso

    def update_status(self, recurso_id: int, status: str, observacao: Optional[str] = None) -> Recurso:
        recurso = self.get(recurso_id)
        with transaction(self.db):
            self.workflow.update_status_legacy(recurso, self.actor, status, observacao)
        return recurso

    def list_auditores(self) -> List[Auditor]:
        return self.db.query(Auditor).filter(Auditor.ativo.is_(True)).order_by(Auditor.nome).all()

    def send_message(self, recurso_id: int, mensagem: Optional[str], anexos=None) -> RecursoMensagem:
        recurso = self.get(recurso_id)
        return chat.send_message(
            self.db, recurso, Papel.OPERADORA, self.actor.usuario_id, self.actor.usuario_nome, mensagem, anexos
        )

    def list_messages(self, recurso_id: int) -> List[RecursoMensagem]:
        return chat.list_messages(self.db, self.get(recurso_id), Papel.OPERADORA)


class AuditorFacade(_RecursoFacade):
    """Auditor view: only disputes bound to the calling auditor."""

    papel = Papel.AUDITOR

    def _scope(self, query):
        return query.filter(Recurso.auditor_id == self.actor.auditor_id)

    def detail(self, recurso_id: int) -> RecursoDetalheResponse:
        recurso = self.get(recurso_id)
        pareceres = list(recurso.pareceres)
        return build_detalhe(recurso, parecer_anterior=pareceres[-1] if pareceres else None)

    def emit_opinion(self, recurso_id: int, payload: ParecerCreate) -> RecursoParecer:
        RecursoWorkflow.validate_opinion(payload)
        recurso = self.get(recurso_id)
        with transaction(self.db):
            parecer = self.workflow.emit_opinion(recurso, self.actor, payload)
        self.db.refresh(parecer)
        return parecer

    def send_message(self, recurso_id: int, mensagem: Optional[str], anexos=None) -> RecursoMensagem:
        recurso = self.get(recurso_id)
        return chat.send_message(
            self.db, recurso, Papel.AUDITOR, self.actor.auditor_id, self.actor.nome, mensagem, anexos
        )

    def list_messages(self, recurso_id: int) -> List[RecursoMensagem]:
        return chat.list_messages(self.db, self.get(recurso_id), Papel.AUDITOR)
