"""Dispute workflow - executes the transitions of a recurso de glosa.

The workflow:
- Validates input before anything is written
- Applies transitions through the state machine (audit trail included)
- Mutates the billing ledger through LedgerItemRepository
- Queues notifications for the next responsible party

Ownership is checked by the role façades; every method here receives a dispute
the caller is already allowed to act on. Nothing here commits: the façade wraps
each call in one transaction.
"""

from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
from common import config
from common.db import utcnow
from common.enums import AcaoRecurso, Papel, StatusRecurso, TERMINAL_STATUSES
from common.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from common.identity import AuditorActor, ClinicaActor, OperadoraActor
from services.ledger.repository import LedgerItemRepository, SqlLedgerItemRepository
from services.recursos import notifications
from services.recursos.models import Auditor, Recurso, RecursoDocumento, RecursoItem, RecursoParecer
from services.recursos.schemas import ParecerCreate, RecursoCreate
from services.recursos.state_machine import RecursoStateMachine, StateMachineError
from services.recursos.validator import require, validate_recurso_create
import logging

logger = logging.getLogger(__name__)


def compute_valor_guia(itens, guia_valor_total) -> Decimal:
    """Sum of the disputed items, or the whole guia when none were singled out."""
    if itens:
        return sum((Decimal(item.valor_total) for item in itens), Decimal("0"))
    return Decimal(guia_valor_total or 0)


class RecursoWorkflow:
    """Orchestrates dispute transitions and their side effects."""

    def __init__(self, db: Session, ledger: Optional[LedgerItemRepository] = None):
        self.db = db
        self.ledger = ledger or SqlLedgerItemRepository(db)

    # Validation runs before the façade opens its transaction

    @staticmethod
    def validate_create(payload: RecursoCreate) -> List[str]:
        result = validate_recurso_create(payload)
        if not result.is_valid:
            raise ValidationError("Campos obrigatórios não preenchidos ou inválidos", errors=result.errors)
        for warning in result.warnings:
            logger.warning(f"Recurso for guia {payload.guia_id}: {warning}")
        return result.warnings

    @staticmethod
    def validate_deny(motivo: Optional[str]) -> None:
        require("Motivo da negativa é obrigatório", motivo=motivo)

    @staticmethod
    def validate_request_opinion(auditor_id: Optional[int]) -> None:
        require("ID do auditor é obrigatório", auditor_id=auditor_id)

    @staticmethod
    def validate_opinion(payload: ParecerCreate) -> None:
        require(
            "Parecer técnico e recomendação são obrigatórios",
            parecer_tecnico=payload.parecer_tecnico,
            recomendacao=payload.recomendacao,
        )

    def create(self, payload: RecursoCreate, actor: ClinicaActor) -> Recurso:
        """
        Create a dispute in pendente state.

        Disputed children are flagged glosado in the ledger; a child that cannot
        be located is logged and skipped, the dispute still commits.
        """
        lote = self.ledger.get_lote(payload.lote_id)
        if lote is None or lote.clinica_id != actor.clinica_id:
            raise NotFoundError("Lote", payload.lote_id)
        if not lote.operadora_registro_ans:
            raise InvalidStateError(f"Lote {lote.id} não possui operadora associada")

        guia = self.ledger.get_guia(payload.guia_id)
        if guia is None or guia.lote_id != lote.id:
            raise NotFoundError("Guia", payload.guia_id)

        if not config.ALLOW_DUPLICATE_RECURSO:
            self._ensure_no_open_recurso(guia.id)

        now = utcnow()
        recurso = Recurso(
            guia_id=guia.id,
            lote_id=lote.id,
            clinica_id=payload.clinica_id,
            operadora_registro_ans=lote.operadora_registro_ans,
            justificativa=payload.justificativa.strip(),
            motivos_glosa=[m.model_dump() for m in payload.motivos_glosa],
            valor_guia=compute_valor_guia(payload.itens, guia.valor_total),
            status_recurso=StatusRecurso.PENDENTE.value,
            data_envio_clinica=now,
            usuario_clinica_id=actor.usuario_id,
        )
        self.db.add(recurso)
        self.db.flush()  # Get ID without committing

        for item in payload.itens:
            self.db.add(
                RecursoItem(
                    recurso_id=recurso.id,
                    item_id=item.item_id,
                    tipo_item=item.tipo_item.value,
                    codigo_item=item.codigo_item,
                    descricao_item=item.descricao_item,
                    quantidade=item.quantidade,
                    valor_unitario=item.valor_unitario,
                    valor_total=item.valor_total,
                )
            )

        for doc in payload.documentos:
            self.db.add(
                RecursoDocumento(
                    recurso_id=recurso.id,
                    tipo_documento=doc.tipo,
                    nome_original=doc.nome_original,
                    tamanho_arquivo=doc.tamanho,
                    enviado_por=Papel.CLINICA.value,
                    usuario_id=actor.usuario_id,
                )
            )

        RecursoStateMachine.record_creation(self.db, recurso, actor.usuario_id, actor.usuario_nome)

        for item in payload.itens:
            ledger_item = self.ledger.mark_glosado(guia.id, item.codigo_item)
            if ledger_item is None:
                logger.warning(
                    f"Ledger item {item.codigo_item} not found under guia {guia.id}; "
                    f"recurso {recurso.id} recorded without flagging it"
                )

        notifications.notify_operadora_recurso_criado(self.db, recurso)
        self.db.flush()

        logger.info(f"Recurso {recurso.id} created for guia {guia.id} (valor {recurso.valor_guia})")
        return recurso

    def receive(self, recurso: Recurso, actor: OperadoraActor) -> Recurso:
        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.RECEBER,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            "Recurso recebido pela operadora",
            fields={
                "data_recebimento_operadora": utcnow(),
                "usuario_operadora_id": actor.usuario_id,
            },
        )
        return recurso

    def approve(self, recurso: Recurso, actor: OperadoraActor, observacoes: Optional[str] = None) -> Recurso:
        """Final approval: the guia is paid."""
        descricao = "Recurso aprovado."
        if observacoes:
            descricao += f" {observacoes.strip()}"
        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.DEFERIR,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            descricao,
            fields={"data_decisao_final": utcnow()},
        )
        self._pay_guia(recurso)
        notifications.notify_clinica_decisao(self.db, recurso, deferido=True)
        return recurso

    def deny(self, recurso: Recurso, actor: OperadoraActor, motivo: str) -> Recurso:
        motivo = motivo.strip()
        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.INDEFERIR,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            f"Recurso negado. Motivo: {motivo}",
            fields={"data_decisao_final": utcnow()},
        )
        notifications.notify_clinica_decisao(self.db, recurso, deferido=False, motivo=motivo)
        return recurso

    def request_opinion(
        self,
        recurso: Recurso,
        actor: OperadoraActor,
        auditor_id: int,
        observacoes: Optional[str] = None,
    ) -> Recurso:
        """Delegate to an active auditor; the auditor receives it in the same step."""
        auditor = (
            self.db.query(Auditor)
            .filter(Auditor.id == auditor_id, Auditor.ativo.is_(True))
            .first()
        )
        if auditor is None:
            raise NotFoundError("Auditor", auditor_id)

        now = utcnow()
        descricao = f"Parecer solicitado ao auditor {auditor.nome}."
        if observacoes:
            descricao += f" {observacoes.strip()}"

        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.SOLICITAR_PARECER,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            descricao,
            fields={"auditor_id": auditor.id, "data_solicitacao_parecer": now},
        )
        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.INICIAR_ANALISE_AUDITOR,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            f"Recurso encaminhado para análise do auditor {auditor.nome}",
            fields={"data_recebimento_auditor": now},
        )
        notifications.notify_auditor_parecer_solicitado(self.db, recurso, auditor.id)
        return recurso

    def emit_opinion(self, recurso: Recurso, actor: AuditorActor, payload: ParecerCreate) -> RecursoParecer:
        """Record the auditor's opinion; the only way out of em_analise_auditor."""
        if recurso.auditor_id != actor.auditor_id:
            raise NotFoundError("Recurso", recurso.id)

        current_status = StatusRecurso(recurso.status_recurso)
        if not RecursoStateMachine.can_apply(current_status, AcaoRecurso.EMITIR_PARECER):
            raise StateMachineError(
                f"Cannot {AcaoRecurso.EMITIR_PARECER.value} from {current_status.value}"
            )

        parecer = RecursoParecer(
            recurso_id=recurso.id,
            auditor_id=actor.auditor_id,
            parecer_tecnico=payload.parecer_tecnico.strip(),
            recomendacao=payload.recomendacao.strip(),
            valor_recomendado=payload.valor_recomendado,
            justificativa_tecnica=payload.justificativa_tecnica,
            cids_analisados=payload.cids_analisados,
            procedimentos_analisados=payload.procedimentos_analisados,
            tempo_analise_minutos=payload.tempo_analise_minutos,
        )
        self.db.add(parecer)

        RecursoStateMachine.transition(
            self.db,
            recurso,
            AcaoRecurso.EMITIR_PARECER,
            Papel.AUDITOR,
            actor.auditor_id,
            actor.nome,
            f"Parecer técnico emitido com recomendação: {parecer.recomendacao}",
            fields={"data_emissao_parecer": utcnow()},
        )
        notifications.notify_operadora_parecer_emitido(self.db, recurso, parecer.recomendacao)
        return parecer

    def update_status_legacy(
        self,
        recurso: Recurso,
        actor: OperadoraActor,
        status: str,
        observacao: Optional[str] = None,
    ) -> Recurso:
        """
        Generic status edit kept for older clients.

        Only the legacy edges of the transition table are reachable here and the
        auditor path is never touched.
        """
        acao = RecursoStateMachine.legacy_action_for(status)
        target = RecursoStateMachine.TRANSITIONS[acao].to_status

        fields = {}
        if target in TERMINAL_STATUSES:
            fields["data_decisao_final"] = utcnow()

        RecursoStateMachine.transition(
            self.db,
            recurso,
            acao,
            Papel.OPERADORA,
            actor.usuario_id,
            actor.usuario_nome,
            (observacao or "").strip() or f"Status alterado para {target.value}",
            fields=fields,
        )
        if target == StatusRecurso.DEFERIDO:
            self._pay_guia(recurso)
        return recurso

    def _pay_guia(self, recurso: Recurso) -> None:
        if self.ledger.mark_paid(recurso.guia_id) is None:
            # The guia is referenced by FK, so this means the ledger was tampered with
            raise NotFoundError("Guia", recurso.guia_id)

    def _ensure_no_open_recurso(self, guia_id: int) -> None:
        open_recurso = (
            self.db.query(Recurso.id)
            .filter(
                Recurso.guia_id == guia_id,
                Recurso.status_recurso.notin_([s.value for s in TERMINAL_STATUSES]),
            )
            .first()
        )
        if open_recurso is not None:
            raise ConflictError(f"Já existe um recurso em aberto para a guia {guia_id}")
