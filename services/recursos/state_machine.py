"""Dispute state machine implementation."""

from typing import Dict, FrozenSet, List, NamedTuple, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session
from common.db import utcnow
from common.enums import (
    AcaoHistorico,
    AcaoRecurso,
    LEGACY_STATUSES,
    Papel,
    StatusRecurso,
)
from common.exceptions import ConflictError, InvalidStateError, ValidationError
from services.recursos.models import Recurso, RecursoHistorico
import logging

logger = logging.getLogger(__name__)


class TransitionRule(NamedTuple):
    """One row of the transition table."""

    from_statuses: FrozenSet[StatusRecurso]
    to_status: StatusRecurso
    acao_historico: AcaoHistorico


class StateMachineError(InvalidStateError):
    """Raised when an invalid state transition is attempted."""

    pass


class RecursoStateMachine:
    """Enforces valid state transitions for disputes and writes the audit trail."""

    TRANSITIONS: Dict[AcaoRecurso, TransitionRule] = {
        # Operator receives the dispute
        AcaoRecurso.RECEBER: TransitionRule(
            frozenset({StatusRecurso.PENDENTE}),
            StatusRecurso.EM_ANALISE_OPERADORA,
            AcaoHistorico.STATUS_ALTERADO,
        ),
        # Final decision, directly or after an opinion
        AcaoRecurso.DEFERIR: TransitionRule(
            frozenset({StatusRecurso.EM_ANALISE_OPERADORA, StatusRecurso.PARECER_EMITIDO}),
            StatusRecurso.DEFERIDO,
            AcaoHistorico.DECISAO_FINAL,
        ),
        AcaoRecurso.INDEFERIR: TransitionRule(
            frozenset({StatusRecurso.EM_ANALISE_OPERADORA, StatusRecurso.PARECER_EMITIDO}),
            StatusRecurso.INDEFERIDO,
            AcaoHistorico.DECISAO_FINAL,
        ),
        # Audit cycle; a new cycle may start after an opinion was emitted
        AcaoRecurso.SOLICITAR_PARECER: TransitionRule(
            frozenset({StatusRecurso.EM_ANALISE_OPERADORA, StatusRecurso.PARECER_EMITIDO}),
            StatusRecurso.SOLICITADO_PARECER,
            AcaoHistorico.PARECER_SOLICITADO,
        ),
        AcaoRecurso.INICIAR_ANALISE_AUDITOR: TransitionRule(
            frozenset({StatusRecurso.SOLICITADO_PARECER}),
            StatusRecurso.EM_ANALISE_AUDITOR,
            AcaoHistorico.STATUS_ALTERADO,
        ),
        AcaoRecurso.EMITIR_PARECER: TransitionRule(
            frozenset({StatusRecurso.EM_ANALISE_AUDITOR}),
            StatusRecurso.PARECER_EMITIDO,
            AcaoHistorico.PARECER_EMITIDO,
        ),
        # Legacy generic edit, restricted to these edges
        AcaoRecurso.ANALISAR_LEGADO: TransitionRule(
            frozenset({StatusRecurso.PENDENTE}),
            StatusRecurso.EM_ANALISE,
            AcaoHistorico.STATUS_ALTERADO,
        ),
        AcaoRecurso.DEFERIR_LEGADO: TransitionRule(
            frozenset({StatusRecurso.PENDENTE, StatusRecurso.EM_ANALISE}),
            StatusRecurso.DEFERIDO,
            AcaoHistorico.DECISAO_FINAL,
        ),
        AcaoRecurso.INDEFERIR_LEGADO: TransitionRule(
            frozenset({StatusRecurso.PENDENTE, StatusRecurso.EM_ANALISE}),
            StatusRecurso.INDEFERIDO,
            AcaoHistorico.DECISAO_FINAL,
        ),
    }

    # Legacy target status -> action; pendente has no edge and is always rejected
    LEGACY_ACTIONS: Dict[StatusRecurso, AcaoRecurso] = {
        StatusRecurso.EM_ANALISE: AcaoRecurso.ANALISAR_LEGADO,
        StatusRecurso.DEFERIDO: AcaoRecurso.DEFERIR_LEGADO,
        StatusRecurso.INDEFERIDO: AcaoRecurso.INDEFERIR_LEGADO,
    }

    @classmethod
    def can_transition(cls, from_status: StatusRecurso, to_status: StatusRecurso) -> bool:
        """Check if any action connects the two states."""
        return any(
            from_status in rule.from_statuses and rule.to_status == to_status
            for rule in cls.TRANSITIONS.values()
        )

    @classmethod
    def can_apply(cls, current_status: StatusRecurso, acao: AcaoRecurso) -> bool:
        return current_status in cls.TRANSITIONS[acao].from_statuses

    @classmethod
    def get_valid_actions(cls, current_status: StatusRecurso, include_legacy: bool = False) -> List[AcaoRecurso]:
        """Get all actions applicable from the current status."""
        legacy = set(cls.LEGACY_ACTIONS.values())
        return [
            acao
            for acao, rule in cls.TRANSITIONS.items()
            if current_status in rule.from_statuses and (include_legacy or acao not in legacy)
        ]

    @classmethod
    def get_valid_next_states(cls, current_status: StatusRecurso) -> List[StatusRecurso]:
        """Get all valid next states from current status."""
        next_states = []
        for rule in cls.TRANSITIONS.values():
            if current_status in rule.from_statuses and rule.to_status not in next_states:
                next_states.append(rule.to_status)
        return next_states

    @classmethod
    def legacy_action_for(cls, target_status: str) -> AcaoRecurso:
        """Map a legacy edit request onto the transition table."""
        try:
            target = StatusRecurso(target_status)
        except ValueError:
            target = None
        if target not in LEGACY_STATUSES:
            raise ValidationError(
                "Status inválido",
                errors=[f"status deve ser um de: {sorted(s.value for s in LEGACY_STATUSES)}"],
            )
        acao = cls.LEGACY_ACTIONS.get(target)
        if acao is None:
            raise StateMachineError(f"Cannot transition to {target.value} through the generic status edit")
        return acao

    @classmethod
    def transition(
        cls,
        db: Session,
        recurso: Recurso,
        acao: AcaoRecurso,
        realizado_por: Papel,
        usuario_id: Optional[int] = None,
        usuario_nome: Optional[str] = None,
        descricao: Optional[str] = None,
        fields: Optional[Dict] = None,
    ) -> RecursoHistorico:
        """
        Apply an action and record it in the audit trail.

        The status change is a conditional update on the status the caller saw,
        so a concurrent transition makes this one fail with ConflictError instead
        of silently overwriting it. Does not commit; the caller owns the transaction.

        Raises StateMachineError if the action is not valid from the current status.
        """
        rule = cls.TRANSITIONS[acao]
        current_status = StatusRecurso(recurso.status_recurso)

        if current_status not in rule.from_statuses:
            raise StateMachineError(
                f"Cannot {acao.value} from {current_status.value}. "
                f"Valid actions: {[a.value for a in cls.get_valid_actions(current_status)]}"
            )

        values = dict(fields or {})
        values.update(
            status_recurso=rule.to_status.value,
            versao=Recurso.versao + 1,
            updated_at=utcnow(),
        )
        result = db.execute(
            update(Recurso)
            .where(Recurso.id == recurso.id, Recurso.status_recurso == current_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Recurso {recurso.id} changed concurrently; {acao.value} expected {current_status.value}"
            )
            raise ConflictError(
                f"Recurso {recurso.id} foi alterado por outra operação. Atualize e tente novamente."
            )

        # Record transition
        entry = RecursoHistorico(
            recurso_id=recurso.id,
            acao=rule.acao_historico.value,
            status_anterior=current_status.value,
            status_novo=rule.to_status.value,
            realizado_por=realizado_por.value,
            usuario_id=usuario_id,
            usuario_nome=usuario_nome,
            descricao=descricao,
        )
        db.add(entry)
        db.flush()
        db.refresh(recurso)

        logger.info(
            f"Recurso {recurso.id}: {current_status.value} -> {rule.to_status.value} "
            f"({acao.value} by {realizado_por.value})"
        )
        return entry

    @classmethod
    def record_creation(
        cls,
        db: Session,
        recurso: Recurso,
        usuario_id: Optional[int] = None,
        usuario_nome: Optional[str] = None,
    ) -> RecursoHistorico:
        """Create the initial audit record of a new dispute."""
        entry = RecursoHistorico(
            recurso_id=recurso.id,
            acao=AcaoHistorico.RECURSO_CRIADO.value,
            status_anterior=None,
            status_novo=StatusRecurso.PENDENTE.value,
            realizado_por=Papel.CLINICA.value,
            usuario_id=usuario_id,
            usuario_nome=usuario_nome,
            descricao="Recurso de glosa criado e aguardando análise da operadora",
        )
        db.add(entry)
        return entry
