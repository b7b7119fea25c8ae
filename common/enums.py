"""Enumerations for dispute workflow states and ledger types."""

from enum import Enum

# all the dispute statuses
class StatusRecurso(str, Enum):
    """Dispute (recurso de glosa) lifecycle states."""

    PENDENTE = "pendente"
    EM_ANALISE = "em_analise"  # Legacy generic edit only
    EM_ANALISE_OPERADORA = "em_analise_operadora"
    SOLICITADO_PARECER = "solicitado_parecer"
    EM_ANALISE_AUDITOR = "em_analise_auditor"
    PARECER_EMITIDO = "parecer_emitido"
    DEFERIDO = "deferido"  # Terminal, approved
    INDEFERIDO = "indeferido"  # Terminal, denied
    DEVOLVIDO_CLINICA = "devolvido_clinica"  # Reserved, no inbound transition


TERMINAL_STATUSES = frozenset({StatusRecurso.DEFERIDO, StatusRecurso.INDEFERIDO})

# statuses accepted by the legacy generic edit
LEGACY_STATUSES = frozenset(
    {
        StatusRecurso.PENDENTE,
        StatusRecurso.EM_ANALISE,
        StatusRecurso.DEFERIDO,
        StatusRecurso.INDEFERIDO,
    }
)


class AcaoRecurso(str, Enum):
    """Actions that drive the dispute state machine."""

    RECEBER = "receber"
    DEFERIR = "deferir"
    INDEFERIR = "indeferir"
    SOLICITAR_PARECER = "solicitar_parecer"
    INICIAR_ANALISE_AUDITOR = "iniciar_analise_auditor"
    EMITIR_PARECER = "emitir_parecer"
    ANALISAR_LEGADO = "analisar_legado"
    DEFERIR_LEGADO = "deferir_legado"
    INDEFERIR_LEGADO = "indeferir_legado"


class AcaoHistorico(str, Enum):
    """Audit trail action labels."""

    RECURSO_CRIADO = "recurso_criado"
    STATUS_ALTERADO = "status_alterado"
    PARECER_SOLICITADO = "parecer_solicitado"
    PARECER_EMITIDO = "parecer_emitido"
    DECISAO_FINAL = "decisao_final"


class Papel(str, Enum):
    """Actors that take part in a dispute."""

    CLINICA = "clinica"
    OPERADORA = "operadora"
    AUDITOR = "auditor"


class TipoNotificacao(str, Enum):
    """Notification kinds, one per notifying transition."""

    RECURSO_CRIADO = "recurso_criado"
    PARECER_SOLICITADO = "parecer_solicitado"
    PARECER_EMITIDO = "parecer_emitido"
    DECISAO_FINAL = "decisao_final"


class TipoItem(str, Enum):
    """Ledger item kinds. A guia is the parent row of the hierarchy."""

    GUIA = "guia"
    PROCEDIMENTO = "procedimento"
    MEDICAMENTO = "medicamento"
    MATERIAL = "material"
    TAXA = "taxa"
    DESPESA = "despesa"


class StatusPagamento(str, Enum):
    """Ledger payment status, the only mutable ledger field."""

    PENDENTE = "pendente"
    PAGO = "pago"
    GLOSADO = "glosado"
    PARCIALMENTE_PAGO = "parcialmente_pago"
