"""SQLAlchemy models for disputes (recursos de glosa) and their children."""

from sqlalchemy import Boolean, Column, String, Numeric, DateTime, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from common.db import Base, utcnow
from common.enums import StatusRecurso
from services.ledger.models import Guia, LoteFinanceiro

# everything in a dispute
class Recurso(Base):
    """Appeal against a glosa on one guia."""

    __tablename__ = "recursos_glosas"

    id = Column(Integer, primary_key=True, index=True)
    guia_id = Column(Integer, ForeignKey("financeiro_items.id"), nullable=False, index=True)
    lote_id = Column(Integer, ForeignKey("financeiro_lotes.id"), nullable=False, index=True)
    clinica_id = Column(Integer, nullable=False, index=True)
    operadora_registro_ans = Column(String(50), nullable=False, index=True)  # Denormalized from the lote
    auditor_id = Column(Integer, ForeignKey("auditores.id"), nullable=True, index=True)

    justificativa = Column(Text, nullable=False)
    motivos_glosa = Column(JSON, nullable=True)  # List of {codigo, descricao}
    valor_guia = Column(Numeric(12, 2), nullable=False)

    status_recurso = Column(String(30), default=StatusRecurso.PENDENTE.value, nullable=False, index=True)
    versao = Column(Integer, default=1, nullable=False)  # Bumped by every conditional transition

    # Milestones
    data_envio_clinica = Column(DateTime, nullable=True)
    data_recebimento_operadora = Column(DateTime, nullable=True)
    data_solicitacao_parecer = Column(DateTime, nullable=True)
    data_recebimento_auditor = Column(DateTime, nullable=True)
    data_emissao_parecer = Column(DateTime, nullable=True)
    data_decisao_final = Column(DateTime, nullable=True)

    usuario_clinica_id = Column(Integer, nullable=True)
    usuario_operadora_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    guia = relationship(Guia, foreign_keys=[guia_id])
    lote = relationship(LoteFinanceiro, foreign_keys=[lote_id])
    auditor = relationship("Auditor")
    itens = relationship("RecursoItem", back_populates="recurso", cascade="all, delete-orphan", order_by="RecursoItem.id")
    historico = relationship(
        "RecursoHistorico",
        back_populates="recurso",
        cascade="all, delete-orphan",
        order_by="RecursoHistorico.id",
    )
    documentos = relationship("RecursoDocumento", back_populates="recurso", cascade="all, delete-orphan", order_by="RecursoDocumento.id")
    pareceres = relationship("RecursoParecer", back_populates="recurso", cascade="all, delete-orphan", order_by="RecursoParecer.id")
    mensagens = relationship(
        "RecursoMensagem",
        back_populates="recurso",
        cascade="all, delete-orphan",
        order_by="RecursoMensagem.id",
    )
    notificacoes = relationship("RecursoNotificacao", back_populates="recurso", cascade="all, delete-orphan", order_by="RecursoNotificacao.id")


class RecursoItem(Base):
    """Snapshot of a disputed ledger child, frozen at creation."""

    __tablename__ = "recursos_glosas_itens"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    item_id = Column(Integer, nullable=True)  # Ledger row as seen by the clinic, not a live FK
    tipo_item = Column(String(20), nullable=False)
    codigo_item = Column(String(50), nullable=False)
    descricao_item = Column(Text, nullable=True)
    quantidade = Column(Numeric(10, 2), nullable=True)
    valor_unitario = Column(Numeric(12, 2), nullable=True)
    valor_total = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recurso = relationship("Recurso", back_populates="itens")


# audit trail for dispute state changes
class RecursoHistorico(Base):
    """Append-only history entry, one per transition."""

    __tablename__ = "recursos_glosas_historico"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    acao = Column(String(50), nullable=False)
    status_anterior = Column(String(30), nullable=True)
    status_novo = Column(String(30), nullable=True)
    realizado_por = Column(String(20), nullable=False)
    usuario_id = Column(Integer, nullable=True)
    usuario_nome = Column(String(255), nullable=True)
    descricao = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    recurso = relationship("Recurso", back_populates="historico")


class RecursoDocumento(Base):
    """Evidence document metadata. The file itself lives in external storage."""

    __tablename__ = "recursos_glosas_documentos"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    tipo_documento = Column(String(100), nullable=False)
    nome_original = Column(String(255), nullable=False)
    tamanho_arquivo = Column(Integer, nullable=True)
    enviado_por = Column(String(20), nullable=False)
    usuario_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recurso = relationship("Recurso", back_populates="documentos")


class RecursoParecer(Base):
    """Auditor's technical opinion. One is expected per audit cycle."""

    __tablename__ = "recursos_glosas_pareceres"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    auditor_id = Column(Integer, ForeignKey("auditores.id"), nullable=False, index=True)
    parecer_tecnico = Column(Text, nullable=False)
    recomendacao = Column(String(50), nullable=False)
    valor_recomendado = Column(Numeric(12, 2), nullable=True)
    justificativa_tecnica = Column(Text, nullable=True)
    cids_analisados = Column(JSON, nullable=True)
    procedimentos_analisados = Column(JSON, nullable=True)
    tempo_analise_minutos = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recurso = relationship("Recurso", back_populates="pareceres")
    auditor = relationship("Auditor")


class RecursoMensagem(Base):
    """Operator/auditor side-channel chat message."""

    __tablename__ = "recursos_glosas_chat"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    tipo_remetente = Column(String(20), nullable=False)
    remetente_id = Column(Integer, nullable=True)
    remetente_nome = Column(String(255), nullable=True)
    mensagem = Column(Text, nullable=False)
    anexos = Column(JSON, nullable=True)
    lida = Column(Boolean, default=False, nullable=False, index=True)
    data_leitura = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recurso = relationship("Recurso", back_populates="mensagens")


class RecursoNotificacao(Base):
    """Persisted, informational message to the next responsible party."""

    __tablename__ = "recursos_glosas_notificacoes"

    id = Column(Integer, primary_key=True, index=True)
    recurso_id = Column(Integer, ForeignKey("recursos_glosas.id"), nullable=False, index=True)
    destinatario_tipo = Column(String(20), nullable=False)
    destinatario_id = Column(String(50), nullable=True)
    tipo = Column(String(50), nullable=False)
    titulo = Column(String(255), nullable=False)
    mensagem = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recurso = relationship("Recurso", back_populates="notificacoes")


class Auditor(Base):
    """Entry of the independent auditor directory."""

    __tablename__ = "auditores"

    id = Column(Integer, primary_key=True, index=True)
    nome = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    registro_profissional = Column(String(50), nullable=True)
    especialidade = Column(String(100), nullable=True)
    ativo = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
