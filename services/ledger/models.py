"""SQLAlchemy models for the billing ledger (lotes and their item hierarchy)."""

from sqlalchemy import Column, String, Numeric, DateTime, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from common.db import Base
from common.enums import StatusPagamento, TipoItem


class LoteFinanceiro(Base):
    """Billing batch sent by a clinic to one operator for one competência."""

    __tablename__ = "financeiro_lotes"

    id = Column(Integer, primary_key=True, index=True)
    clinica_id = Column(Integer, nullable=False, index=True)
    operadora_registro_ans = Column(String(50), nullable=True, index=True)
    operadora_nome = Column(String(255), nullable=True)
    numero_lote = Column(String(50), nullable=False)
    competencia = Column(String(6), nullable=True)  # AAAAMM
    valor_total = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), default=StatusPagamento.PENDENTE.value, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    itens = relationship("ItemFinanceiro", back_populates="lote", order_by="ItemFinanceiro.id")


# one table for every item kind, discriminated by tipo_item
class ItemFinanceiro(Base):
    """Billing line item. Rows without parent_id are guias; the rest are their children."""

    __tablename__ = "financeiro_items"

    id = Column(Integer, primary_key=True, index=True)
    lote_id = Column(Integer, ForeignKey("financeiro_lotes.id"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("financeiro_items.id"), nullable=True, index=True)
    tipo_item = Column(String(20), nullable=False, index=True)

    codigo_item = Column(String(50), nullable=True, index=True)
    descricao_item = Column(Text, nullable=True)
    quantidade = Column(Numeric(10, 2), nullable=True)
    valor_unitario = Column(Numeric(12, 2), nullable=True)
    valor_total = Column(Numeric(12, 2), nullable=False, default=0)
    unidade_medida = Column(String(20), nullable=True)

    # Payment control, the only field mutated after ingestion
    status_pagamento = Column(String(20), default=StatusPagamento.PENDENTE.value, nullable=False)
    data_pagamento = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    lote = relationship("LoteFinanceiro", back_populates="itens")
    parent = relationship("ItemFinanceiro", remote_side=[id], back_populates="children")
    children = relationship("ItemFinanceiro", back_populates="parent", order_by="ItemFinanceiro.id")

    __mapper_args__ = {"polymorphic_on": tipo_item}


class Guia(ItemFinanceiro):
    """One billing claim (patient encounter)."""

    numero_guia_prestador = Column(String(50), nullable=True)
    numero_guia_operadora = Column(String(50), nullable=True)
    numero_carteira = Column(String(50), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.GUIA.value}


class Procedimento(ItemFinanceiro):
    via_acesso = Column(String(2), nullable=True)
    reducao_acrescimo = Column(Numeric(5, 2), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.PROCEDIMENTO.value}


class Medicamento(ItemFinanceiro):
    registro_anvisa = Column(String(30), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.MEDICAMENTO.value}


class Material(ItemFinanceiro):
    referencia_fabricante = Column(String(60), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.MATERIAL.value}


class Taxa(ItemFinanceiro):
    codigo_tabela = Column(String(2), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.TAXA.value}


class Despesa(ItemFinanceiro):
    codigo_despesa = Column(String(2), nullable=True)

    __mapper_args__ = {"polymorphic_identity": TipoItem.DESPESA.value}

