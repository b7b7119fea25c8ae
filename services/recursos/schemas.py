"""Pydantic schemas for the dispute API."""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar
from common.enums import TipoItem

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """JSON envelope shared by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None


class MotivoGlosa(BaseModel):
    """Structured glosa reason as reported by the operator."""

    codigo: str
    descricao: Optional[str] = None


class RecursoItemCreate(BaseModel):
    """Disputed child item of the guia."""

    item_id: Optional[int] = None
    tipo_item: TipoItem
    codigo_item: str
    descricao_item: Optional[str] = None
    quantidade: Optional[Decimal] = Decimal("1")
    valor_unitario: Optional[Decimal] = None
    valor_total: Decimal


class DocumentoCreate(BaseModel):
    """Evidence document metadata; the file is stored elsewhere."""

    nome_original: str = Field(..., min_length=1, max_length=255)
    tamanho: Optional[int] = Field(None, ge=0)
    tipo: str


class RecursoCreate(BaseModel):
    """Schema for creating a new dispute."""

    guia_id: int
    lote_id: int
    clinica_id: int
    justificativa: Optional[str] = None
    motivos_glosa: List[MotivoGlosa] = Field(default_factory=list)
    itens: List[RecursoItemCreate] = Field(default_factory=list)
    documentos: List[DocumentoCreate] = Field(default_factory=list)


class DecisaoRequest(BaseModel):
    """Approval notes."""

    observacoes: Optional[str] = None


class NegativaRequest(BaseModel):
    motivo: Optional[str] = None


class SolicitarParecerRequest(BaseModel):
    auditor_id: Optional[int] = None
    observacoes: Optional[str] = None


class ParecerCreate(BaseModel):
    """Schema for an auditor's technical opinion."""

    parecer_tecnico: Optional[str] = None
    recomendacao: Optional[str] = None
    valor_recomendado: Optional[Decimal] = Field(None, ge=0)
    justificativa_tecnica: Optional[str] = None
    cids_analisados: Optional[List[str]] = None
    procedimentos_analisados: Optional[List[str]] = None
    tempo_analise_minutos: Optional[int] = Field(None, ge=0)


class StatusUpdateRequest(BaseModel):
    """Legacy generic status edit."""

    status: str
    observacao: Optional[str] = None


class MensagemCreate(BaseModel):
    mensagem: Optional[str] = None
    anexos: Optional[List[Dict[str, Any]]] = None


class RecursoItemResponse(BaseModel):
    id: int
    item_id: Optional[int]
    tipo_item: str
    codigo_item: str
    descricao_item: Optional[str]
    quantidade: Optional[Decimal]
    valor_unitario: Optional[Decimal]
    valor_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class HistoricoResponse(BaseModel):
    """Schema for an audit trail record."""

    id: int
    recurso_id: int
    acao: str
    status_anterior: Optional[str]
    status_novo: Optional[str]
    realizado_por: str
    usuario_id: Optional[int]
    usuario_nome: Optional[str]
    descricao: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentoResponse(BaseModel):
    id: int
    tipo_documento: str
    nome_original: str
    tamanho_arquivo: Optional[int]
    enviado_por: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ParecerResponse(BaseModel):
    id: int
    recurso_id: int
    auditor_id: int
    parecer_tecnico: str
    recomendacao: str
    valor_recomendado: Optional[Decimal]
    justificativa_tecnica: Optional[str]
    cids_analisados: Optional[List[str]]
    procedimentos_analisados: Optional[List[str]]
    tempo_analise_minutos: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MensagemResponse(BaseModel):
    id: int
    recurso_id: int
    tipo_remetente: str
    remetente_id: Optional[int]
    remetente_nome: Optional[str]
    mensagem: str
    anexos: Optional[List[Dict[str, Any]]]
    lida: bool
    data_leitura: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecursoResponse(BaseModel):
    """Schema for dispute response."""

    id: int
    guia_id: int
    lote_id: int
    clinica_id: int
    operadora_registro_ans: str
    auditor_id: Optional[int]
    justificativa: str
    motivos_glosa: Optional[List[MotivoGlosa]]
    valor_guia: Decimal
    status_recurso: str
    data_envio_clinica: Optional[datetime]
    data_recebimento_operadora: Optional[datetime]
    data_solicitacao_parecer: Optional[datetime]
    data_recebimento_auditor: Optional[datetime]
    data_emissao_parecer: Optional[datetime]
    data_decisao_final: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecursoDetalheResponse(RecursoResponse):
    """Dispute with its children, as seen by one façade."""

    itens: List[RecursoItemResponse] = Field(default_factory=list)
    historico: List[HistoricoResponse] = Field(default_factory=list)
    documentos: List[DocumentoResponse] = Field(default_factory=list)
    pareceres: Optional[List[ParecerResponse]] = None
    mensagens: Optional[List[MensagemResponse]] = None
    parecer_anterior: Optional[ParecerResponse] = None


class AuditorResponse(BaseModel):
    id: int
    nome: str
    registro_profissional: Optional[str]
    especialidade: Optional[str]

    model_config = ConfigDict(from_attributes=True)
