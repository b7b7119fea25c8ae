"""Input validation rules for dispute operations."""

from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional
from common import config
from common.enums import TipoItem
from common.exceptions import ValidationError


class ValidationResult(NamedTuple):
    """Result of input validation."""

    is_valid: bool
    errors: List[str]
    warnings: List[str]


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class RecursoInputValidator:
    """Validates dispute payloads before any transaction is opened."""

    @classmethod
    def validate_required(cls, **fields) -> tuple[List[str], List[str]]:
        """Every named field must be present and, for text, non-blank."""
        errors = []
        for name, value in fields.items():
            if value is None or (isinstance(value, str) and _blank(value)):
                errors.append(f"Campo obrigatório não preenchido: {name}")
        return errors, []

    @classmethod
    def validate_itens(cls, itens: Iterable) -> tuple[List[str], List[str]]:
        """Disputed items must be guia children with non-negative values."""
        errors = []
        warnings = []
        seen = set()

        for item in itens:
            if item.tipo_item == TipoItem.GUIA:
                errors.append(f"Item {item.codigo_item}: uma guia não pode ser item contestado")
            if _blank(item.codigo_item):
                errors.append("Item sem código")
            for campo in ("quantidade", "valor_unitario", "valor_total"):
                valor = getattr(item, campo)
                if valor is not None and Decimal(valor) < 0:
                    errors.append(f"Item {item.codigo_item}: {campo} não pode ser negativo")
            if item.codigo_item in seen:
                # Only the first ledger row with this code will be flagged
                warnings.append(f"Código {item.codigo_item} repetido entre os itens contestados")
            seen.add(item.codigo_item)

        return errors, warnings

    @classmethod
    def validate_documentos(cls, documentos: Iterable) -> tuple[List[str], List[str]]:
        """Evidence metadata must describe an accepted file type within the size limit."""
        errors = []
        for doc in documentos:
            if doc.tipo not in config.ALLOWED_DOCUMENT_TYPES:
                errors.append(f"Tipo de arquivo não permitido: {doc.nome_original} ({doc.tipo})")
            if doc.tamanho is not None and doc.tamanho > config.MAX_DOCUMENT_SIZE:
                errors.append(f"Arquivo excede o tamanho máximo: {doc.nome_original}")
        return errors, []


def validate_recurso_create(payload) -> ValidationResult:
    """
    Validate a dispute creation payload.

    Returns ValidationResult with errors and warnings.
    """
    all_errors = []
    all_warnings = []

    required_errors, _ = RecursoInputValidator.validate_required(
        guia_id=payload.guia_id,
        lote_id=payload.lote_id,
        clinica_id=payload.clinica_id,
        justificativa=payload.justificativa,
    )
    all_errors.extend(required_errors)

    item_errors, item_warnings = RecursoInputValidator.validate_itens(payload.itens)
    all_errors.extend(item_errors)
    all_warnings.extend(item_warnings)

    doc_errors, doc_warnings = RecursoInputValidator.validate_documentos(payload.documentos)
    all_errors.extend(doc_errors)
    all_warnings.extend(doc_warnings)

    return ValidationResult(is_valid=len(all_errors) == 0, errors=all_errors, warnings=all_warnings)


def require(message: str, **fields) -> None:
    """Raise ValidationError unless every named field is filled."""
    errors, _ = RecursoInputValidator.validate_required(**fields)
    if errors:
        raise ValidationError(message, errors=errors)
