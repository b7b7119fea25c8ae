"""Caller identity for the three role façades.

Authentication happens upstream; the gateway forwards the authenticated
principal in headers. Each dependency only checks that the principal is present.
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, status


@dataclass(frozen=True)
class ClinicaActor:
    clinica_id: int
    usuario_id: Optional[int] = None
    usuario_nome: Optional[str] = None


@dataclass(frozen=True)
class OperadoraActor:
    registro_ans: str
    usuario_id: Optional[int] = None
    usuario_nome: Optional[str] = None


@dataclass(frozen=True)
class AuditorActor:
    auditor_id: int
    nome: Optional[str] = None


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def get_clinica_actor(
    x_clinica_id: Optional[int] = Header(None),
    x_usuario_id: Optional[int] = Header(None),
    x_usuario_nome: Optional[str] = Header(None),
) -> ClinicaActor:
    if x_clinica_id is None:
        raise _unauthenticated("Clínica não identificada")
    return ClinicaActor(clinica_id=x_clinica_id, usuario_id=x_usuario_id, usuario_nome=x_usuario_nome)


def get_operadora_actor(
    x_operadora_registro_ans: Optional[str] = Header(None),
    x_usuario_id: Optional[int] = Header(None),
    x_usuario_nome: Optional[str] = Header(None),
) -> OperadoraActor:
    if not x_operadora_registro_ans:
        raise _unauthenticated("Operadora não identificada")
    return OperadoraActor(
        registro_ans=x_operadora_registro_ans,
        usuario_id=x_usuario_id,
        usuario_nome=x_usuario_nome,
    )


def get_auditor_actor(
    x_auditor_id: Optional[int] = Header(None),
    x_auditor_nome: Optional[str] = Header(None),
) -> AuditorActor:
    if x_auditor_id is None:
        raise _unauthenticated("Auditor não identificado")
    return AuditorActor(auditor_id=x_auditor_id, nome=x_auditor_nome)
