"""Shared pytest fixtures and configuration."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from faker import Faker

from common.db import Base, get_db
from common.identity import AuditorActor, ClinicaActor, OperadoraActor
from main import app
from services.ledger.models import Guia, LoteFinanceiro, Material, Procedimento
from services.recursos.facades import ClinicaFacade
from services.recursos.models import Auditor
from services.recursos.schemas import RecursoCreate

fake = Faker()

CLINICA_ID = 1
OUTRA_CLINICA_ID = 2
REGISTRO_ANS = "412589"
OUTRO_REGISTRO_ANS = "326305"


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session with in-memory SQLite."""
    # Use SQLite in-memory for testing
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def _save(db_session, obj):
    db_session.add(obj)
    db_session.commit()
    db_session.refresh(obj)
    return obj


@pytest.fixture
def lote(db_session):
    """Billing batch of the test clinic addressed to the test operator."""
    return _save(
        db_session,
        LoteFinanceiro(
            clinica_id=CLINICA_ID,
            operadora_registro_ans=REGISTRO_ANS,
            operadora_nome=fake.company(),
            numero_lote=fake.numerify(text="LT-######"),
            competencia="202401",
            valor_total=Decimal("650.00"),
        ),
    )


@pytest.fixture
def guia(db_session, lote):
    """Guia worth 500.00 with no payment yet."""
    return _save(
        db_session,
        Guia(
            lote_id=lote.id,
            codigo_item=fake.numerify(text="G######"),
            descricao_item="Consulta e procedimento ambulatorial",
            valor_total=Decimal("500.00"),
            numero_guia_prestador=fake.numerify(text="##########"),
            numero_carteira=fake.numerify(text="################"),
        ),
    )


@pytest.fixture
def procedimento(db_session, lote, guia):
    """Child item PRC1 of the guia."""
    return _save(
        db_session,
        Procedimento(
            lote_id=lote.id,
            parent_id=guia.id,
            codigo_item="PRC1",
            descricao_item="Procedimento ambulatorial",
            quantidade=Decimal("1"),
            valor_unitario=Decimal("500.00"),
            valor_total=Decimal("500.00"),
            via_acesso="U",
        ),
    )


@pytest.fixture
def material(db_session, lote, guia):
    """Child item MAT1 of the guia."""
    return _save(
        db_session,
        Material(
            lote_id=lote.id,
            parent_id=guia.id,
            codigo_item="MAT1",
            descricao_item="Material descartável",
            quantidade=Decimal("3"),
            valor_unitario=Decimal("50.00"),
            valor_total=Decimal("150.00"),
        ),
    )


@pytest.fixture
def auditor(db_session):
    """Active auditor with id 7."""
    return _save(
        db_session,
        Auditor(
            id=7,
            nome=fake.name(),
            email=fake.email(),
            registro_profissional=fake.numerify(text="CRM-######"),
            especialidade="Auditoria médica",
            ativo=True,
        ),
    )


@pytest.fixture
def outro_auditor(db_session):
    """Second active auditor with id 8."""
    return _save(db_session, Auditor(id=8, nome=fake.name(), ativo=True))


@pytest.fixture
def auditor_inativo(db_session):
    return _save(db_session, Auditor(id=9, nome=fake.name(), ativo=False))


@pytest.fixture
def clinica_actor():
    return ClinicaActor(clinica_id=CLINICA_ID, usuario_id=11, usuario_nome="Ana Clinica")


@pytest.fixture
def operadora_actor():
    return OperadoraActor(registro_ans=REGISTRO_ANS, usuario_id=21, usuario_nome="Bruno Operadora")


@pytest.fixture
def auditor_actor(auditor):
    return AuditorActor(auditor_id=auditor.id, nome=auditor.nome)


@pytest.fixture
def recurso_payload(lote, guia, procedimento):
    """Dispute of PRC1 on the 500.00 guia."""
    return {
        "guia_id": guia.id,
        "lote_id": lote.id,
        "clinica_id": CLINICA_ID,
        "justificativa": fake.paragraph(nb_sentences=3),
        "motivos_glosa": [{"codigo": "1801", "descricao": "Procedimento inválido"}],
        "itens": [
            {
                "item_id": procedimento.id,
                "tipo_item": "procedimento",
                "codigo_item": "PRC1",
                "descricao_item": "Procedimento ambulatorial",
                "quantidade": 1,
                "valor_unitario": 500.0,
                "valor_total": 500.0,
            }
        ],
        "documentos": [
            {"nome_original": "laudo.pdf", "tamanho": 2048, "tipo": "application/pdf"},
        ],
    }


@pytest.fixture
def recurso(db_session, clinica_actor, recurso_payload):
    """A freshly created dispute in pendente state."""
    return ClinicaFacade(db_session, clinica_actor).create(RecursoCreate(**recurso_payload))


@pytest.fixture
def clinica_headers():
    return {"X-Clinica-Id": str(CLINICA_ID), "X-Usuario-Id": "11", "X-Usuario-Nome": "Ana Clinica"}


@pytest.fixture
def operadora_headers():
    return {"X-Operadora-Registro-Ans": REGISTRO_ANS, "X-Usuario-Id": "21", "X-Usuario-Nome": "Bruno Operadora"}


@pytest.fixture
def auditor_headers(auditor):
    return {"X-Auditor-Id": str(auditor.id), "X-Auditor-Nome": "Auditor Sete"}
