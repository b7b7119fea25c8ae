"""Unit tests for the dispute workflow, driven through the role façades."""

import logging
import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from common import config
from common.enums import AcaoHistorico, Papel, StatusPagamento, StatusRecurso, TipoNotificacao
from common.exceptions import ConflictError, InvalidStateError, NotFoundError, TransactionError, ValidationError
from common.identity import AuditorActor, ClinicaActor, OperadoraActor
from services.ledger.models import ItemFinanceiro
from services.ledger.repository import LedgerItemRepository
from services.recursos.facades import AuditorFacade, ClinicaFacade, OperadoraFacade, _RecursoFacade
from services.recursos.models import (
    Auditor,
    Recurso,
    RecursoDocumento,
    RecursoHistorico,
    RecursoItem,
    RecursoNotificacao,
    RecursoParecer,
)
from services.recursos.schemas import ParecerCreate, RecursoCreate
from services.recursos.state_machine import RecursoStateMachine
from services.recursos.workflow import compute_valor_guia


def _notificacoes(db_session, recurso_id, destinatario_tipo=None):
    query = db_session.query(RecursoNotificacao).filter(RecursoNotificacao.recurso_id == recurso_id)
    if destinatario_tipo:
        query = query.filter(RecursoNotificacao.destinatario_tipo == destinatario_tipo.value)
    return query.order_by(RecursoNotificacao.id).all()


def _parecer(recomendacao="deferir"):
    return ParecerCreate(
        parecer_tecnico="Procedimento compatível com o CID informado.",
        recomendacao=recomendacao,
        valor_recomendado=Decimal("500.00"),
        cids_analisados=["M54.5"],
        tempo_analise_minutos=30,
    )


def _assert_legal_history(db_session, recurso_id):
    """Every consecutive pair of history entries is an edge of the transition table."""
    entries = (
        db_session.query(RecursoHistorico)
        .filter(RecursoHistorico.recurso_id == recurso_id)
        .order_by(RecursoHistorico.created_at, RecursoHistorico.id)
        .all()
    )
    assert entries[0].acao == AcaoHistorico.RECURSO_CRIADO.value
    for previous, current in zip(entries, entries[1:]):
        assert current.status_anterior == previous.status_novo
        assert RecursoStateMachine.can_transition(
            StatusRecurso(current.status_anterior), StatusRecurso(current.status_novo)
        )
    return entries


@pytest.fixture
def clinica(db_session, clinica_actor):
    return ClinicaFacade(db_session, clinica_actor)


@pytest.fixture
def operadora(db_session, operadora_actor):
    return OperadoraFacade(db_session, operadora_actor)


@pytest.fixture
def em_analise(operadora, recurso):
    """Dispute already received by the operator."""
    return operadora.receive(recurso.id)


@pytest.fixture
def em_analise_auditor(operadora, em_analise, auditor):
    return operadora.request_opinion(em_analise.id, auditor.id, "Verificar compatibilidade")


class TestCreate:
    """Test dispute creation."""

    def test_scenario_a(self, db_session, recurso, procedimento):
        """Create flags the disputed child glosado and records the creation."""
        db_session.refresh(procedimento)

        assert recurso.status_recurso == StatusRecurso.PENDENTE.value
        assert recurso.valor_guia == Decimal("500.00")
        assert recurso.versao == 1
        assert procedimento.status_pagamento == StatusPagamento.GLOSADO.value
        assert recurso.historico[0].acao == AcaoHistorico.RECURSO_CRIADO.value
        assert recurso.historico[0].usuario_id == 11
        assert recurso.data_envio_clinica is not None
        assert recurso.usuario_clinica_id == 11
        assert recurso.operadora_registro_ans == "412589"

    def test_create_stores_children(self, db_session, recurso):
        assert db_session.query(RecursoItem).filter(RecursoItem.recurso_id == recurso.id).count() == 1
        documentos = db_session.query(RecursoDocumento).filter(RecursoDocumento.recurso_id == recurso.id).all()
        assert len(documentos) == 1
        assert documentos[0].enviado_por == Papel.CLINICA.value
        assert recurso.motivos_glosa == [{"codigo": "1801", "descricao": "Procedimento inválido"}]

    def test_create_leaves_guia_unpaid(self, db_session, recurso, guia):
        """Only the children are flagged; the guia waits for the decision."""
        db_session.refresh(guia)
        assert guia.status_pagamento == StatusPagamento.PENDENTE.value

    def test_create_notifies_operator(self, db_session, recurso):
        notificacoes = _notificacoes(db_session, recurso.id, Papel.OPERADORA)
        assert len(notificacoes) == 1
        assert notificacoes[0].tipo == TipoNotificacao.RECURSO_CRIADO.value
        assert notificacoes[0].destinatario_id == "412589"

    def test_valor_guia_sums_items(self, db_session, clinica, recurso_payload, material):
        recurso_payload["itens"].append(
            {"tipo_item": "material", "codigo_item": "MAT1", "valor_total": 150.0}
        )
        recurso = clinica.create(RecursoCreate(**recurso_payload))
        assert recurso.valor_guia == Decimal("650.00")

    def test_valor_guia_falls_back_to_guia_total(self, db_session, clinica, recurso_payload):
        """Without disputed items the whole guia is disputed."""
        recurso_payload["itens"] = []
        recurso = clinica.create(RecursoCreate(**recurso_payload))
        assert recurso.valor_guia == Decimal("500.00")

    def test_compute_valor_guia(self):
        assert compute_valor_guia([], Decimal("42.10")) == Decimal("42.10")
        assert compute_valor_guia([], None) == Decimal("0")

    def test_missing_ledger_child_still_commits(self, db_session, clinica, recurso_payload, caplog):
        """An unknown code is logged and skipped."""
        recurso_payload["itens"][0]["codigo_item"] = "XYZ9"
        with caplog.at_level(logging.WARNING):
            recurso = clinica.create(RecursoCreate(**recurso_payload))

        assert recurso.id is not None
        assert "XYZ9" in caplog.text
        assert db_session.query(RecursoItem).filter(RecursoItem.recurso_id == recurso.id).count() == 1

    def test_validation_runs_before_writes(self, db_session, clinica, recurso_payload):
        recurso_payload["justificativa"] = "  "
        with pytest.raises(ValidationError):
            clinica.create(RecursoCreate(**recurso_payload))
        assert db_session.query(Recurso).count() == 0

    def test_foreign_lote_is_not_found(self, db_session, recurso_payload):
        """Another clinic's lote looks absent."""
        outra = ClinicaFacade(db_session, ClinicaActor(clinica_id=2))
        recurso_payload["clinica_id"] = 2
        with pytest.raises(NotFoundError):
            outra.create(RecursoCreate(**recurso_payload))

    def test_clinica_id_must_match_caller(self, clinica, recurso_payload):
        recurso_payload["clinica_id"] = 2
        with pytest.raises(NotFoundError):
            clinica.create(RecursoCreate(**recurso_payload))

    def test_guia_outside_lote_is_not_found(self, db_session, clinica, recurso_payload, procedimento):
        recurso_payload["guia_id"] = procedimento.id
        with pytest.raises(NotFoundError):
            clinica.create(RecursoCreate(**recurso_payload))

    def test_lote_without_operator(self, db_session, clinica, recurso_payload, lote):
        lote.operadora_registro_ans = None
        db_session.commit()
        with pytest.raises(InvalidStateError):
            clinica.create(RecursoCreate(**recurso_payload))

    def test_duplicate_open_recurso_rejected(self, clinica, recurso, recurso_payload):
        with pytest.raises(ConflictError):
            clinica.create(RecursoCreate(**recurso_payload))

    def test_duplicate_allowed_by_flag(self, clinica, recurso, recurso_payload, monkeypatch):
        monkeypatch.setattr(config, "ALLOW_DUPLICATE_RECURSO", True)
        segundo = clinica.create(RecursoCreate(**recurso_payload))
        assert segundo.id != recurso.id

    def test_new_recurso_after_final_decision(self, clinica, operadora, em_analise, recurso_payload):
        operadora.deny(em_analise.id, "Sem cobertura contratual")
        segundo = clinica.create(RecursoCreate(**recurso_payload))
        assert segundo.status_recurso == StatusRecurso.PENDENTE.value
        assert clinica.latest_for_guia(recurso_payload["guia_id"]).id == segundo.id


class TestOperatorDecision:
    """Test receive, approve and deny."""

    def test_receive(self, em_analise):
        assert em_analise.status_recurso == StatusRecurso.EM_ANALISE_OPERADORA.value
        assert em_analise.data_recebimento_operadora is not None
        assert em_analise.usuario_operadora_id == 21

    def test_scenario_b(self, db_session, operadora, em_analise, guia):
        """Approve pays the guia and notifies the clinic."""
        recurso = operadora.approve(em_analise.id, "Documentação completa")
        db_session.refresh(guia)

        assert recurso.status_recurso == StatusRecurso.DEFERIDO.value
        assert recurso.data_decisao_final is not None
        assert guia.status_pagamento == StatusPagamento.PAGO.value
        notificacoes = _notificacoes(db_session, recurso.id, Papel.CLINICA)
        assert len(notificacoes) == 1
        assert notificacoes[0].titulo == "Recurso Aprovado"
        _assert_legal_history(db_session, recurso.id)

    def test_approve_twice_fails_but_guia_stays_paid(self, db_session, operadora, em_analise, guia):
        operadora.approve(em_analise.id)
        with pytest.raises(InvalidStateError):
            operadora.approve(em_analise.id)
        db_session.refresh(guia)
        assert guia.status_pagamento == StatusPagamento.PAGO.value

    def test_approve_requires_receive(self, operadora, recurso):
        with pytest.raises(InvalidStateError):
            operadora.approve(recurso.id)

    def test_scenario_e(self, db_session, operadora, em_analise):
        """Deny records the motivo in history and notification."""
        motivo = "Documentação insuficiente"
        recurso = operadora.deny(em_analise.id, motivo)

        assert recurso.status_recurso == StatusRecurso.INDEFERIDO.value
        assert motivo in recurso.historico[-1].descricao
        notificacoes = _notificacoes(db_session, recurso.id, Papel.CLINICA)
        assert motivo in notificacoes[0].mensagem

    def test_deny_requires_motivo(self, db_session, operadora, em_analise):
        with pytest.raises(ValidationError):
            operadora.deny(em_analise.id, "")
        db_session.refresh(em_analise)
        assert em_analise.status_recurso == StatusRecurso.EM_ANALISE_OPERADORA.value

    def test_other_operator_cannot_see_recurso(self, db_session, recurso):
        outra = OperadoraFacade(db_session, OperadoraActor(registro_ans="326305"))
        with pytest.raises(NotFoundError):
            outra.receive(recurso.id)
        assert outra.list() == []

    def test_failure_rolls_back_everything(self, db_session, operadora, em_analise, guia):
        """A failing side effect undoes the status change and the payment."""
        with patch(
            "services.recursos.workflow.notifications.notify_clinica_decisao",
            side_effect=RuntimeError("disk full"),
        ):
            with pytest.raises(TransactionError):
                operadora.approve(em_analise.id)

        recurso = db_session.query(Recurso).filter(Recurso.id == em_analise.id).one()
        guia_row = db_session.query(ItemFinanceiro).filter(ItemFinanceiro.id == guia.id).one()
        assert recurso.status_recurso == StatusRecurso.EM_ANALISE_OPERADORA.value
        assert guia_row.status_pagamento == StatusPagamento.PENDENTE.value

    def test_approve_uses_injected_ledger(self, db_session, operadora_actor, em_analise):
        ledger = MagicMock(spec=LedgerItemRepository)
        facade = OperadoraFacade(db_session, operadora_actor, ledger=ledger)

        facade.approve(em_analise.id)

        ledger.mark_paid.assert_called_once_with(em_analise.guia_id)


class TestOpinionCycle:
    """Test delegation to auditors and opinions."""

    def test_scenario_c(self, db_session, em_analise_auditor, auditor):
        """RequestOpinion binds the auditor and notifies them."""
        recurso = em_analise_auditor
        assert recurso.status_recurso == StatusRecurso.EM_ANALISE_AUDITOR.value
        assert recurso.auditor_id == 7
        assert recurso.data_solicitacao_parecer is not None
        assert recurso.data_recebimento_auditor is not None

        notificacoes = _notificacoes(db_session, recurso.id, Papel.AUDITOR)
        assert len(notificacoes) == 1
        assert notificacoes[0].destinatario_id == "7"
        assert notificacoes[0].link == f"/auditor/recursos/{recurso.id}"

        entries = _assert_legal_history(db_session, recurso.id)
        assert [e.status_novo for e in entries[-2:]] == [
            StatusRecurso.SOLICITADO_PARECER.value,
            StatusRecurso.EM_ANALISE_AUDITOR.value,
        ]
        assert auditor.nome in entries[-2].descricao

    def test_request_opinion_requires_auditor_id(self, operadora, em_analise):
        with pytest.raises(ValidationError):
            operadora.request_opinion(em_analise.id, None)

    def test_request_opinion_inactive_auditor(self, operadora, em_analise, auditor_inativo):
        with pytest.raises(NotFoundError):
            operadora.request_opinion(em_analise.id, auditor_inativo.id)

    def test_request_opinion_unknown_auditor(self, operadora, em_analise):
        with pytest.raises(NotFoundError):
            operadora.request_opinion(em_analise.id, 12345)

    def test_scenario_d(self, db_session, em_analise_auditor, auditor_actor, outro_auditor):
        """Auditor 7 emits; auditor 8 cannot touch the same dispute."""
        parecer = AuditorFacade(db_session, auditor_actor).emit_opinion(em_analise_auditor.id, _parecer())

        recurso = db_session.query(Recurso).filter(Recurso.id == em_analise_auditor.id).one()
        assert recurso.status_recurso == StatusRecurso.PARECER_EMITIDO.value
        assert recurso.data_emissao_parecer is not None
        assert parecer.auditor_id == 7
        assert db_session.query(RecursoParecer).filter(RecursoParecer.recurso_id == recurso.id).count() == 1

        intruso = AuditorFacade(db_session, AuditorActor(auditor_id=outro_auditor.id))
        with pytest.raises(NotFoundError):
            intruso.emit_opinion(recurso.id, _parecer("indeferir"))

        notificacoes = _notificacoes(db_session, recurso.id, Papel.OPERADORA)
        assert notificacoes[-1].tipo == TipoNotificacao.PARECER_EMITIDO.value
        assert notificacoes[-1].destinatario_id == "21"

    def test_emit_opinion_requires_fields(self, db_session, em_analise_auditor, auditor_actor):
        facade = AuditorFacade(db_session, auditor_actor)
        with pytest.raises(ValidationError):
            facade.emit_opinion(em_analise_auditor.id, ParecerCreate(parecer_tecnico="Texto"))

    def test_emit_opinion_twice_fails_without_writing(self, db_session, em_analise_auditor, auditor_actor):
        facade = AuditorFacade(db_session, auditor_actor)
        facade.emit_opinion(em_analise_auditor.id, _parecer())

        with pytest.raises(InvalidStateError):
            facade.emit_opinion(em_analise_auditor.id, _parecer())
        assert db_session.query(RecursoParecer).count() == 1

    def test_decide_after_opinion(self, db_session, operadora, em_analise_auditor, auditor_actor, guia):
        AuditorFacade(db_session, auditor_actor).emit_opinion(em_analise_auditor.id, _parecer())

        recurso = operadora.approve(em_analise_auditor.id, "Acatando parecer")

        assert recurso.status_recurso == StatusRecurso.DEFERIDO.value
        _assert_legal_history(db_session, recurso.id)

    def test_second_audit_cycle(self, db_session, operadora, em_analise_auditor, auditor_actor, outro_auditor):
        AuditorFacade(db_session, auditor_actor).emit_opinion(em_analise_auditor.id, _parecer())

        recurso = operadora.request_opinion(em_analise_auditor.id, outro_auditor.id)

        assert recurso.status_recurso == StatusRecurso.EM_ANALISE_AUDITOR.value
        assert recurso.auditor_id == outro_auditor.id
        detalhe = AuditorFacade(db_session, AuditorActor(auditor_id=outro_auditor.id)).detail(recurso.id)
        assert detalhe.parecer_anterior is not None
        assert detalhe.parecer_anterior.auditor_id == 7
        _assert_legal_history(db_session, recurso.id)


class TestLegacyStatusEdit:
    """Test the generic status edit kept for older clients."""

    def test_legacy_path(self, db_session, operadora, recurso, guia):
        operadora.update_status(recurso.id, "em_analise")
        recurso = operadora.update_status(recurso.id, "deferido", "Aprovado pelo fluxo antigo")
        db_session.refresh(guia)

        assert recurso.status_recurso == StatusRecurso.DEFERIDO.value
        assert recurso.data_decisao_final is not None
        assert guia.status_pagamento == StatusPagamento.PAGO.value
        assert recurso.historico[-1].descricao == "Aprovado pelo fluxo antigo"
        _assert_legal_history(db_session, recurso.id)

    def test_legacy_edit_cannot_leave_terminal(self, operadora, recurso):
        operadora.update_status(recurso.id, "indeferido")
        with pytest.raises(InvalidStateError):
            operadora.update_status(recurso.id, "deferido")

    def test_legacy_edit_rejects_pendente(self, operadora, recurso):
        with pytest.raises(InvalidStateError):
            operadora.update_status(recurso.id, "pendente")

    def test_legacy_edit_cannot_reach_auditor_states(self, operadora, recurso):
        with pytest.raises(ValidationError):
            operadora.update_status(recurso.id, "parecer_emitido")

    def test_legacy_edit_not_available_in_new_flow(self, operadora, em_analise):
        """Once received through the new flow, legacy edges do not apply."""
        with pytest.raises(InvalidStateError):
            operadora.update_status(em_analise.id, "deferido")


class TestReadViews:
    """Test the per-role read operations."""

    def test_clinic_list_and_filter(self, clinica, recurso):
        assert [r.id for r in clinica.list()] == [recurso.id]
        assert clinica.list("deferido") == []
        with pytest.raises(ValidationError):
            clinica.list("bogus")

    def test_clinic_detail(self, clinica, recurso):
        detalhe = clinica.detail(recurso.id)
        assert len(detalhe.itens) == 1
        assert len(detalhe.historico) == 1
        assert len(detalhe.documentos) == 1
        assert detalhe.mensagens is None
        assert detalhe.pareceres is None

    def test_clinic_cannot_read_other_clinic(self, db_session, recurso):
        with pytest.raises(NotFoundError):
            ClinicaFacade(db_session, ClinicaActor(clinica_id=2)).get(recurso.id)

    def test_latest_for_guia_none(self, clinica, guia):
        assert clinica.latest_for_guia(guia.id) is None

    def test_operator_detail_includes_chat_once_bound(self, db_session, operadora, em_analise_auditor, auditor_actor):
        AuditorFacade(db_session, auditor_actor).send_message(em_analise_auditor.id, "Preciso do laudo")

        detalhe = operadora.detail(em_analise_auditor.id)

        assert detalhe.pareceres == []
        assert len(detalhe.mensagens) == 1
        assert detalhe.mensagens[0].lida is False

    def test_operator_detail_without_auditor(self, operadora, em_analise):
        assert operadora.detail(em_analise.id).mensagens is None

    def test_next_actions(self, operadora, em_analise):
        acoes = operadora.next_actions(em_analise.id)
        assert acoes["status_recurso"] == "em_analise_operadora"
        assert set(acoes["acoes"]) == {"deferir", "indeferir", "solicitar_parecer"}

    def test_list_auditores_only_active(self, operadora, auditor, auditor_inativo):
        assert [a.id for a in operadora.list_auditores()] == [auditor.id]

    def test_auditor_sees_only_bound(self, db_session, em_analise_auditor, auditor_actor, outro_auditor):
        assert [r.id for r in AuditorFacade(db_session, auditor_actor).list()] == [em_analise_auditor.id]
        assert AuditorFacade(db_session, AuditorActor(auditor_id=outro_auditor.id)).list() == []

    def test_base_facade_requires_scope(self, db_session, clinica_actor):
        """Every role must define its ownership predicate."""
        with pytest.raises(TypeError):
            _RecursoFacade(db_session, clinica_actor)


class TestTimestamps:
    """All rows of the aggregate are stamped with the same UTC clock."""

    def test_notification_not_older_than_recurso(self, db_session, recurso):
        notificacao = _notificacoes(db_session, recurso.id, Papel.OPERADORA)[0]
        assert notificacao.created_at >= recurso.created_at

    @pytest.mark.parametrize("model", [RecursoNotificacao, Auditor])
    def test_created_at_uses_application_clock(self, model):
        column = model.__table__.c.created_at
        assert column.server_default is None
        assert column.default is not None
