import pytest

from leadflow.models import Lead
from leadflow.services import messages, simulator
from leadflow.services.simulator import max_term_for_age, monthly_installment, parse_amount, parse_int
from leadflow.services.state_machine import SimulatorStep


class TestParseAmount:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("250000", 250000.0),
            ("250.000", 250000.0),
            ("250 000", 250000.0),
            ("250.000,50", 250000.5),
            ("250k", 250000.0),
            ("250 mil", 250000.0),
            ("€ 250 000", 250000.0),
            ("250000 euros", 250000.0),
            ("0", 0.0),
        ],
    )
    def test_accepted_formats(self, text, expected):
        assert parse_amount(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["", "muito", "abc 100", None])
    def test_rejected(self, text):
        assert parse_amount(text) is None

    def test_parse_int(self):
        assert parse_int("30") == 30
        assert parse_int("30 anos") == 30
        assert parse_int("trinta") is None


class TestInstallment:
    def test_annuity_formula(self):
        assert monthly_installment(200000, 0.035, 30) == pytest.approx(898.09, abs=0.01)

    def test_zero_rate(self):
        assert monthly_installment(120000, 0.0, 10) == 1000.0

    def test_nothing_to_finance(self):
        assert monthly_installment(0, 0.035, 30) == 0.0

    def test_max_term_respects_age(self):
        assert max_term_for_age(30) == 40
        assert max_term_for_age(60) == 20
        assert max_term_for_age(None) == 40


class TestWizard:
    def _lead(self):
        return Lead(contact_key="351911111111", stage="awaiting_choice", sim_step=SimulatorStep.AGE.value)

    def _answer(self, lead, text):
        reply = simulator.advance(lead, text, annual_rate=0.035)
        lead.sim_step = reply.next_step.value if reply.next_step else None
        return reply

    def test_full_run(self):
        lead = self._lead()
        assert simulator.start().next_step == SimulatorStep.AGE

        assert self._answer(lead, "35").next_step == SimulatorStep.PROPERTY_VALUE
        assert self._answer(lead, "250 mil").next_step == SimulatorStep.TERM
        assert self._answer(lead, "30 anos").next_step == SimulatorStep.DOWN_PAYMENT
        reply = self._answer(lead, "50000")

        assert reply.finished is True
        assert reply.next_step is None
        assert "898,09" in reply.text
        assert lead.sim_down_payment == 50000.0

    def test_invalid_age_reasks(self):
        lead = self._lead()
        reply = self._answer(lead, "15")
        assert reply.next_step == SimulatorStep.AGE
        assert reply.text == messages.MSG_SIM_INVALID_AGE

    def test_term_beyond_age_limit_reasks(self):
        lead = self._lead()
        self._answer(lead, "70")
        self._answer(lead, "100000")
        reply = self._answer(lead, "20")
        assert reply.next_step == SimulatorStep.TERM
        assert "10" in reply.text

    def test_down_payment_must_be_below_value(self):
        lead = self._lead()
        self._answer(lead, "40")
        self._answer(lead, "100000")
        self._answer(lead, "25")
        reply = self._answer(lead, "100000")
        assert reply.next_step == SimulatorStep.DOWN_PAYMENT
        assert not reply.finished
