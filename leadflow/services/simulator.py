"""Five-step loan simulator wizard: age, property value, term, down payment, estimate."""

import re
from dataclasses import dataclass
from typing import Optional

from leadflow.services import messages
from leadflow.services.state_machine import SimulatorStep

MIN_AGE = 18
MAX_AGE = 75
MAX_AGE_AT_END = 80
MAX_TERM_YEARS = 40

_AMOUNT_RE = re.compile(r"^(?P<number>\d[\d.\s]*(?:,\d+)?|\d+(?:\.\d+)?)\s*(?P<suffix>k|mil)?$")


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Euro amount from "250000", "250.000", "250 000", "250.000,50", "250k", "250 mil", "€ 250 000"."""
    if not text:
        return None
    cleaned = text.strip().lower().replace("€", "").replace("euros", "").replace("eur", "").strip()
    match = _AMOUNT_RE.match(cleaned)
    if not match:
        return None
    number = match.group("number").replace(" ", "")
    if "," in number:
        number = number.replace(".", "").replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(\.\d{3})+", number):
        number = number.replace(".", "")
    try:
        value = float(number)
    except ValueError:
        return None
    if match.group("suffix"):
        value *= 1000
    return value


def parse_int(text: Optional[str]) -> Optional[int]:
    match = re.fullmatch(r"\s*(\d{1,3})\s*(anos?)?\s*", (text or "").lower())
    return int(match.group(1)) if match else None


def monthly_installment(principal: float, annual_rate: float, years: int) -> float:
    """Constant-payment (annuity) monthly instalment."""
    months = years * 12
    if principal <= 0 or months <= 0:
        return 0.0
    rate = annual_rate / 12
    if rate == 0:
        return round(principal / months, 2)
    return round(principal * rate / (1 - (1 + rate) ** -months), 2)


@dataclass
class SimulatorReply:
    text: str
    next_step: Optional[SimulatorStep]
    finished: bool = False


def start() -> SimulatorReply:
    return SimulatorReply(messages.MSG_SIM_ASK_AGE, SimulatorStep.AGE)


def advance(lead, text: str, *, annual_rate: float) -> SimulatorReply:
    """Feed one answer to the wizard, storing it on the lead row."""
    step = SimulatorStep(lead.sim_step)

    if step == SimulatorStep.AGE:
        age = parse_int(text)
        if age is None or not MIN_AGE <= age <= MAX_AGE:
            return SimulatorReply(messages.MSG_SIM_INVALID_AGE, step)
        lead.sim_age = age
        return SimulatorReply(messages.MSG_SIM_ASK_PROPERTY_VALUE, SimulatorStep.PROPERTY_VALUE)

    if step == SimulatorStep.PROPERTY_VALUE:
        value = parse_amount(text)
        if value is None or value <= 0:
            return SimulatorReply(messages.MSG_SIM_INVALID_PROPERTY_VALUE, step)
        lead.sim_property_value = value
        return SimulatorReply(messages.MSG_SIM_ASK_TERM, SimulatorStep.TERM)

    if step == SimulatorStep.TERM:
        max_term = max_term_for_age(lead.sim_age)
        term = parse_int(text)
        if term is None or not 1 <= term <= max_term:
            return SimulatorReply(messages.MSG_SIM_INVALID_TERM.format(max_term=max_term), step)
        lead.sim_term_years = term
        return SimulatorReply(messages.MSG_SIM_ASK_DOWN_PAYMENT, SimulatorStep.DOWN_PAYMENT)

    down_payment = parse_amount(text)
    property_value = lead.sim_property_value or 0.0
    if down_payment is None or not 0 <= down_payment < property_value:
        return SimulatorReply(messages.MSG_SIM_INVALID_DOWN_PAYMENT, step)
    lead.sim_down_payment = down_payment
    principal = property_value - down_payment
    installment = monthly_installment(principal, annual_rate, lead.sim_term_years)
    text = messages.MSG_SIM_RESULT.format(
        property_value=messages.format_amount(property_value),
        down_payment=messages.format_amount(down_payment),
        principal=messages.format_amount(principal),
        term=lead.sim_term_years,
        rate=f"{annual_rate * 100:.2f}".replace(".", ","),
        installment=messages.format_amount(installment),
    )
    return SimulatorReply(text, None, finished=True)


def max_term_for_age(age: Optional[int]) -> int:
    if not age:
        return MAX_TERM_YEARS
    return max(1, min(MAX_TERM_YEARS, MAX_AGE_AT_END - age))
