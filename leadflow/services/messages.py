"""Contact-facing message texts (pt-PT)."""

from typing import Optional
from urllib.parse import quote

MSG_MENU_OPTIONS = (
    "DUVIDA - se tens dúvidas sobre crédito habitação\r\n\r\n"
    "GESTORA - se já queres falar com a gestora para iniciar a sua análise\r\n\r\n"
    "SIMULAR - para uma simulação rápida da prestação\r\n\r\n"
    "FALAR COM {handler} - se precisas falar diretamente com a {handler_name}"
)
MSG_CHOOSE_OPTION = (
    "Para continuar, escreve uma das opções exatamente assim:\nDUVIDA\nGESTORA\nSIMULAR\nFALAR COM {handler}"
)
MSG_QUESTION_MODE = "Perfeito, podes enviar as tuas dúvidas sobre crédito habitação em Portugal e eu respondo por aqui."
MSG_QUESTION_MODE_RESUMED = (
    "Sem problema! Podes voltar a enviar as tuas dúvidas sobre crédito habitação e eu respondo por aqui."
)
MSG_UPLOAD_LINK = (
    "Ótimo! Para começar, preciso que envies alguns documentos por este link: {link}. "
    "Esses documentos são confidenciais e apenas a gestora terá acesso a eles."
)
MSG_UPLOAD_REMINDER = "Quando estiveres pronto, usa este link para enviar os documentos: {link}."
MSG_DOCS_RECEIVED = (
    "Já recebemos os teus documentos e a gestora está a analisar o teu caso. "
    "Se tiveres dúvidas escreve DUVIDA, ou FALAR COM {handler} para falar com a {handler_name}."
)
MSG_HANDOFF = (
    "Claro! Vou avisar a {handler_name} para falar contigo pessoalmente 😊\n"
    "Ela vai mandar mensagem por aqui no WhatsApp assim que puder."
)
MSG_HANDOFF_ALREADY = "A {handler_name} já foi avisada e vai falar contigo por aqui assim que puder 😊"
MSG_OPERATOR_NOTICE = "{full_name} quer falar com {handler_lower}\n\n{link}"
MSG_OPERATOR_PREFILL = "oi {first_name}! aqui é {handler_name}, pode falar 😊"

MSG_QUESTION_REMINDER = (
    'Peço que ao final da sua pergunta adicione um "?" para eu entender que concluíste ok? 😊'
)
MSG_QUESTION_TOO_SHORT = "Não percebi a tua pergunta. Podes escrevê-la novamente com um pouco mais de detalhe?"
MSG_GREETING = (
    "Oi! Tudo bem, obrigada! 😊 Em que posso ajudar? "
    "Se tiveres dúvidas sobre crédito habitação, escreve aqui que eu envio para as gestoras."
)
MSG_QUESTION_LIMIT = (
    "Chegaste ao limite de {limit} perguntas com a Joana 😊\n\n"
    "A partir daqui, escreve GESTORA para falar com a gestora e iniciar a análise do teu caso, "
    "ou FALAR COM {handler} se precisares falar diretamente com a {handler_name}."
)
MSG_NAVIGATION_HINT = (
    "Se a tua dúvida já foi esclarecida e estás pronto para avançar, escreve GESTORA para falar com a gestora "
    "e iniciar a análise do teu caso, ou FALAR COM {handler} se precisares falar diretamente com a {handler_name}."
)
MSG_FAQ_ANSWER_FOOTER = "Isto respondeu à tua dúvida? Se quiseres, podes reformular a pergunta."
MSG_NEW_PENDING = (
    "Ainda não temos respostas para essa pergunta. Enviamos sua dúvida para as gestoras e assim que tivermos "
    "um retorno delas eu vou te avisando por aqui ok? Fique à vontade para fazer outras perguntas 😊"
)
MSG_DUPLICATE_PENDING = (
    "Já temos uma dúvida muito parecida em análise. Assim que tivermos resposta das gestoras, avisamos por aqui. "
    "Fique à vontade para fazer outras perguntas 😊"
)
MSG_SERVICE_UNAVAILABLE = (
    "O serviço de dúvidas está temporariamente indisponível. "
    "Tenta novamente dentro de momentos ou escreve FALAR COM {handler} e vamos te ajudar."
)

MSG_WELCOME_GREETING = "{greeting}Que bom ter-te por aqui! Daqui a nada explico-te como funciona 😊"
MSG_WELCOME_INTRO = (
    "Meu nome é Joana, sou atendente virtual da {handler_name} e vou te ajudar por aqui :)"
)
MSG_WELCOME_PROCESS = (
    "Ajudamos-te em todo o processo de crédito habitação em Portugal: dúvidas, simulação, "
    "documentos e análise pela gestora de crédito."
)
MSG_WELCOME_CTA = "Quando estiveres pronto, escreve COMEÇAR para veres as opções."
MSG_DIRECT_WELCOME = "{greeting}Meu nome é Joana, sou atendente virtual da {handler_name} e vou te ajudar por aqui :)\r\n\r\nPara começar, escreve:\r\n\r\n{options}"

MSG_SIM_ASK_AGE = "Vamos fazer uma simulação rápida 😊 Qual é a tua idade?"
MSG_SIM_ASK_PROPERTY_VALUE = "Qual é o valor do imóvel que pretendes comprar (em euros)?"
MSG_SIM_ASK_TERM = "Em quantos anos gostarias de pagar o crédito?"
MSG_SIM_ASK_DOWN_PAYMENT = "Quanto tens de entrada (em euros)? Se não tiveres, escreve 0."
MSG_SIM_INVALID_AGE = "Preciso da tua idade em números, entre 18 e 75 anos."
MSG_SIM_INVALID_PROPERTY_VALUE = "Indica o valor do imóvel em euros, por exemplo 250000 ou 250 mil."
MSG_SIM_INVALID_TERM = "Indica o prazo em anos, entre 1 e {max_term}."
MSG_SIM_INVALID_DOWN_PAYMENT = "A entrada deve ser um valor entre 0 e o valor do imóvel."
MSG_SIM_RESULT = (
    "📊 *Simulação indicativa*\n"
    "Imóvel: {property_value} €\nEntrada: {down_payment} €\nFinanciamento: {principal} €\n"
    "Prazo: {term} anos\nTaxa anual considerada: {rate}%\n\n"
    "Prestação mensal estimada: *{installment} €*\n\n"
    "Valores meramente indicativos. Escreve GESTORA para uma análise real do teu caso."
)


def greeting_line(name: Optional[str]) -> str:
    return f"Oi {name}, tudo bem?\n" if name else "Oi, tudo bem?\n"


def handler_words(handler_name: str) -> dict:
    return {"handler": handler_name.upper(), "handler_name": handler_name, "handler_lower": handler_name.lower()}


def upload_link(base_url: str, lead_id) -> str:
    return f"{base_url.rstrip('/')}/upload/{lead_id}"


def operator_deep_link(contact_number: str, first: str, handler_name: str) -> str:
    prefill = MSG_OPERATOR_PREFILL.format(first_name=first, handler_name=handler_name)
    return f"https://wa.me/{contact_number}?text={quote(prefill)}"


def format_faq_answer(question: str, replies) -> str:
    msg = "📌 *Pergunta:*\n" + question.strip() + "\n\n"
    for reply in replies:
        msg += f"💬 *{reply.manager_name or 'Gestora'} (Gestora de crédito):*\n{reply.text.strip()}\n\n"
    return msg + MSG_FAQ_ANSWER_FOOTER


def format_amount(value: float) -> str:
    """pt-PT style: 1234567.8 -> "1 234 567,80"."""
    return f"{value:,.2f}".replace(",", " ").replace(".", ",")
