"""User-facing message templates (pt-BR)."""

PROGRAM_URL = "https://www.floreon.app.br/conscienc-ia"

# Shown in replies when no reset keyword is configured.
DEFAULT_RESET_WORD = "reset"

WELCOME_TEXT = (
    "Bem-vindo ao Conselheiro da Consciênc.IA! 🧠✨\n\n"
    "Estou aqui para analisar seu perfil digital e gerar uma Carta de Consciência personalizada "
    "com insights sobre sua personalidade empreendedora.\n\n"
    "Para começar, por favor me diga seu nome completo:"
)

NAME_REPROMPT = "Por favor, informe seu nome completo (pelo menos 2 letras) para que eu possa personalizar sua experiência:"

EMAIL_REPROMPT = (
    "O e-mail informado parece inválido. Por favor, envie um endereço de e-mail válido "
    "(ou digite \"pular\" para continuar sem e-mail):"
)

HANDLE_REPROMPT = (
    "Por favor, informe seu nome de usuário do Instagram (com ou sem @), "
    "ou digite \"não tenho\" para continuar sem Instagram:"
)

ASK_PERMISSION = (
    "Podemos buscar informações públicas do seu perfil para tornar sua Carta ainda mais especial? "
    "Seus dados não serão armazenados, apenas usados para esta experiência.\n\n"
    "(Responda com *Sim* ou *Não*)"
)

GENERATING_WITH_DATA = "Ótimo! Vou analisar seus dados públicos e preparar sua carta. ⏳"

GENERATING_WITHOUT_DATA = (
    "Tudo bem! Não usaremos dados públicos adicionais. "
    "Estou gerando sua Carta de Consciência com base apenas nas informações fornecidas... ✨"
)

GENERATING_WITHOUT_HANDLE = (
    "Sem problemas! Vou gerar sua Carta de Consciência com base nas informações que você me passou... ✨"
)

FINAL_MESSAGE = (
    "Espero que tenha gostado da sua Carta de Consciência personalizada! 🌟\n\n"
    "Se tiver alguma pergunta sobre como a IA pode transformar seu negócio e sua vida, é só me perguntar.\n\n"
    f"Conheça o Programa Consciênc.IA: {PROGRAM_URL}"
)

CORRUPTED_SESSION = (
    "Desculpe, não consegui recuperar o andamento da sua conversa e precisei reiniciá-la.\n\n" + WELCOME_TEXT
)

RESET_CONFIRMATION = "Sua experiência foi reiniciada com sucesso! Vamos começar novamente.\n\n" + WELCOME_TEXT


def ask_email(name: str) -> str:
    return (
        f"Obrigado, {name}! 😊\n\n"
        "Agora, por favor, me informe seu e-mail para que possamos manter contato após o evento.\n\n"
        "(Se preferir não compartilhar, digite \"pular\")"
    )


def ask_handle() -> str:
    return (
        "Perfeito! 👍\n\n"
        "Para criar uma carta verdadeiramente personalizada, me informe seu nome de usuário do Instagram "
        "(com ou sem @):\n\n"
        "Exemplo: @consciencia.ia\n\n"
        "(Se não tiver Instagram, digite \"não tenho\")"
    )


def followup_unavailable(name: str) -> str:
    greeting = f"Desculpe, {name}" if name else "Desculpe"
    return (
        f"{greeting}, estou com dificuldades para processar sua pergunta no momento.\n\n"
        f"Por favor, tente novamente mais tarde ou visite {PROGRAM_URL} para mais informações. 🙏"
    )


def still_generating(reset_word: str = DEFAULT_RESET_WORD) -> str:
    return (
        "Estou trabalhando na sua Carta de Consciência personalizada. Por favor, aguarde mais um pouco... ⏳\n\n"
        f"(Se quiser recomeçar, envie '{reset_word}')"
    )


def generation_failed(reset_word: str = DEFAULT_RESET_WORD) -> str:
    return (
        "Desculpe, ocorreu um erro ao gerar sua Carta de Consciência. "
        f"Por favor, envie '{reset_word}' para tentar novamente."
    )


def error_state_reply(reset_word: str = DEFAULT_RESET_WORD) -> str:
    return f"Não consegui concluir sua Carta de Consciência. Envie '{reset_word}' para recomeçar a experiência."


def try_again(reset_word: str = DEFAULT_RESET_WORD) -> str:
    return (
        "Desculpe, ocorreu um erro ao processar sua mensagem. "
        f"Por favor, tente novamente ou envie '{reset_word}' para reiniciar a experiência."
    )
