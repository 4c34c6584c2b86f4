"""Letter generation and post-letter conversation through the LLM provider."""

from typing import Optional

from app.logging_config import get_logger
from app.models.session import Session
from app.schemas.profile import ProfileData
from app.services.llm.base import LLMError, LLMProvider
from app.services.messages import PROGRAM_URL

logger = get_logger("ai_service")

NOT_AVAILABLE = "Não disponível"

LETTER_MAX_TOKENS = 2000
LETTER_TEMPERATURE = 0.8
FOLLOWUP_MAX_TOKENS = 500
FOLLOWUP_TEMPERATURE = 0.7
FOLLOWUP_HISTORY_TURNS = 4

# Short links the model sometimes invents for the program page.
_SHORT_LINKS = ("https://consciencia.ia", "http://consciencia.ia")

LETTER_SYSTEM_PROMPT = """Você é o Conselheiro da Consciênc.IA, um assistente criado para o evento MAPA DO LUCRO.

Gere uma "Carta de Consciência" personalizada para {name}, usando os dados abaixo.

DADOS DO PERFIL:
- Nome: {full_name}
- Instagram: {handle}
- Bio: "{bio}"
- Seguidores: {followers}
- Posts: {posts}
- Website: {website}
- Localização: {location}
- Hashtags: {hashtags}

A carta tem quatro seções, com emojis e linguagem inspiradora:
1. ✨ PERFIL COMPORTAMENTAL ✨ - traços de personalidade empreendedora, relacionados ao conceito Ikigai.
2. 🚀 DICAS PRÁTICAS DE IA NOS NEGÓCIOS 🚀 - três dicas específicas com ferramentas reais.
3. 💫 PÍLULA DE INSPIRAÇÃO 💫 - uma poesia curta (6 a 8 linhas) personalizada.
4. 🧭 RECOMENDAÇÕES ALINHADAS 🧭 - conecte tudo aos pilares ambiente, mindset, vendas e felicidade.

Quando um dado não estiver disponível, não invente fatos específicos sobre ele.
Escreva em português brasileiro. Separe as seções com uma linha em branco.
Encerre convidando para o Programa Consciênc.IA ({program_url}) e assine como "✨ Conselheiro da Consciênc.IA ✨"."""

LETTER_USER_PROMPT = "Gere a Carta de Consciência personalizada."

FOLLOWUP_SYSTEM_PROMPT = """Você é o Conselheiro da Consciênc.IA, assistente do evento MAPA DO LUCRO.
Você já gerou uma Carta de Consciência para {name}{handle_clause}.
Agora responda às perguntas da pessoa com orientações práticas sobre IA, negócios e desenvolvimento pessoal.
Tom inspirador e profissional, no máximo 3 parágrafos, em português brasileiro.
Quando fizer sentido, mencione o Programa Consciênc.IA ({program_url})."""


def _or_na(value) -> str:
    if value is None or value == "" or value == []:
        return NOT_AVAILABLE
    return str(value)


def _fix_links(text: str) -> str:
    for short in _SHORT_LINKS:
        text = text.replace(short, PROGRAM_URL)
    return text


def build_letter_messages(profile: ProfileData, name: str) -> list[dict]:
    system_prompt = LETTER_SYSTEM_PROMPT.format(
        name=name,
        full_name=profile.full_name or name,
        handle=f"@{profile.username}" if profile.username else NOT_AVAILABLE,
        bio=profile.bio or NOT_AVAILABLE,
        followers=_or_na(profile.followers_count),
        posts=_or_na(profile.posts_count),
        website=_or_na(profile.website_url),
        location=_or_na(profile.location),
        hashtags=", ".join(profile.hashtags) or NOT_AVAILABLE,
        program_url=PROGRAM_URL,
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": LETTER_USER_PROMPT},
    ]


def build_fallback_letter(name: Optional[str], handle: Optional[str] = None) -> str:
    """Deterministic letter used when the model is unavailable."""
    first_name = (name or "").split(" ")[0] or "empreendedor(a)"
    presence = (
        f"Sua presença digital em @{handle} mostra alguém que escolhe se expor e construir em público."
        if handle
        else "Você escolheu estar aqui, e isso já diz muito sobre sua vontade de crescer."
    )
    sections = [
        f"✨ Carta de Consciência para {first_name} ✨",
        "✨ PERFIL COMPORTAMENTAL ✨\n"
        f"{presence} Quem busca clareza sobre o próprio caminho já deu o passo mais difícil: "
        "olhar para si com honestidade. Seu Ikigai nasce do encontro entre o que você ama, "
        "o que faz bem, o que o mundo precisa e o que gera valor.",
        "🚀 DICAS PRÁTICAS DE IA NOS NEGÓCIOS 🚀\n"
        "1. Use um assistente de IA para rascunhar conteúdos e respostas a clientes, e revise com sua voz.\n"
        "2. Automatize tarefas repetitivas (agenda, follow-ups, planilhas) para liberar tempo estratégico.\n"
        "3. Peça à IA para analisar as perguntas dos seus clientes e descobrir o que eles mais valorizam.",
        "💫 PÍLULA DE INSPIRAÇÃO 💫\n"
        "Quem planta consciência colhe direção,\n"
        "cada passo pequeno vira construção.\n"
        "A tecnologia é ponte, não destino,\n"
        "o propósito é você quem define o caminho.",
        "🧭 RECOMENDAÇÕES ALINHADAS 🧭\n"
        "Cuide do seu ambiente, fortaleça seu mindset, venda com verdade e não abra mão da felicidade "
        "no processo. Lucro sustentável é consequência de alinhamento.",
        f"Conheça o Programa Consciênc.IA: {PROGRAM_URL}\n\n✨ Conselheiro da Consciênc.IA ✨",
    ]
    return "\n\n".join(sections)


class AIService:
    def __init__(self, provider: LLMProvider, model: Optional[str] = None):
        self.provider = provider
        self.model = model

    async def generate_letter(self, profile: ProfileData, name: str) -> str:
        """Generate the personalised letter. Raises LLMError when nothing usable comes back."""
        logger.info(f"Generating letter for {name} (profile={'empty' if profile.is_empty else 'enriched'})")
        response = await self.provider.generate(
            build_letter_messages(profile, name),
            model=self.model,
            temperature=LETTER_TEMPERATURE,
            max_tokens=LETTER_MAX_TOKENS,
        )
        letter = _fix_links(response.content or "").strip()
        if not letter:
            raise LLMError("empty letter returned by the model")
        return letter

    async def answer_followup(self, session: Session, question: str) -> str:
        """Answer a post-letter question. Raises LLMError on failure."""
        handle_clause = f", analisando o perfil do Instagram @{session.handle}" if session.handle else ""
        messages = [
            {
                "role": "system",
                "content": FOLLOWUP_SYSTEM_PROMPT.format(
                    name=session.first_name or "a pessoa",
                    handle_clause=handle_clause,
                    program_url=PROGRAM_URL,
                ),
            }
        ]
        for entry in session.conversation_log[-FOLLOWUP_HISTORY_TURNS:]:
            messages.append({"role": "user", "content": entry.user_message})
            if entry.bot_response:
                messages.append({"role": "assistant", "content": entry.bot_response})
        messages.append({"role": "user", "content": question})

        response = await self.provider.generate(
            messages,
            model=self.model,
            temperature=FOLLOWUP_TEMPERATURE,
            max_tokens=FOLLOWUP_MAX_TOKENS,
        )
        answer = _fix_links(response.content or "").strip()
        if not answer:
            raise LLMError("empty follow-up answer returned by the model")
        return answer
