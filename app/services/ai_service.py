"""
AI Service
Thin JSON-only LLM client (Gemini or any OpenAI-compatible router) and the
session-notes sentiment analysis built on it.
"""
import json
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

import httpx

from app.core.error_handling import AppException
from config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "Você é um assistente que deve responder APENAS com um JSON válido, sem markdown, sem texto extra."
)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
HF_BASE_URL = "https://router.huggingface.co/v1"


class LLMError(AppException):
    """Provider failure carrying the HTTP status to surface to the client"""
    def __init__(self, message: str, status_code: int = 502, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=status_code, details=details)


def build_system_instruction(response_json_schema: Optional[Dict[str, Any]] = None) -> str:
    if not response_json_schema:
        return SYSTEM_INSTRUCTION
    schema = json.dumps(response_json_schema, indent=2, ensure_ascii=False)
    return (
        f"{SYSTEM_INSTRUCTION}\n\n"
        f"Siga este schema JSON (aproximado) para estruturar a resposta:\n{schema}"
    )


def _upstream_message(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return response.reason_phrase or default


class LLMService:
    """
    Invokes the configured provider and returns the parsed JSON answer.

    ``transport`` lets tests plug an ``httpx.MockTransport``.
    """

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or default_settings
        self.transport = transport

    @property
    def provider(self) -> str:
        return (self.config.AI_PROVIDER or "gemini").strip().lower()

    def is_configured(self) -> bool:
        provider = self.provider
        if provider == "gemini":
            return bool(self.config.GEMINI_API_KEY)
        if provider == "groq":
            return bool(self.config.GROQ_API_KEY)
        if provider in ("hf", "huggingface"):
            return bool(self.config.HF_TOKEN)
        return False

    async def invoke(self, prompt: str, response_json_schema: Optional[Dict[str, Any]] = None) -> Any:
        provider = self.provider

        if provider == "gemini":
            return await self._invoke_gemini(prompt, response_json_schema)

        if provider == "groq":
            return await self._invoke_openai_compatible(
                GROQ_BASE_URL, self.config.GROQ_API_KEY, self.config.GROQ_MODEL, prompt, response_json_schema
            )

        if provider in ("hf", "huggingface"):
            return await self._invoke_openai_compatible(
                HF_BASE_URL, self.config.HF_TOKEN, self.config.HF_MODEL, prompt, response_json_schema
            )

        raise LLMError("unknown_ai_provider", status_code=400)

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.config.HTTP_TIMEOUT_SECONDS, transport=self.transport) as client:
                return await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"AI provider {self.provider} unreachable: {e}")
            raise LLMError("ai_upstream_unreachable", status_code=502) from e

    async def _invoke_gemini(self, prompt: str, response_json_schema: Optional[Dict[str, Any]]) -> Any:
        api_key = self.config.GEMINI_API_KEY
        if not api_key:
            raise LLMError("GEMINI_API_KEY_not_configured", status_code=503)

        model = self.config.GEMINI_MODEL or "gemini-2.0-flash"
        response = await self._post(
            f"{GEMINI_BASE_URL}/models/{model}:generateContent",
            params={"key": api_key},
            json={
                "systemInstruction": {"parts": [{"text": build_system_instruction(response_json_schema)}]},
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": 0.2,
                    "responseMimeType": "application/json",
                },
            },
        )

        if not response.is_success:
            raise LLMError(_upstream_message(response, "gemini_error"), status_code=response.status_code)

        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text") or "" for part in parts)
        except (ValueError, KeyError, IndexError, TypeError):
            text = ""

        try:
            return json.loads(text)
        except ValueError:
            raise LLMError("gemini_returned_non_json", status_code=502)

    async def _invoke_openai_compatible(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        prompt: str,
        response_json_schema: Optional[Dict[str, Any]],
    ) -> Any:
        if not api_key:
            raise LLMError("AI_API_KEY_not_configured", status_code=503)

        response = await self._post(
            f"{base_url}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": model,
                "temperature": 0.2,
                "response_format": {"type": "json_object"},
                "messages": [
                    {"role": "system", "content": build_system_instruction(response_json_schema)},
                    {"role": "user", "content": prompt},
                ],
            },
        )

        if not response.is_success:
            raise LLMError(_upstream_message(response, "ai_error"), status_code=response.status_code)

        try:
            text = response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            text = ""

        try:
            return json.loads(text)
        except ValueError:
            raise LLMError("ai_returned_non_json", status_code=502)


# ---------------------------------------------------------------------------
# Session-notes analysis
# ---------------------------------------------------------------------------

SENTIMENT_LEVELS = ("muito_negativo", "negativo", "neutro", "positivo", "muito_positivo")

ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "overall_sentiment": {"type": "string"},
        "sentiment_score": {"type": "number"},
        "emotions_detected": {"type": "array", "items": {"type": "string"}},
        "key_themes": {"type": "array", "items": {"type": "string"}},
        "risk_indicators": {"type": "array", "items": {"type": "string"}},
        "positive_indicators": {"type": "array", "items": {"type": "string"}},
        "therapeutic_progress": {"type": "string"},
        "recommendations": {"type": "array", "items": {"type": "string"}},
        "summary": {"type": "string"},
    },
}

# Keyword lexicon for the offline heuristic (accent-free, lower case)
NEGATIVE_TERMS = {
    "ansiedade": "ansiedade",
    "ansios": "ansiedade",
    "triste": "tristeza",
    "tristeza": "tristeza",
    "medo": "medo",
    "raiva": "raiva",
    "irrita": "irritabilidade",
    "culpa": "culpa",
    "angustia": "angústia",
    "desanim": "desânimo",
    "choro": "tristeza",
    "insonia": "insônia",
    "sozinh": "solidão",
    "solidao": "solidão",
    "estresse": "estresse",
    "estressad": "estresse",
}
POSITIVE_TERMS = {
    "melhor": "melhora relatada",
    "melhora": "melhora relatada",
    "feliz": "alegria",
    "alegr": "alegria",
    "calm": "calma",
    "tranquil": "tranquilidade",
    "motivad": "motivação",
    "esperanc": "esperança",
    "progresso": "progresso percebido",
    "conquist": "conquistas",
    "apoio": "rede de apoio",
}
RISK_TERMS = {
    "suicid": "ideação suicida mencionada",
    "morrer": "pensamentos de morte",
    "autolesao": "autolesão mencionada",
    "se machucar": "autolesão mencionada",
    "cortar": "possível autolesão",
    "desesper": "desesperança",
    "sem saida": "desesperança",
}
THEME_TERMS = {
    "trabalho": "trabalho",
    "emprego": "trabalho",
    "familia": "família",
    "mae": "família",
    "pai": "família",
    "relacionamento": "relacionamentos",
    "namor": "relacionamentos",
    "casamento": "relacionamentos",
    "sono": "sono",
    "dorm": "sono",
    "escola": "estudos",
    "faculdade": "estudos",
    "luto": "luto",
    "saude": "saúde",
}


def _fold(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text or "")
    return "".join(ch for ch in normalized if not unicodedata.combining(ch)).lower()


def _hits(text: str, lexicon: Dict[str, str]) -> List[str]:
    found: List[str] = []
    for term, label in lexicon.items():
        if re.search(r"\b" + re.escape(term), text) and label not in found:
            found.append(label)
    return found


def build_analysis_prompt(session_notes: str, patient_name: Optional[str] = None, session_count: int = 0) -> str:
    patient_context = (
        f"Paciente: {patient_name}, Histórico de sessões: {session_count} sessões realizadas."
        if patient_name else ""
    )
    return f"""Você é um assistente de psicologia clínica. Analise as seguintes notas de sessão e forneça uma análise de sentimentos detalhada.

{patient_context}

NOTAS DA SESSÃO:
{session_notes}

Analise e retorne um JSON com a seguinte estrutura:
{{
  "overall_sentiment": "muito_negativo" | "negativo" | "neutro" | "positivo" | "muito_positivo",
  "sentiment_score": número de -1 a 1,
  "emotions_detected": ["lista de emoções principais identificadas"],
  "key_themes": ["temas principais abordados na sessão"],
  "risk_indicators": ["indicadores de risco identificados, se houver"],
  "positive_indicators": ["indicadores positivos identificados"],
  "therapeutic_progress": "avaliação do progresso terapêutico",
  "recommendations": ["recomendações para próximas sessões"],
  "summary": "resumo breve da análise"
}}

Seja preciso e profissional na análise. Identifique padrões emocionais, sinais de alerta e progressos terapêuticos."""


def heuristic_analysis(session_notes: str) -> Dict[str, Any]:
    """
    Keyword-based analysis with the same shape as the LLM answer.
    Used when no provider is configured or the provider fails.
    """
    text = _fold(session_notes)

    negatives = _hits(text, NEGATIVE_TERMS)
    positives = _hits(text, POSITIVE_TERMS)
    risks = _hits(text, RISK_TERMS)
    themes = _hits(text, THEME_TERMS)

    total = len(negatives) + len(positives) + 2 * len(risks)
    score = 0.0
    if total:
        score = round((len(positives) - len(negatives) - 2 * len(risks)) / total, 2)

    if score <= -0.6:
        sentiment = "muito_negativo"
    elif score < -0.1:
        sentiment = "negativo"
    elif score <= 0.1:
        sentiment = "neutro"
    elif score < 0.6:
        sentiment = "positivo"
    else:
        sentiment = "muito_positivo"

    recommendations: List[str] = []
    if risks:
        recommendations.append("Avaliar risco e considerar plano de segurança na próxima sessão")
    if negatives:
        recommendations.append("Explorar as emoções predominantes relatadas")
    if positives:
        recommendations.append("Reforçar os recursos e avanços identificados")
    if not recommendations:
        recommendations.append("Aprofundar a coleta de informações nas próximas sessões")

    progress = (
        "Sinais de progresso terapêutico presentes" if positives and not risks
        else "Progresso a ser avaliado com mais sessões"
    )

    return {
        "overall_sentiment": sentiment,
        "sentiment_score": score,
        "emotions_detected": negatives + [p for p in positives if p in ("alegria", "calma", "tranquilidade", "esperança", "motivação")],
        "key_themes": themes,
        "risk_indicators": risks,
        "positive_indicators": positives,
        "therapeutic_progress": progress,
        "recommendations": recommendations,
        "summary": (
            f"Análise automática por palavras-chave: sentimento {sentiment.replace('_', ' ')}, "
            f"{len(risks)} indicador(es) de risco."
        ),
        "source": "fallback",
    }


async def analyze_session_notes(
    session_notes: str,
    llm: Optional[LLMService] = None,
    patient_name: Optional[str] = None,
    session_count: int = 0,
) -> Dict[str, Any]:
    """Sentiment analysis of session notes: LLM first, keyword heuristic as fallback"""
    llm = llm or LLMService()

    if not llm.is_configured():
        logger.info("AI provider not configured; using keyword analysis")
        return heuristic_analysis(session_notes)

    try:
        result = await llm.invoke(
            build_analysis_prompt(session_notes, patient_name, session_count),
            ANALYSIS_SCHEMA,
        )
    except LLMError as e:
        logger.warning(f"LLM analysis failed ({e.status_code} {e.message}); using keyword analysis")
        return heuristic_analysis(session_notes)

    if not isinstance(result, dict):
        logger.warning("LLM analysis returned a non-object; using keyword analysis")
        return heuristic_analysis(session_notes)

    return {**result, "source": llm.provider}
