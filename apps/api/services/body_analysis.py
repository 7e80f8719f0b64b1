"""
Body photo analysis (OpenAI vision).

The model is asked for a structured Portuguese JSON report; the handful of
fields that map onto onboarding answers are lifted into a suggested profile.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from openai import OpenAI

from core.config import settings
from core.exceptions import MalformedResponse
from services.llm_json import extract_json_object

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Você é um especialista em análise corporal e fitness. Analise a imagem fornecida e retorne um objeto JSON com os campos:

- peso_estimado (kg, número)
- altura_estimada (cm, número)
- idade_estimada (anos, número)
- sexo ("masculino" ou "feminino")
- tipo_corporal, percentual_gordura, massa_muscular, postura
- nivel_condicionamento, areas_desenvolvidas, areas_prioritarias
- objetivo_recomendado (perda de peso, ganho de massa, definição ou manutenção) e justificativa
- frequencia_semanal (dias de treino por semana, número)
- equipamento_sugerido (academia, casa, elásticos, peso corporal ou ar livre)
- orcamento_mensal (R$, número)
- observacoes"""

USER_PROMPT = "Analise esta imagem e forneça todas as informações solicitadas no formato JSON."

# Substring match against the free-text answers, first hit wins.
GOAL_KEYWORDS = (
    ("perda de peso", "fat_loss"),
    ("perda de gordura", "fat_loss"),
    ("ganho de massa", "hypertrophy"),
    ("hipertrofia", "hypertrophy"),
    ("defini", "definition"),
    ("manuten", "definition"),
)

EQUIPMENT_KEYWORDS = (
    ("academia", "full_gym"),
    ("casa", "home_basic"),
    ("elástico", "resistance_bands"),
    ("elastico", "resistance_bands"),
    ("peso corporal", "bodyweight"),
    ("ar livre", "bodyweight"),
)


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if isinstance(value, str):
        cleaned = value.strip().lower().replace(",", ".")
        for suffix in ("kg", "cm", "anos", "dias"):
            cleaned = cleaned.replace(suffix, "")
        try:
            number = float(cleaned.strip())
        except ValueError:
            return None
        return number if number > 0 else None
    return None


def _keyword(value: Any, table) -> Optional[str]:
    if not isinstance(value, str):
        return None
    lowered = value.lower()
    for needle, result in table:
        if needle in lowered:
            return result
    return None


def suggest_profile_from_analysis(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """Onboarding fields that can be pre-filled from an analysis; absent keys are omitted."""
    suggested: Dict[str, Any] = {}

    weight = _positive_number(analysis.get("peso_estimado"))
    if weight is not None:
        suggested["weight_kg"] = weight
    height = _positive_number(analysis.get("altura_estimada"))
    if height is not None:
        suggested["height_cm"] = height
    age = _positive_number(analysis.get("idade_estimada"))
    if age is not None:
        suggested["age_years"] = int(age)

    sex = analysis.get("sexo")
    if isinstance(sex, str) and sex.strip():
        suggested["sex"] = "male" if "masc" in sex.lower() else "female"

    goal = _keyword(analysis.get("objetivo_recomendado"), GOAL_KEYWORDS)
    if goal:
        suggested["goal"] = goal

    days = _positive_number(analysis.get("frequencia_semanal"))
    if days is not None:
        suggested["training_days"] = max(1, min(7, int(days)))

    equipment = _keyword(analysis.get("equipamento_sugerido"), EQUIPMENT_KEYWORDS)
    if equipment:
        suggested["equipment"] = equipment

    return suggested


def analyze_body_image(image_url: str, client: Optional[OpenAI] = None) -> Dict[str, Any]:
    """
    Run the vision model on `image_url`.

    Returns analysis (or raw_analysis when the model did not answer in JSON),
    raw_text, model_used, tokens_used and suggested_profile.

    Raises:
        ValueError: empty image_url.
        RuntimeError: OpenAI not configured, unreachable or empty answer.
    """
    if not image_url or not image_url.strip():
        raise ValueError("image_url is required")

    if client is None:
        if not settings.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY not configured")
        client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_S,
            max_retries=settings.OPENAI_MAX_RETRIES,
        )

    model = settings.OPENAI_VISION_MODEL
    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                    ],
                },
            ],
            max_tokens=2000,
            temperature=0.3,
        )
    except Exception as e:
        logger.error(f"OpenAI image analysis failed: {e}")
        raise RuntimeError("OpenAI request failed") from e

    raw_text = response.choices[0].message.content if response.choices else None
    if not raw_text:
        raise RuntimeError("Model returned an empty analysis")

    usage = getattr(response, "usage", None)
    result: Dict[str, Any] = {
        "raw_text": raw_text,
        "model_used": model,
        "tokens_used": int(getattr(usage, "total_tokens", 0) or 0),
    }
    try:
        analysis = extract_json_object(raw_text)
    except MalformedResponse:
        logger.warning("Image analysis was not valid JSON; returning raw text")
        result["analysis"] = None
        result["raw_analysis"] = raw_text
        result["suggested_profile"] = {}
        return result

    result["analysis"] = analysis
    result["suggested_profile"] = suggest_profile_from_analysis(analysis)
    return result
