"""
Meal and workout plan generation (OpenAI).

Prompts ask for Brazilian foods and exercises in Portuguese; responses come
back as JSON and are decoded into typed days before anything is stored.
How many days are requested follows the plan gating limits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, List, Optional
from uuid import UUID

from openai import OpenAI
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import InvalidInput, MalformedResponse
from models import MealPlanItem, WorkoutPlanItem
from services.llm_json import extract_json
from services.macro_calculator import Goal, MacroTargets
from services.plan_gating import days_to_generate

logger = logging.getLogger(__name__)

MEALS_PER_DAY = 5


class Equipment(str, Enum):
    FULL_GYM = "full_gym"
    HOME_BASIC = "home_basic"
    RESISTANCE_BANDS = "resistance_bands"
    BODYWEIGHT = "bodyweight"


EQUIPMENT_ALIASES: dict[str, Equipment] = {
    "full_gym": Equipment.FULL_GYM,
    "academia": Equipment.FULL_GYM,
    "home_basic": Equipment.HOME_BASIC,
    "casa": Equipment.HOME_BASIC,
    "resistance_bands": Equipment.RESISTANCE_BANDS,
    "elasticos": Equipment.RESISTANCE_BANDS,
    "bodyweight": Equipment.BODYWEIGHT,
    "peso_corporal": Equipment.BODYWEIGHT,
    "home_minimal": Equipment.BODYWEIGHT,
    "outdoor": Equipment.BODYWEIGHT,
}

EQUIPMENT_DESCRIPTIONS: dict[Equipment, str] = {
    Equipment.FULL_GYM: "academia completa com máquinas e pesos livres",
    Equipment.HOME_BASIC: "equipamentos básicos de casa (halteres, barras)",
    Equipment.RESISTANCE_BANDS: "elásticos de resistência",
    Equipment.BODYWEIGHT: "apenas peso corporal (calistenia)",
}

GOAL_LABELS: dict[Goal, str] = {
    Goal.HYPERTROPHY: "hipertrofia (ganho de massa muscular)",
    Goal.DEFINITION: "definição muscular",
    Goal.FAT_LOSS: "perda de gordura",
}


def parse_equipment(value: Any) -> Equipment:
    if isinstance(value, Equipment):
        return value
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    equipment = EQUIPMENT_ALIASES.get(key)
    if equipment is None:
        raise InvalidInput(f"Unrecognized equipment: {value!r}", field="equipment")
    return equipment


@dataclass(frozen=True)
class Meal:
    name: str
    foods: str
    protein: float
    carbs: float
    fats: float
    calories: float


@dataclass(frozen=True)
class MealPlanDay:
    day: int
    meals: List[Meal] = field(default_factory=list)


@dataclass(frozen=True)
class Exercise:
    name: str
    sets: int
    reps: str
    rest_s: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class WorkoutDay:
    day: int
    name: Optional[str]
    exercises: List[Exercise] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _days_list(parsed: Any) -> list:
    if isinstance(parsed, dict):
        for key in ("plan", "days"):
            if isinstance(parsed.get(key), list):
                return parsed[key]
        raise MalformedResponse("Model response has no 'plan' or 'days' list")
    if isinstance(parsed, list):
        return parsed
    raise MalformedResponse("Model response is neither an object nor a list")


def _number(obj: dict, key: str) -> float:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponse(f"Field {key!r} must be a number, got {value!r}")
    return float(value)


def _integer(obj: dict, key: str) -> int:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise MalformedResponse(f"Field {key!r} must be an integer, got {value!r}")
    return int(value)


def _text(obj: dict, key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponse(f"Field {key!r} must be a non-empty string")
    return value.strip()


def _reps(obj: dict) -> str:
    # "8-12", "até a falha" or a plain number
    value = obj.get("reps")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if int(value) == value else str(value)
    return _text(obj, "reps")


def _object(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise MalformedResponse(f"{what} must be an object")
    return value


def decode_meal_plan(parsed: Any) -> List[MealPlanDay]:
    days: List[MealPlanDay] = []
    for raw_day in _days_list(parsed):
        raw_day = _object(raw_day, "Meal plan day")
        raw_meals = raw_day.get("meals")
        if not isinstance(raw_meals, list) or not raw_meals:
            raise MalformedResponse("Meal plan day has no meals")
        meals = []
        for raw_meal in raw_meals:
            raw_meal = _object(raw_meal, "Meal")
            meals.append(
                Meal(
                    name=_text(raw_meal, "name"),
                    foods=_text(raw_meal, "foods"),
                    protein=_number(raw_meal, "protein"),
                    carbs=_number(raw_meal, "carbs"),
                    fats=_number(raw_meal, "fats"),
                    calories=_number(raw_meal, "calories"),
                )
            )
        days.append(MealPlanDay(day=_integer(raw_day, "day"), meals=meals))
    if not days:
        raise MalformedResponse("Meal plan is empty")
    return sorted(days, key=lambda d: d.day)


def decode_workout_plan(parsed: Any) -> List[WorkoutDay]:
    days: List[WorkoutDay] = []
    for raw_day in _days_list(parsed):
        raw_day = _object(raw_day, "Workout day")
        raw_exercises = raw_day.get("exercises")
        if not isinstance(raw_exercises, list) or not raw_exercises:
            raise MalformedResponse("Workout day has no exercises")
        exercises = []
        for raw_ex in raw_exercises:
            raw_ex = _object(raw_ex, "Exercise")
            notes = raw_ex.get("notes")
            exercises.append(
                Exercise(
                    name=_text(raw_ex, "name"),
                    sets=_integer(raw_ex, "sets"),
                    reps=_reps(raw_ex),
                    rest_s=_integer(raw_ex, "rest"),
                    notes=notes if isinstance(notes, str) else None,
                )
            )
        name = raw_day.get("name")
        days.append(
            WorkoutDay(
                day=_integer(raw_day, "day"),
                name=name if isinstance(name, str) else None,
                exercises=exercises,
            )
        )
    if not days:
        raise MalformedResponse("Workout plan is empty")
    return sorted(days, key=lambda d: d.day)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def build_meal_prompt(macros: MacroTargets, goal: Goal, weekly_budget: float, days: int) -> str:
    return f"""Você é um nutricionista especializado. Crie um plano alimentar de {days} dias com as seguintes especificações:

Meta diária:
- Calorias: {macros.calories} kcal
- Proteínas: {macros.protein_g}g
- Carboidratos: {macros.carbs_g}g
- Gorduras: {macros.fats_g}g

Objetivo: {GOAL_LABELS[goal]}
Orçamento semanal: R$ {weekly_budget:.2f}

Regras:
1. Crie {MEALS_PER_DAY} refeições por dia (café, lanche manhã, almoço, lanche tarde, jantar)
2. Use alimentos acessíveis e disponíveis no Brasil
3. Respeite o orçamento fornecido
4. Forneça substituições inteligentes quando possível

Retorne APENAS um objeto JSON no formato:
{{"plan": [{{"day": 1, "meals": [{{"name": "Café da Manhã", "foods": "2 ovos mexidos + 2 fatias de pão integral", "protein": 20, "carbs": 45, "fats": 12, "calories": 360}}]}}]}}"""


def build_workout_prompt(goal: Goal, training_days: int, equipment: Equipment, days: int) -> str:
    return f"""Você é um personal trainer especializado. Crie um plano de treino de {days} dias com as seguintes especificações:

Objetivo: {GOAL_LABELS[goal]}
Equipamentos disponíveis: {EQUIPMENT_DESCRIPTIONS[equipment]}
Dias de treino por semana: {training_days}

Regras:
1. Crie treinos completos e balanceados
2. Inclua aquecimento e alongamento
3. Especifique séries, repetições e tempo de descanso em segundos
4. Adapte os exercícios ao equipamento disponível

Retorne APENAS um objeto JSON no formato:
{{"plan": [{{"day": 1, "name": "Treino A - Peito e Tríceps", "exercises": [{{"name": "Supino reto", "sets": 4, "reps": "8-12", "rest": 90, "notes": "Controle a descida"}}]}}]}}"""


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


def get_openai_client() -> OpenAI:
    if not settings.OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY not configured")
    return OpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.OPENAI_TIMEOUT_S,
        max_retries=settings.OPENAI_MAX_RETRIES,
    )


def _complete_json(client: OpenAI, prompt: str) -> Any:
    try:
        response = client.chat.completions.create(
            model=settings.OPENAI_PLAN_MODEL,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
            temperature=0.7,
        )
    except Exception as e:
        logger.error(f"OpenAI plan generation failed: {e}")
        raise RuntimeError("OpenAI request failed") from e

    content = response.choices[0].message.content or ""
    return extract_json(content)


def generate_meal_plan(
    macros: MacroTargets,
    goal: Goal,
    weekly_budget: float,
    is_premium: bool,
    client: Optional[OpenAI] = None,
) -> List[MealPlanDay]:
    """
    Ask the model for a meal plan hitting `macros`.

    Raises:
        RuntimeError: OpenAI not configured or unreachable.
        MalformedResponse: output did not decode into meal days.
    """
    meal_days, _ = days_to_generate(is_premium, 1)
    client = client or get_openai_client()
    parsed = _complete_json(client, build_meal_prompt(macros, goal, weekly_budget, meal_days))
    return decode_meal_plan(parsed)[:meal_days]


def generate_workout_plan(
    goal: Goal,
    training_days: int,
    equipment: Equipment,
    is_premium: bool,
    client: Optional[OpenAI] = None,
) -> List[WorkoutDay]:
    """Same contract as generate_meal_plan, for training days."""
    _, workout_days = days_to_generate(is_premium, training_days)
    client = client or get_openai_client()
    parsed = _complete_json(client, build_workout_prompt(goal, training_days, equipment, workout_days))
    return decode_workout_plan(parsed)[:workout_days]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save_meal_plan(db: Session, user_id: UUID, days: List[MealPlanDay]) -> int:
    """Replace the user's stored meal plan. Returns the number of meals stored."""
    db.query(MealPlanItem).filter(MealPlanItem.user_id == user_id).delete(synchronize_session=False)
    count = 0
    for day in days:
        for position, meal in enumerate(day.meals):
            db.add(
                MealPlanItem(
                    user_id=user_id,
                    day=day.day,
                    position=position,
                    meal_name=meal.name,
                    foods=meal.foods,
                    protein=meal.protein,
                    carbs=meal.carbs,
                    fats=meal.fats,
                    calories=meal.calories,
                )
            )
            count += 1
    db.flush()
    return count


def save_workout_plan(db: Session, user_id: UUID, days: List[WorkoutDay]) -> int:
    db.query(WorkoutPlanItem).filter(WorkoutPlanItem.user_id == user_id).delete(synchronize_session=False)
    count = 0
    for day in days:
        for position, ex in enumerate(day.exercises):
            db.add(
                WorkoutPlanItem(
                    user_id=user_id,
                    day=day.day,
                    position=position,
                    workout_name=day.name,
                    exercise_name=ex.name,
                    sets=ex.sets,
                    reps=ex.reps,
                    rest_s=ex.rest_s,
                    notes=ex.notes,
                )
            )
            count += 1
    db.flush()
    return count
