"""
Plan generation: decoding model output, prompt content, day limits and
persistence. OpenAI is replaced by a fake client throughout.
"""
import json
from types import SimpleNamespace

import pytest

from core.config import settings
from core.exceptions import InvalidInput, MalformedResponse
from models import MealPlanItem, WorkoutPlanItem
from services.macro_calculator import Goal, MacroTargets
from services.plan_generation import (
    Equipment,
    build_meal_prompt,
    build_workout_prompt,
    decode_meal_plan,
    decode_workout_plan,
    generate_meal_plan,
    generate_workout_plan,
    get_openai_client,
    parse_equipment,
    save_meal_plan,
    save_workout_plan,
)


MACROS = MacroTargets(calories=3050, protein_g=165, carbs_g=269, fats_g=66)


def _meal_day(day):
    return {
        "day": day,
        "meals": [
            {"name": "Café da Manhã", "foods": "Ovos + pão", "protein": 20, "carbs": 45, "fats": 12, "calories": 360},
            {"name": "Almoço", "foods": "Arroz, feijão e frango", "protein": 45, "carbs": 80.5, "fats": 15, "calories": 640},
        ],
    }


def _workout_day(day):
    return {
        "day": day,
        "name": f"Treino {day}",
        "exercises": [
            {"name": "Agachamento", "sets": 4, "reps": "8-12", "rest": 90, "notes": "Desça até 90 graus"},
            {"name": "Prancha", "sets": 3, "reps": 30, "rest": 45},
        ],
    }


class FakeOpenAI:
    """Stands in for openai.OpenAI: records prompts, returns canned content."""

    def __init__(self, *contents, error=None):
        self.contents = list(contents)
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        content = self.contents.pop(0)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestDecoding:
    def test_meal_plan(self):
        days = decode_meal_plan({"plan": [_meal_day(2), _meal_day(1)]})
        assert [d.day for d in days] == [1, 2]
        assert days[0].meals[1].name == "Almoço"
        assert days[0].meals[1].carbs == 80.5

    def test_accepts_days_key_and_bare_list(self):
        assert decode_meal_plan({"days": [_meal_day(1)]})[0].day == 1
        assert decode_workout_plan([_workout_day(1)])[0].name == "Treino 1"

    def test_workout_plan(self):
        day = decode_workout_plan({"plan": [_workout_day(1)]})[0]
        squat, plank = day.exercises
        assert squat.rest_s == 90
        assert squat.reps == "8-12"
        assert squat.notes == "Desça até 90 graus"
        assert plank.reps == "30"
        assert plank.notes is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"plan": []},
            {"menu": [_meal_day(1)]},
            "plan",
            {"plan": [{"day": 1, "meals": []}]},
            {"plan": [{"day": "um", "meals": _meal_day(1)["meals"]}]},
            {"plan": [{"day": 1, "meals": [{"name": "Almoço", "foods": "x", "protein": "muito"}]}]},
            {"plan": [{"day": 1, "meals": [{"name": "", "foods": "x", "protein": 1, "carbs": 1, "fats": 1, "calories": 1}]}]},
        ],
    )
    def test_malformed_meal_plan(self, payload):
        with pytest.raises(MalformedResponse):
            decode_meal_plan(payload)

    @pytest.mark.parametrize(
        "exercise",
        [
            {"name": "Supino", "sets": 3.5, "reps": "10", "rest": 60},
            {"name": "Supino", "sets": True, "reps": "10", "rest": 60},
            {"name": "Supino", "sets": 3, "reps": "10"},
            {"name": "Supino", "sets": 3, "reps": None, "rest": 60},
        ],
    )
    def test_malformed_exercise(self, exercise):
        with pytest.raises(MalformedResponse):
            decode_workout_plan([{"day": 1, "exercises": [exercise]}])


class TestPrompts:
    def test_meal_prompt_carries_targets(self):
        prompt = build_meal_prompt(MACROS, Goal.HYPERTROPHY, 300, 3)
        assert "3050 kcal" in prompt
        assert "165g" in prompt
        assert "R$ 300.00" in prompt
        assert "plano alimentar de 3 dias" in prompt

    def test_workout_prompt_describes_equipment(self):
        prompt = build_workout_prompt(Goal.FAT_LOSS, 4, Equipment.BODYWEIGHT, 2)
        assert "peso corporal" in prompt
        assert "perda de gordura" in prompt
        assert "Dias de treino por semana: 4" in prompt


class TestEquipment:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("full_gym", Equipment.FULL_GYM),
            ("Academia", Equipment.FULL_GYM),
            ("home-basic", Equipment.HOME_BASIC),
            ("home_minimal", Equipment.BODYWEIGHT),
            ("peso corporal", Equipment.BODYWEIGHT),
        ],
    )
    def test_aliases(self, raw, expected):
        assert parse_equipment(raw) is expected

    def test_unknown(self):
        with pytest.raises(InvalidInput):
            parse_equipment("piscina")


class TestGeneration:
    def test_free_meal_plan_is_three_days(self):
        client = FakeOpenAI(json.dumps({"plan": [_meal_day(d) for d in range(1, 8)]}))

        days = generate_meal_plan(MACROS, Goal.HYPERTROPHY, 300, is_premium=False, client=client)

        assert [d.day for d in days] == [1, 2, 3]
        call = client.calls[0]
        assert call["response_format"] == {"type": "json_object"}
        assert call["model"] == settings.OPENAI_PLAN_MODEL
        assert "3 dias" in call["messages"][0]["content"]

    def test_premium_workout_follows_training_days(self):
        client = FakeOpenAI("```json\n" + json.dumps({"plan": [_workout_day(d) for d in range(1, 6)]}) + "\n```")

        days = generate_workout_plan(Goal.DEFINITION, 5, Equipment.FULL_GYM, is_premium=True, client=client)

        assert len(days) == 5
        assert "5 dias" in client.calls[0]["messages"][0]["content"]

    def test_free_workout_is_capped_at_two_days(self):
        client = FakeOpenAI(json.dumps({"plan": [_workout_day(d) for d in range(1, 5)]}))
        days = generate_workout_plan(Goal.DEFINITION, 4, Equipment.FULL_GYM, is_premium=False, client=client)
        assert [d.day for d in days] == [1, 2]

    def test_non_json_output(self):
        with pytest.raises(MalformedResponse):
            generate_meal_plan(MACROS, Goal.HYPERTROPHY, 300, False, client=FakeOpenAI("Desculpe, não posso."))

    def test_openai_failure_is_runtime_error(self):
        client = FakeOpenAI(error=ConnectionError("timeout"))
        with pytest.raises(RuntimeError):
            generate_meal_plan(MACROS, Goal.HYPERTROPHY, 300, False, client=client)

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            get_openai_client()


class TestPersistence:
    def test_save_replaces_previous_plan(self, db_session, test_user):
        first = decode_meal_plan([_meal_day(1), _meal_day(2)])
        assert save_meal_plan(db_session, test_user.id, first) == 4
        assert save_meal_plan(db_session, test_user.id, first[:1]) == 2
        db_session.commit()

        rows = db_session.query(MealPlanItem).order_by(MealPlanItem.position).all()
        assert [(r.day, r.position, r.meal_name) for r in rows] == [(1, 0, "Café da Manhã"), (1, 1, "Almoço")]

    def test_save_workout(self, db_session, test_user):
        count = save_workout_plan(db_session, test_user.id, decode_workout_plan([_workout_day(1)]))
        db_session.commit()

        assert count == 2
        row = db_session.query(WorkoutPlanItem).filter(WorkoutPlanItem.position == 0).one()
        assert row.workout_name == "Treino 1"
        assert row.rest_s == 90
        assert row.reps == "8-12"
