import json
from types import SimpleNamespace

import pytest

from models import MealPlanItem, WorkoutPlanItem


def _meal_days(n):
    return [
        {
            "day": d,
            "meals": [
                {"name": "Almoço", "foods": "Arroz, feijão e frango", "protein": 45, "carbs": 80, "fats": 15, "calories": 640}
            ],
        }
        for d in range(1, n + 1)
    ]


def _workout_days(n):
    return [
        {
            "day": d,
            "name": f"Treino {chr(64 + d)}",
            "exercises": [{"name": "Agachamento", "sets": 4, "reps": "8-12", "rest": 90}],
        }
        for d in range(1, n + 1)
    ]


class _Client:
    def __init__(self, *contents):
        self.contents = list(contents)
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        content = self.contents.pop(0)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def openai_stub(monkeypatch):
    def _install(*contents):
        fake = _Client(*contents)
        monkeypatch.setattr("routers.plans.get_openai_client", lambda: fake)
        return fake

    return _install


def _store_week(db, user):
    for day in range(1, 8):
        db.add(
            MealPlanItem(
                user_id=user.id, day=day, position=0, meal_name="Almoço", foods="Arroz",
                protein=40, carbs=70, fats=10, calories=530,
            )
        )
    for day in range(1, 5):
        db.add(
            WorkoutPlanItem(
                user_id=user.id, day=day, position=0, workout_name=f"Treino {day}",
                exercise_name="Supino", sets=4, reps="10", rest_s=60,
            )
        )
    db.commit()


class TestStoredPlans:
    def test_free_user_sees_gated_plan(self, client, auth_headers, db_session, test_user, test_profile):
        _store_week(db_session, test_user)

        body = client.get("/v1/plans", headers=auth_headers).json()

        assert body["is_premium"] is False
        assert [d["day"] for d in body["meal_plan"]] == [1, 2, 3]
        assert [d["day"] for d in body["workout_plan"]] == [1, 2]
        assert body["locked_meal_days"] == 4
        assert body["locked_workout_days"] == 2
        assert body["max_meal_days"] == 3

    def test_premium_user_sees_everything(self, client, auth_headers, db_session, test_user, make_profile):
        make_profile(test_user, is_premium=True)
        _store_week(db_session, test_user)

        body = client.get("/v1/plans", headers=auth_headers).json()

        assert len(body["meal_plan"]) == 7
        assert len(body["workout_plan"]) == 4
        assert body["locked_meal_days"] == 0
        assert body["workout_plan"][0]["exercises"][0] == {
            "name": "Supino", "sets": 4, "reps": "10", "rest_s": 60, "notes": None,
        }

    def test_no_plans_yet(self, client, auth_headers, test_profile):
        body = client.get("/v1/plans", headers=auth_headers).json()
        assert body["meal_plan"] == []
        assert body["workout_plan"] == []

    def test_requires_profile(self, client, auth_headers):
        assert client.get("/v1/plans", headers=auth_headers).status_code == 404


class TestGenerate:
    def test_generate_for_free_user(self, client, auth_headers, db_session, test_user, test_profile, openai_stub):
        openai_stub(json.dumps({"plan": _meal_days(7)}), json.dumps({"plan": _workout_days(4)}))

        resp = client.post("/v1/plans/generate", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert [d["day"] for d in body["meal_plan"]] == [1, 2, 3]
        assert [d["name"] for d in body["workout_plan"]] == ["Treino A", "Treino B"]
        # Only what the free tier may see is ever stored.
        db_session.expire_all()
        assert db_session.query(MealPlanItem).count() == 3
        assert db_session.query(WorkoutPlanItem).count() == 2
        assert body["locked_meal_days"] == 0

    def test_regenerate_replaces_plan(self, client, auth_headers, db_session, test_user, make_profile, openai_stub):
        make_profile(test_user, is_premium=True, training_days=3)
        _store_week(db_session, test_user)
        openai_stub(json.dumps({"plan": _meal_days(7)}), json.dumps({"plan": _workout_days(3)}))

        body = client.post("/v1/plans/generate", headers=auth_headers).json()

        assert len(body["meal_plan"]) == 7
        assert len(body["workout_plan"]) == 3
        db_session.expire_all()
        assert db_session.query(WorkoutPlanItem).filter(WorkoutPlanItem.exercise_name == "Supino").count() == 0

    def test_malformed_output_keeps_old_plan(self, client, auth_headers, db_session, test_user, test_profile, openai_stub):
        _store_week(db_session, test_user)
        openai_stub("Desculpe, não consigo montar o plano.")

        resp = client.post("/v1/plans/generate", headers=auth_headers)

        assert resp.status_code == 502
        db_session.expire_all()
        assert db_session.query(MealPlanItem).count() == 7

    def test_openai_not_configured(self, client, auth_headers, test_profile, monkeypatch):
        from core.config import settings

        monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
        assert client.post("/v1/plans/generate", headers=auth_headers).status_code == 503
