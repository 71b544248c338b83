"""Cap shuffle endpoint tests."""
from conftest import MockRedis, ScriptedRNG, make_prize
from fastapi.testclient import TestClient

from prizegame.logic.catalog import find_prize
from prizegame.logic.models import GameSettings, default_game_settings


PLAYER_ID = "test-player-shuffle"
HEADERS = {"X-Player-Id": PLAYER_ID}


def with_shuffle_catalog(prizes, probability: float) -> GameSettings:
    return default_game_settings().model_copy(
        update={"shuffle_prizes": prizes, "shuffle_winning_probability": probability}
    )


def pick(client: TestClient, slot: int):
    return client.post("/shuffle/pick", headers=HEADERS, json={"slot": slot})


class TestShuffleState:
    def test_new_player_is_idle(self, client_with_mock_redis: TestClient):
        response = client_with_mock_redis.get("/shuffle/state", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "IDLE"
        assert sorted(data["slots"]) == list(range(9))
        assert data["picks"] == []
        assert data["depleted"] is False
        assert data["resetAfterMs"] > 0

    def test_depleted_catalog_reports_no_prizes_left(
        self, client_with_mock_redis: TestClient, mock_redis: MockRedis
    ):
        mock_redis.put_settings(with_shuffle_catalog([make_prize("1", amount=0)], 0.5))
        data = client_with_mock_redis.get("/shuffle/state", headers=HEADERS).json()
        assert data["phase"] == "NO_PRIZES_LEFT"
        assert data["depleted"] is True


class TestShuffleRound:
    def test_forced_win_consumes_one_unit(
        self,
        client_with_mock_redis: TestClient,
        mock_redis: MockRedis,
        scripted_rng: ScriptedRNG,
    ):
        mock_redis.put_settings(with_shuffle_catalog([make_prize("1", amount=5)], 1.0))

        first = pick(client_with_mock_redis, 0)
        assert first.status_code == 200
        first_data = first.json()
        assert first_data["phase"] == "FIRST_PICKED"
        assert first_data["reveal"]["prizeId"] == "1"
        assert first_data["reveal"]["slot"] == 0
        assert find_prize(mock_redis.stored_settings().shuffle_prizes, "1").amount == 4

        second = pick(client_with_mock_redis, 4).json()
        assert second["phase"] == "RESOLVED"
        assert second["reveal"]["prizeId"] == "1"
        assert second["outcome"] == {"matched": True, "prizeId": "1"}
        assert len(second["picks"]) == 2
        # The match itself takes nothing more
        assert find_prize(mock_redis.stored_settings().shuffle_prizes, "1").amount == 4

    def test_forced_loss_reveals_retired_prize(
        self,
        client_with_mock_redis: TestClient,
        mock_redis: MockRedis,
        scripted_rng: ScriptedRNG,
    ):
        prizes = [
            make_prize("1", amount=5),
            make_prize("2", amount=5, is_active=False, image="https://img.test/2.png"),
        ]
        mock_redis.put_settings(with_shuffle_catalog(prizes, 0.0))

        pick(client_with_mock_redis, 0)
        second = pick(client_with_mock_redis, 1).json()
        assert second["reveal"]["prizeId"] == "2"
        assert second["reveal"]["image"] == "https://img.test/2.png"
        assert second["outcome"]["matched"] is False
        assert second["outcome"]["prizeId"] is None

    def test_same_slot_twice_rejected(
        self, client_with_mock_redis: TestClient, scripted_rng: ScriptedRNG
    ):
        pick(client_with_mock_redis, 3)
        response = pick(client_with_mock_redis, 3)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PICK"

    def test_slot_off_the_board_rejected(self, client_with_mock_redis: TestClient):
        response = pick(client_with_mock_redis, 9)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PICK"

    def test_pick_after_resolution_requires_reset(
        self, client_with_mock_redis: TestClient, scripted_rng: ScriptedRNG
    ):
        pick(client_with_mock_redis, 0)
        pick(client_with_mock_redis, 1)
        response = pick(client_with_mock_redis, 2)
        assert response.status_code == 400

        reset = client_with_mock_redis.post("/shuffle/reset", headers=HEADERS)
        assert reset.status_code == 200
        data = reset.json()
        assert data["phase"] == "IDLE"
        assert data["picks"] == []
        assert data["outcome"] is None
        assert sorted(data["slots"]) == list(range(9))

        assert pick(client_with_mock_redis, 2).status_code == 200

    def test_reset_mid_round_rejected(
        self, client_with_mock_redis: TestClient, scripted_rng: ScriptedRNG
    ):
        pick(client_with_mock_redis, 0)
        response = client_with_mock_redis.post("/shuffle/reset", headers=HEADERS)
        assert response.status_code == 400

    def test_reshuffle_only_between_rounds(
        self, client_with_mock_redis: TestClient, scripted_rng: ScriptedRNG
    ):
        scripted_rng.indexes = [0] * 8
        response = client_with_mock_redis.post("/shuffle/reshuffle", headers=HEADERS)
        assert response.status_code == 200
        assert sorted(response.json()["slots"]) == list(range(9))

        pick(client_with_mock_redis, 0)
        response = client_with_mock_redis.post("/shuffle/reshuffle", headers=HEADERS)
        assert response.status_code == 400


class TestShuffleDepletion:
    def test_last_unit_gates_next_round(
        self,
        client_with_mock_redis: TestClient,
        mock_redis: MockRedis,
        scripted_rng: ScriptedRNG,
    ):
        mock_redis.put_settings(with_shuffle_catalog([make_prize("1", amount=1)], 0.0))

        first = pick(client_with_mock_redis, 0).json()
        assert first["depleted"] is True

        # The started round still finishes
        second = pick(client_with_mock_redis, 1)
        assert second.status_code == 200
        assert second.json()["outcome"]["matched"] is False

        reset = client_with_mock_redis.post("/shuffle/reset", headers=HEADERS).json()
        assert reset["phase"] == "NO_PRIZES_LEFT"

        refused = pick(client_with_mock_redis, 0)
        assert refused.status_code == 409
        assert refused.json()["error"]["code"] == "PRIZES_DEPLETED"
        assert find_prize(mock_redis.stored_settings().shuffle_prizes, "1").amount == 0

    def test_restock_reopens_play(
        self,
        client_with_mock_redis: TestClient,
        mock_redis: MockRedis,
        scripted_rng: ScriptedRNG,
    ):
        mock_redis.put_settings(with_shuffle_catalog([make_prize("1", amount=0)], 0.5))
        assert pick(client_with_mock_redis, 0).status_code == 409

        mock_redis.put_settings(with_shuffle_catalog([make_prize("1", amount=2)], 0.5))
        state = client_with_mock_redis.get("/shuffle/state", headers=HEADERS).json()
        assert state["phase"] == "IDLE"
        assert pick(client_with_mock_redis, 0).status_code == 200
