from gantt_timeline.ids import MAX_ID_ATTEMPTS, generate_unique_id, random_token


def test_random_token_alphabet() -> None:
    token = random_token(9)

    assert len(token) == 9
    assert token == token.lower()
    assert token.isalnum()


def test_generate_unique_id_format() -> None:
    task_id = generate_unique_id("T", set(), clock=lambda: 1700000000000)

    assert task_id.startswith("T1700000000000_")
    assert len(task_id.split("_")[1]) == 4


def test_generate_unique_id_falls_back_after_repeated_collisions(monkeypatch) -> None:
    monkeypatch.setattr("gantt_timeline.ids.random_token", lambda length: "aaaa")

    task_id = generate_unique_id("M", {"M5_aaaa"}, clock=lambda: 5)

    assert task_id == f"M5_{MAX_ID_ATTEMPTS + 1}"


def test_generate_unique_id_never_repeats_in_tight_loop() -> None:
    seen = set()

    for _ in range(500):
        task_id = generate_unique_id("T", seen, clock=lambda: 1)
        assert task_id not in seen
        assert len(task_id.split("_")[1]) == 4
        seen.add(task_id)

    assert len(seen) == 500
