from analytics.attempts import parse_attempts
from analytics.breakdowns import compute_test_theme_breakdown, describe_sessions, track_repeated_mistakes
from analytics.sessions import reconstruct_sessions
from conftest import answers, at, attempt_row


def _mistake(question: str, correct: str) -> dict:
    return {"question": question, "correct_answer": correct, "user_answer": "?"}


def test_repeated_mistakes_need_two_occurrences():
    rows = [
        attempt_row(answers(q1=False), completed_at=at(30), mistakes=[_mistake("3+4", "7"), _mistake("2+2", "4")]),
        attempt_row(answers(q1=False), completed_at=at(20), mistakes=[_mistake("3+4", "7")]),
        attempt_row(answers(q1=False), completed_at=at(10), mistakes=[_mistake("3+4", "7"), _mistake("5+5", "10")]),
        attempt_row(answers(q1=False), completed_at=at(5), mistakes=[_mistake("5+5", "10")], user_id="max", user_name="Max"),
        attempt_row(answers(q1=False), completed_at=at(4), mistakes=[_mistake("5+5", "10")], user_id="max", user_name="Max"),
    ]

    repeated = track_repeated_mistakes(parse_attempts(rows))

    assert [(item["user_name"], item["question"], item["count"]) for item in repeated] == [
        ("Zoe", "3+4", 3),
        ("Max", "5+5", 2),
    ]
    assert repeated[0]["correct_answer"] == "7"


def test_repeated_mistakes_are_capped():
    rows = [
        attempt_row(answers(q1=False), completed_at=at(i), mistakes=[_mistake(f"{n}+1", str(n + 1)) for n in range(40)])
        for i in range(2)
    ]
    assert len(track_repeated_mistakes(parse_attempts(rows))) == 30


def test_test_mode_breakdown_groups_by_source_theme():
    test_answers = [
        {"question": "1+1", "user_answer": 2, "correct_answer": 2, "source_theme": "Addition"},
        {"question": "2+2", "user_answer": 1, "correct_answer": 3, "source_theme": "Addition"},
        {"question": "3-1", "user_answer": 0, "correct_answer": 0, "source_theme": "Subtraction"},
        {"question": "2x2", "user_answer": None, "correct_answer": 1},
    ]
    rows = [
        attempt_row(test_answers, completed_at=at(0), is_test_mode=True),
        attempt_row(answers(q1=True), completed_at=at(1)),
    ]

    breakdown = compute_test_theme_breakdown(parse_attempts(rows))

    assert [(b["source_theme"], b["total_questions"], b["correct_count"], b["percentage"]) for b in breakdown] == [
        ("Subtraction", 1, 1, 100),
        ("Addition", 2, 1, 50),
        ("Unknown", 1, 0, 0),
    ]


def test_describe_sessions_counts_round_outcomes():
    rows = [
        attempt_row(answers(q1=False, q2=True), completed_at=at(0), session_id="s-1"),
        attempt_row(answers(q1=True), completed_at=at(2), session_id="s-1", round=2),
    ]

    described = describe_sessions(reconstruct_sessions(parse_attempts(rows)))

    assert described == [
        {
            "session_id": "s-1",
            "user_name": "Zoe",
            "theme_name": "addition",
            "level": "easy",
            "explicit": True,
            "rounds_count": 2,
            "rounds": [
                {"round": 1, "questions_count": 2, "correct_count": 1, "mistakes_count": 1},
                {"round": 2, "questions_count": 1, "correct_count": 1, "mistakes_count": 0},
            ],
        }
    ]
