from aibot.services.token_estimator import estimate_tokens


def test_empty_text_has_no_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("   \n\t ") == 0


def test_words_times_three_quarters_rounded_up():
    assert estimate_tokens("один") == 1
    assert estimate_tokens("раз два три четыре") == 3
    assert estimate_tokens("раз два три четыре пять") == 4


def test_whitespace_runs_count_once():
    assert estimate_tokens("раз   два\n\nтри\tчетыре") == estimate_tokens("раз два три четыре")
