from aibot.core.i18n import error_message, t


def test_lookup_and_format():
    assert t("bot.welcome", name="Анна").startswith("Привет, Анна!")


def test_missing_key_returns_key():
    assert t("bot.no_such_text") == "bot.no_such_text"


def test_scoped_error_message_wins():
    assert "Изображение" in error_message("file_too_large", "image")
    assert error_message("region_unavailable", "image") == error_message("region_unavailable")
    assert "VPN" in error_message("region_unavailable")
