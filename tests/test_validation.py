import pytest

from app.services.validation import (
    declines_handle,
    is_affirmative,
    is_reset_command,
    is_skip,
    is_valid_handle_format,
    normalize_handle,
    validate_email,
    validate_name,
)

KEYWORDS = ["reset", "reiniciar"]


class TestResetCommand:
    @pytest.mark.parametrize("text", ["reset", "RESET", "  Reset  ", "reiniciar!", "Reiniciar."])
    def test_matches_whole_message(self, text):
        assert is_reset_command(text, KEYWORDS)

    @pytest.mark.parametrize("text", ["", "quero dar reset", "resetar", "reset agora"])
    def test_ignores_partial_matches(self, text):
        assert not is_reset_command(text, KEYWORDS)


class TestName:
    def test_collapses_whitespace(self):
        assert validate_name("  Ana   Souza ") == "Ana Souza"

    @pytest.mark.parametrize("text", ["", " ", "A"])
    def test_too_short(self, text):
        assert validate_name(text) is None


class TestEmail:
    def test_valid_email_is_lowercased(self):
        assert validate_email(" Ana@Example.COM ") == "ana@example.com"

    @pytest.mark.parametrize("text", ["not-an-email", "ana@", "ana@example", "ana souza@example.com"])
    def test_invalid(self, text):
        assert validate_email(text) is None

    @pytest.mark.parametrize("text", ["skip", "Pular", "pula.", "PULE"])
    def test_skip_words(self, text):
        assert is_skip(text)


class TestHandle:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("@Ana.Souza", "ana.souza"),
            ("ana_souza", "ana_souza"),
            ("https://www.instagram.com/ana.souza/", "ana.souza"),
            ("instagram.com/ana", "ana"),
        ],
    )
    def test_normalize(self, text, expected):
        assert normalize_handle(text) == expected

    @pytest.mark.parametrize("text", ["", "@", "  @  "])
    def test_empty_after_normalising(self, text):
        assert normalize_handle(text) is None

    @pytest.mark.parametrize("text", ["não tenho", "Nao tenho instagram", "I don't have one", "pular"])
    def test_declines(self, text):
        assert declines_handle(text)

    def test_handle_is_not_a_decline(self):
        assert not declines_handle("@ana.souza")

    def test_handle_format(self):
        assert is_valid_handle_format("ana.souza_01")
        assert not is_valid_handle_format("ana souza")
        assert not is_valid_handle_format("a" * 31)


class TestAffirmative:
    @pytest.mark.parametrize("text", ["sim", "Sim, pode!", "S", "yes please", "claro", "ok"])
    def test_affirmative(self, text):
        assert is_affirmative(text)

    @pytest.mark.parametrize("text", ["não", "nao", "no", "prefiro que não", "", "simples"])
    def test_not_affirmative(self, text):
        assert not is_affirmative(text)
