from conftest import FakeModelClient
from replyguard.services.llm import QuotaExhaustedError
from replyguard.services.translation_service import Translator


class TestTranslator:
    def test_same_language_short_circuits(self):
        model = FakeModelClient()

        assert Translator(model).translate("Hello", "en", "en") == "Hello"
        assert model.prompts == []

    def test_empty_language_short_circuits(self):
        model = FakeModelClient()

        assert Translator(model).translate("Hello", "", "en") == "Hello"
        assert model.prompts == []

    def test_translates_and_strips(self):
        model = FakeModelClient(responses=["  Hola  "])

        assert Translator(model).translate("Hello", "en", "es") == "Hola"
        assert model.prompts[0] == (
            "Translate the following text from en to es. "
            "Return only the translated text, no explanations:\n\nHello"
        )

    def test_translate_or_keep_returns_original_on_failure(self):
        model = FakeModelClient(responses=[QuotaExhaustedError("quota exceeded", status_code=429)])

        assert Translator(model).translate_or_keep("Hello", "en", "es") == "Hello"
