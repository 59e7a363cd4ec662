from replyguard.logging_config import get_logger
from replyguard.services.llm import ModelClient, ModelClientError

logger = get_logger("translation_service")

TRANSLATION_PROMPT = (
    "Translate the following text from {source} to {target}. "
    "Return only the translated text, no explanations:\n\n{text}"
)


class Translator:
    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        if not text or not source_lang or not target_lang or source_lang == target_lang:
            return text

        prompt = TRANSLATION_PROMPT.format(source=source_lang, target=target_lang, text=text)
        return self.model_client.generate_text(prompt).strip()

    def translate_or_keep(self, text: str, source_lang: str, target_lang: str) -> str:
        """Translate, falling back to the original text when the model call fails."""
        try:
            return self.translate(text, source_lang, target_lang)
        except ModelClientError as e:
            logger.warning(
                f"Translation {source_lang}->{target_lang} failed, keeping original: {e}",
                extra={"context": {"error": type(e).__name__}},
            )
            return text
