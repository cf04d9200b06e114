"""
Google Translate provider using the public translate_a endpoint.

Needs no API key, so it is always configured. Text fields are translated one
by one; long bodies are split on paragraph boundaries to keep requests small.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from polytrans.ai.exceptions import ErrorKind, TranslationError
from polytrans.ai.http import HttpClient
from polytrans.logger import get_logger
from polytrans.models import StepResult
from polytrans.providers.base import TranslationProvider

logger = get_logger(__name__)

GOOGLE_TRANSLATE_URL = "https://translate.googleapis.com/translate_a/single"
GOOGLE_TIMEOUT = 10
MAX_CHUNK_CHARS = 4500

SUPPORTED_LANGUAGES = {
    "ar": "Arabic", "cs": "Czech", "da": "Danish", "de": "German", "el": "Greek",
    "en": "English", "es": "Spanish", "fi": "Finnish", "fr": "French", "he": "Hebrew",
    "hu": "Hungarian", "it": "Italian", "ja": "Japanese", "ko": "Korean", "nl": "Dutch",
    "no": "Norwegian", "pl": "Polish", "pt": "Portuguese", "ro": "Romanian", "ru": "Russian",
    "sk": "Slovak", "sv": "Swedish", "tr": "Turkish", "uk": "Ukrainian", "zh": "Chinese",
}


def split_into_chunks(text: str, limit: int = MAX_CHUNK_CHARS) -> List[str]:
    """Split text on paragraph breaks so that each chunk stays under limit where possible."""
    if len(text) <= limit:
        return [text]

    chunks = []
    current = ""
    for paragraph in text.split("\n\n"):
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) <= limit or not current:
            current = candidate
        else:
            chunks.append(current)
            current = paragraph
    if current:
        chunks.append(current)
    return chunks


class GoogleProvider(TranslationProvider):
    provider_id = "google"
    name = "Google Translate"

    def __init__(self, http_client: Optional[HttpClient] = None):
        self.http = http_client or HttpClient(timeout=GOOGLE_TIMEOUT)

    def supported_languages(self) -> Dict[str, str]:
        return dict(SUPPORTED_LANGUAGES)

    def translate(self, bundle, source_lang, target_lang, config):
        logger.info(f"Google Translate: {source_lang} -> {target_lang}")
        try:
            meta = {
                key: self.translate_text(value, source_lang, target_lang) if isinstance(value, str) else value
                for key, value in bundle.meta.items()
            }
            translated = bundle.replace(
                title=self.translate_text(bundle.title, source_lang, target_lang),
                content=self.translate_text(bundle.content, source_lang, target_lang),
                excerpt=self.translate_text(bundle.excerpt, source_lang, target_lang),
                meta=meta,
            )
        except TranslationError as e:
            logger.error(f"Google Translate failed ({source_lang} -> {target_lang}): {e}")
            return StepResult.fail(str(e), e.code or "transport_error", e.kind)
        return StepResult.ok(translated)

    def translate_text(self, text: str, source_lang: str, target_lang: str) -> str:
        if not text or not text.strip():
            return text
        parts = [self._translate_chunk(chunk, source_lang, target_lang) for chunk in split_into_chunks(text)]
        return "\n\n".join(parts)

    def _translate_chunk(self, text: str, source_lang: str, target_lang: str) -> str:
        data = self.http.get_json(
            GOOGLE_TRANSLATE_URL,
            self.name,
            params={"client": "gtx", "sl": source_lang, "tl": target_lang, "dt": "t", "q": text},
        )
        return self._join_segments(data)

    @staticmethod
    def _join_segments(data: Any) -> str:
        if not isinstance(data, list) or not data or not isinstance(data[0], list):
            raise TranslationError(
                "Google Translate returned an unexpected response shape",
                code="invalid_output_format",
                kind=ErrorKind.FORMAT,
            )
        return "".join(
            segment[0] for segment in data[0]
            if isinstance(segment, list) and segment and isinstance(segment[0], str)
        )
