"""GeminiTranslationAdapter: contextual translation + phonetics via Gemini.

Calls Gemini through the google-generativeai client with a JSON response
type and asks for {"translation": ..., "phonetic": ...}. Models sometimes
wrap the JSON in a markdown fence even when asked not to; that is stripped
before parsing. Any API or parse problem is raised as TranslationError; the
enrichment pipeline decides what to do with it.
"""

import asyncio
import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from domain.errors import TranslationError
from domain.models import PhoneticStyle
from models import TranslationPayload
from ports.translation import TranslationPort, TranslationResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_DIALECT = "Egyptian Arabic (Masri)"

# Returned by list_models() when the API can't be asked.
FALLBACK_MODELS = [
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-2.0-flash-lite",
    "gemini-1.5-flash",
]

LANGUAGE_NAMES = {
    "ar": "Arabic",
    "en": "English",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "tr": "Turkish",
    "fa": "Persian",
    "ur": "Urdu",
    "he": "Hebrew",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "hi": "Hindi",
}

_FENCE = re.compile(r"```(?:json)?\s*|\s*```")

BASE_PROMPT = """You are a translator for a live two-person conversation.
Reply with a single JSON object: {{"translation": "...", "phonetic": "..."}}

Rules:
1. Translate the input from the source language to the target language.
   If source and target are the same, return the input unchanged as "translation".
2. "translation" = the translated text only, no notes.
3. "phonetic" = a romanized phonetic transcription of the {script} text involved:
   - if the source is {script}, transcribe the source;
   - if the target is {script}, transcribe the translation;
   - otherwise leave it empty.
"""

STYLE_RULES = {
    PhoneticStyle.CLEAN: (
        "   - Style: clean and readable. Use macrons for long vowels (ā, ī, ū) and an\n"
        "     apostrophe or ʾ for glottal stops. No digits, '?' or ':' symbols."
    ),
    PhoneticStyle.PRECISE: (
        "   - Style: precise. Symbols such as '?' (glottal stop), ':' (long vowel) and\n"
        "     '3' (ayn) are allowed where they make pronunciation exact."
    ),
    PhoneticStyle.FRANCO: (
        "   - Style: Franco/Arabizi chat alphabet. Use digits for sounds: 2 (hamza),\n"
        "     3 (ayn), 5 (kha), 7 (ha), 9 (sad/qaf). Example: \"Salam 3alaykom\"."
    ),
    PhoneticStyle.IPA: (
        "   - Style: International Phonetic Alphabet, broad transcription between\n"
        "     slashes, e.g. /ʔahlan/."
    ),
    PhoneticStyle.UPA: (
        "   - Style: Uralic Phonetic Alphabet conventions (Latin letters with\n"
        "     diacritics, no IPA-only symbols)."
    ),
}

CONTEXTUAL_RULES = """
   - MODE: contextual translation. Translate meaning and intent, not words.
   - Target dialect: {dialect}, informal and spoken, the way a local would say it
     to a taxi driver, shopkeeper or hotel staff. Avoid formal or touristic phrasing.
"""


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.split("-")[0].lower(), code)


def build_prompt(
    text: str,
    source_language: str,
    target_language: str,
    style: PhoneticStyle,
    contextual: bool,
    script_language: str = "ar",
    dialect: str = DEFAULT_DIALECT,
) -> str:
    parts = [
        BASE_PROMPT.format(script=language_name(script_language)),
        STYLE_RULES.get(style, STYLE_RULES[PhoneticStyle.CLEAN]),
    ]
    if contextual:
        parts.append(CONTEXTUAL_RULES.format(dialect=dialect))
    parts.append(
        f"\nSource Language: {language_name(source_language)}\n"
        f"Target Language: {language_name(target_language)}\n"
        f"Input: {json.dumps(text, ensure_ascii=False)}"
    )
    return "\n".join(parts)


def parse_response_text(raw: str) -> TranslationResult:
    """Parse the model's JSON reply. Raises TranslationError."""
    cleaned = _FENCE.sub("", raw).strip()
    if not cleaned:
        raise TranslationError("Empty model response")
    try:
        payload = TranslationPayload.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as e:
        raise TranslationError(f"Unparseable model response: {e}") from e
    return TranslationResult(translation=payload.translation.strip(), phonetic=payload.phonetic.strip())



class GeminiTranslationAdapter(TranslationPort):
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        script_language: str = "ar",
        dialect: str = DEFAULT_DIALECT,
        timeout: float = 15.0,
        client: Optional[Any] = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self._api_key = api_key
        self._model = model
        self._script_language = script_language
        self._dialect = dialect
        self._timeout = timeout
        self._client = client

    def model_name(self) -> str:
        return self._model

    def _get_client(self) -> Any:
        """Get or configure the google-generativeai module."""
        if self._client is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise RuntimeError("google-generativeai not installed. Run: pip install google-generativeai")
            genai.configure(api_key=self._api_key)
            self._client = genai
        return self._client

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        style: PhoneticStyle = PhoneticStyle.CLEAN,
        contextual: bool = False,
        script_language: Optional[str] = None,
    ) -> TranslationResult:
        prompt = build_prompt(
            text, source_language, target_language, style, contextual,
            script_language=script_language or self._script_language, dialect=self._dialect,
        )

        genai = self._get_client()
        model = genai.GenerativeModel(
            model_name=self._model,
            generation_config={"response_mime_type": "application/json", "temperature": 0.2},
        )
        try:
            response = await asyncio.to_thread(
                model.generate_content, prompt, request_options={"timeout": self._timeout}
            )
        except Exception as e:
            if type(e).__name__ == "ResourceExhausted" or getattr(e, "code", None) == 429:
                raise TranslationError("Gemini rate limit exceeded") from e
            raise TranslationError(f"Gemini request failed: {e}") from e

        try:
            # .text raises ValueError when the candidate was blocked or empty.
            raw = response.text
        except ValueError as e:
            raise TranslationError(f"Gemini returned no text: {e}") from e

        result = parse_response_text(raw)
        logger.debug(
            f"Gemini {source_language}->{target_language} ({style.value}, contextual={contextual}): "
            f"{len(text)} chars in, {len(result.translation)} chars out"
        )
        return result

    async def list_models(self) -> list[str]:
        genai = self._get_client()
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
        except Exception as e:
            logger.warning(f"Could not list Gemini models, using fallback list: {e}")
            return list(FALLBACK_MODELS)

        names = [
            m.name.removeprefix("models/")
            for m in models
            if "generateContent" in (getattr(m, "supported_generation_methods", None) or [])
        ]
        return names or list(FALLBACK_MODELS)
