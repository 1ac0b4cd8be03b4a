import os
import logging
from typing import Dict, Optional, Any

from domain.models import EnrichmentMode, PhoneticStyle, SessionConfig

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"
DEFAULT_CONVERSATIONS_DIR = "/tmp/duolog/conversations"
DEFAULT_DIALECT = "Egyptian Arabic (Masri)"

TOKEN_VENDORS = ("soniox", "deepgram", "assemblyai", "raw")


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"

        # Session defaults (overridable per WebSocket session)
        self.primary_language = os.environ.get("PRIMARY_LANGUAGE", "en")
        self.secondary_language = os.environ.get("SECONDARY_LANGUAGE", "ar")
        self.enable_diarization = _env_bool("ENABLE_DIARIZATION", "false")
        self.enrichment_mode = os.environ.get("ENRICHMENT_MODE", "native").lower()
        self.interim_enrichment = _env_bool("INTERIM_ENRICHMENT", "true")
        self.throttle_ms = int(os.environ.get("THROTTLE_MS", "250"))
        self.settle_ms = int(os.environ.get("SETTLE_MS", "600"))
        self.min_preview_chars = int(os.environ.get("MIN_PREVIEW_CHARS", "2"))
        self.phonetic_style = os.environ.get("PHONETIC_STYLE", "clean").lower()
        self.token_vendor = os.environ.get("TOKEN_VENDOR", "soniox").lower()
        # AssemblyAI streams opened with format_turns=true send each turn twice
        self.assemblyai_format_turns = _env_bool("ASSEMBLYAI_FORMAT_TURNS", "true")

        # Translation backend
        self.translation_engine = os.environ.get("TRANSLATION_ENGINE", "gemini").lower()
        self.gemini_api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        self.gemini_model = os.environ.get("GEMINI_MODEL", "").strip() or DEFAULT_GEMINI_MODEL
        self.gemini_timeout = float(os.environ.get("GEMINI_TIMEOUT", "15"))
        self.contextual_dialect = os.environ.get("CONTEXTUAL_DIALECT", DEFAULT_DIALECT)

        self.conversations_dir = os.environ.get("CONVERSATIONS_DIR", DEFAULT_CONVERSATIONS_DIR)

    def get_gemini_api_key(self) -> Optional[str]:
        return self.gemini_api_key

    def session_defaults(self) -> SessionConfig:
        """Build the default SessionConfig. Raises ValueError on bad enum values."""
        try:
            mode = EnrichmentMode(self.enrichment_mode)
        except ValueError:
            raise ValueError(
                f"Unknown ENRICHMENT_MODE: {self.enrichment_mode!r}. "
                f"Valid options: {', '.join(m.value for m in EnrichmentMode)}"
            ) from None
        try:
            style = PhoneticStyle(self.phonetic_style)
        except ValueError:
            raise ValueError(
                f"Unknown PHONETIC_STYLE: {self.phonetic_style!r}. "
                f"Valid options: {', '.join(s.value for s in PhoneticStyle)}"
            ) from None
        return SessionConfig(
            primary_language=self.primary_language,
            secondary_language=self.secondary_language,
            diarization_enabled=self.enable_diarization,
            enrichment_mode=mode,
            interim_enrichment_enabled=self.interim_enrichment,
            throttle_ms=self.throttle_ms,
            settle_ms=self.settle_ms,
            min_preview_chars=self.min_preview_chars,
            phonetic_style=style,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "primary_language": self.primary_language,
            "secondary_language": self.secondary_language,
            "enable_diarization": self.enable_diarization,
            "enrichment_mode": self.enrichment_mode,
            "interim_enrichment": self.interim_enrichment,
            "throttle_ms": self.throttle_ms,
            "settle_ms": self.settle_ms,
            "phonetic_style": self.phonetic_style,
            "token_vendor": self.token_vendor,
            "translation_engine": self.translation_engine,
            "gemini_model": self.gemini_model,
            "has_gemini_key": self.gemini_api_key is not None,
        }


config = Config()


def get_config() -> Config:
    return config


def create_translation_adapter(cfg: Config):
    """Create the translation adapter based on TRANSLATION_ENGINE.

    Returns None when translation is disabled or unconfigured; sessions then
    run without enrichment. Uses lazy imports so unused clients are never loaded.
    """
    engine = cfg.translation_engine

    if engine == "none":
        logger.info("Translation disabled (TRANSLATION_ENGINE=none)")
        return None
    if engine == "gemini":
        if not cfg.get_gemini_api_key():
            logger.warning("No GEMINI_API_KEY set, enrichment disabled")
            return None
        from adapters.gemini.translation import GeminiTranslationAdapter
        adapter = GeminiTranslationAdapter(
            api_key=cfg.get_gemini_api_key(),
            model=cfg.gemini_model,
            script_language=cfg.secondary_language,
            dialect=cfg.contextual_dialect,
            timeout=cfg.gemini_timeout,
        )
        logger.info(f"Translation adapter: {type(adapter).__name__} ({adapter.model_name()})")
        return adapter
    raise ValueError(f"Unknown TRANSLATION_ENGINE: {engine!r}. Valid options: gemini, none")


def create_token_normalizer(vendor: str, format_turns: bool = True):
    """Create the token normalizer for a recognizer vendor.

    format_turns only matters for AssemblyAI: when set, a turn is committed
    from its formatted copy.
    """
    vendor = vendor.lower()
    if vendor == "soniox":
        from adapters.soniox.tokens import SonioxTokenNormalizer
        return SonioxTokenNormalizer()
    if vendor == "deepgram":
        from adapters.deepgram.tokens import DeepgramTokenNormalizer
        return DeepgramTokenNormalizer()
    if vendor == "assemblyai":
        from adapters.assemblyai.tokens import AssemblyAITokenNormalizer
        return AssemblyAITokenNormalizer(format_turns=format_turns)
    if vendor == "raw":
        from adapters.local.raw_tokens import RawTokenNormalizer
        return RawTokenNormalizer()
    raise ValueError(f"Unknown token vendor: {vendor!r}. Valid options: {', '.join(TOKEN_VENDORS)}")


def create_conversation_store(cfg: Config):
    """Create the conversation snapshot store."""
    from adapters.local.json_conversation_store import JsonFileConversationStore
    store = JsonFileConversationStore(cfg.conversations_dir)
    logger.info(f"Conversation store: {type(store).__name__} at {cfg.conversations_dir}")
    return store
