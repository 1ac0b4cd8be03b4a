"""Shared pytest fixtures for testing."""

import asyncio
from typing import Callable, List, Optional

import pytest

from domain.errors import TranslationError
from domain.models import EnrichmentMode, PhoneticStyle, SessionConfig, Token
from ports.translation import TranslationPort, TranslationResult


# =============================================================================
# Time fakes
# =============================================================================


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class _Timer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """call_later() against a ManualClock; timers run on advance()."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.timers: List[_Timer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(self.clock.now + delay * 1000.0, callback)
        self.timers.append(timer)
        return timer

    def advance_to(self, target: float) -> None:
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.clock.now = timer.when
            timer.callback()
        self.clock.now = target

    @property
    def pending(self) -> List[_Timer]:
        return [t for t in self.timers if not t.cancelled]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


# =============================================================================
# Translation fake
# =============================================================================


class FakeTranslation(TranslationPort):
    """Records calls; returns a fixed result, raises, or waits on a gate."""

    def __init__(
        self,
        result: Optional[TranslationResult] = None,
        error: Optional[Exception] = None,
    ):
        self.result = result or TranslationResult(translation="translated", phonetic="phonetic")
        self.error = error
        self.calls: List[dict] = []
        self.gate: Optional[asyncio.Event] = None

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        style: PhoneticStyle = PhoneticStyle.CLEAN,
        contextual: bool = False,
        script_language: Optional[str] = None,
    ) -> TranslationResult:
        self.calls.append({
            "text": text,
            "source_language": source_language,
            "target_language": target_language,
            "style": style,
            "contextual": contextual,
            "script_language": script_language,
        })
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def list_models(self) -> list[str]:
        return ["fake-model"]

    def model_name(self) -> str:
        return "fake-model"


@pytest.fixture
def translation() -> FakeTranslation:
    return FakeTranslation()


@pytest.fixture
def failing_translation() -> FakeTranslation:
    return FakeTranslation(error=TranslationError("backend down"))


# =============================================================================
# Config / token helpers
# =============================================================================


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(primary_language="en", secondary_language="ar")


@pytest.fixture
def contextual_config() -> SessionConfig:
    return SessionConfig(
        primary_language="en",
        secondary_language="ar",
        enrichment_mode=EnrichmentMode.CONTEXTUAL,
    )


def final(text: str, language: Optional[str] = None, speaker: Optional[str] = None) -> Token:
    return Token(text=text, is_final=True, language=language, speaker=speaker)


def interim(text: str, language: Optional[str] = None, speaker: Optional[str] = None) -> Token:
    return Token(text=text, is_final=False, language=language, speaker=speaker)


BOUNDARY = Token.boundary()
