"""Unit tests for the interim enrichment throttle."""

import pytest

from throttle import InterimThrottle


@pytest.fixture
def fired(clock):
    calls = []

    def fire(text):
        calls.append((clock.now, text))

    fire.calls = calls
    return fire


@pytest.fixture
def throttle(fired, clock, scheduler):
    return InterimThrottle(fired, throttle_ms=250, settle_ms=600, min_length=2, clock=clock, scheduler=scheduler)


class TestLeadingEdge:
    """Tests for immediate calls."""

    def test_typing_sequence(self, throttle, fired, clock, scheduler):
        """Test 'H' at 0, 'He' at 50, 'Hello' at 260 fires at 260 and again at 860."""
        throttle.update("H")
        scheduler.advance_to(50)
        throttle.update("He")
        scheduler.advance_to(260)
        throttle.update("Hello")
        scheduler.advance_to(2000)

        assert fired.calls == [(260, "Hello"), (860, "Hello")]

    def test_no_immediate_call_inside_window(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hello")

        assert fired.calls == []
        assert throttle.pending

    def test_immediate_calls_spaced_by_throttle_window(self, throttle, fired, scheduler):
        """Test two immediate calls are never closer than throttle_ms."""
        for step, text in enumerate(["ab", "abc", "abcd", "abcde", "abcdef", "abcdefg"]):
            scheduler.advance_to(300 + step * 100)
            throttle.update(text)

        immediate = [t for t, _ in fired.calls]
        assert immediate == [300, 600]
        assert all(b - a > 250 for a, b in zip(immediate, immediate[1:]))


class TestTrailingEdge:
    """Tests for the settle call."""

    def test_trailing_call_after_settle(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hello")
        scheduler.advance_to(699)
        assert fired.calls == []

        scheduler.advance_to(700)
        assert fired.calls == [(700, "Hello")]

    def test_newer_text_postpones_trailing(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hel")
        scheduler.advance_to(200)
        throttle.update("Hello")
        scheduler.advance_to(700)
        assert fired.calls == []

        scheduler.advance_to(800)
        assert fired.calls == [(800, "Hello")]

    def test_trailing_not_repeated_for_same_text(self, throttle, fired, scheduler):
        """Test text that already had a trailing call does not get another."""
        scheduler.advance_to(100)
        throttle.update("Hello")
        scheduler.advance_to(700)
        throttle.update("Hello!")
        throttle.update("Hello")
        scheduler.advance_to(5000)

        # "Hello!" was superseded before settling; "Hello" already had its call.
        assert fired.calls == [(700, "Hello")]

    def test_identical_update_ignored(self, throttle, fired, scheduler):
        scheduler.advance_to(300)
        throttle.update("Hello")
        scheduler.advance_to(600)
        throttle.update("Hello")
        scheduler.advance_to(900)

        # The repeated update neither fired nor moved the trailing call.
        assert fired.calls == [(300, "Hello"), (900, "Hello")]


class TestGuards:
    """Tests for minimum length, clearing and closing."""

    def test_short_text_never_fires(self, throttle, fired, scheduler):
        scheduler.advance_to(1000)
        throttle.update("H")
        scheduler.advance_to(5000)

        assert fired.calls == []
        assert not throttle.pending

    def test_whitespace_does_not_count_toward_length(self, throttle, fired, scheduler):
        scheduler.advance_to(1000)
        throttle.update(" H ")
        scheduler.advance_to(5000)

        assert fired.calls == []

    def test_shrinking_below_minimum_cancels_trailing(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hi")
        throttle.update("H")
        scheduler.advance_to(5000)

        assert fired.calls == []

    def test_empty_text_clears(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hello")
        throttle.update("")
        scheduler.advance_to(5000)

        assert fired.calls == []
        assert not throttle.pending

    def test_clear_allows_same_text_again(self, throttle, fired, scheduler):
        """Test after clear() the next utterance can repeat the previous text."""
        scheduler.advance_to(100)
        throttle.update("Hello")
        scheduler.advance_to(700)
        throttle.clear()
        throttle.update("Hello")
        scheduler.advance_to(1300)

        assert fired.calls == [(700, "Hello"), (1300, "Hello")]

    def test_close_stops_everything(self, throttle, fired, scheduler):
        scheduler.advance_to(100)
        throttle.update("Hello")
        throttle.close()
        throttle.update("Hello there")
        scheduler.advance_to(5000)

        assert fired.calls == []
        assert not throttle.pending

    def test_callback_error_is_contained(self, clock, scheduler):
        def explode(text):
            raise RuntimeError("boom")

        throttle = InterimThrottle(explode, clock=clock, scheduler=scheduler)
        scheduler.advance_to(300)
        throttle.update("Hello")
        scheduler.advance_to(2000)

        assert not throttle.pending
