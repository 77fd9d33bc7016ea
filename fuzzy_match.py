"""Fuzzy trigger-phrase matching for noisy live transcripts."""

from __future__ import annotations

_HELP_WORD = "help"
_WAKE_NAMES = ("aura", "aurora")
_MAX_PHRASE_DISTANCE = 2
_MAX_WORD_DISTANCE = 1


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit-cost insertion, deletion and substitution."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def matches(transcript: str, trigger_phrase: str) -> bool:
    """Return True if ``transcript`` plausibly contains ``trigger_phrase``.

    Tolerates the wake word being misheard, e.g. "help arora" or
    "halp aurora", without firing on unrelated speech.
    """
    text = transcript.lower().strip()
    phrase = trigger_phrase.lower().strip()
    if not text or not phrase:
        return False

    if phrase in text:
        return True
    if "".join(phrase.split()) in text:
        return True
    if levenshtein(text, phrase) <= _MAX_PHRASE_DISTANCE:
        return True

    # NOTE: grouping kept as (help-like word) AND (aura OR aurora); confirm with product.
    has_help_word = any(
        levenshtein(word, _HELP_WORD) <= _MAX_WORD_DISTANCE for word in text.split()
    )
    return has_help_word and any(name in text for name in _WAKE_NAMES)
