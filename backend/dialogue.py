"""Running-dialogue rendering for committed utterances.

Functions for speaker turn grouping, speaker label mapping, speaker
statistics and plain-text dialogue output.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional

from domain.models import Utterance

logger = logging.getLogger(__name__)


def group_turns(utterances: List[Utterance]) -> List[dict]:
    """Group consecutive same-speaker utterances into turns.

    Args:
        utterances: Committed utterances in conversation order.

    Returns:
        List of turn dicts with speaker, utterance_ids and utterances.
    """
    if not utterances:
        return []

    turns = []
    current = {"speaker": utterances[0].speaker, "utterances": [utterances[0]]}

    for utterance in utterances[1:]:
        if utterance.speaker != current["speaker"]:
            turns.append(current)
            current = {"speaker": utterance.speaker, "utterances": [utterance]}
        else:
            current["utterances"].append(utterance)

    turns.append(current)
    for turn in turns:
        turn["utterance_ids"] = [u.id for u in turn["utterances"]]
    return turns


def display_speaker(speaker: Optional[str], labels: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Human-readable speaker name.

    Custom labels win; diarization ids like "speaker_0" or "1" become
    "Speaker 1". Numeric ids from the recognizer are 1-based already, the
    "speaker_N" form is 0-based.
    """
    if not speaker or speaker == "unknown":
        return None
    if labels and speaker in labels:
        return labels[speaker]
    if speaker.startswith("speaker_"):
        try:
            return f"Speaker {int(speaker.split('_')[-1]) + 1}"
        except ValueError:
            return speaker
    if speaker.isdigit():
        return f"Speaker {int(speaker)}"
    return speaker


def parse_speaker_labels(raw: Optional[str]) -> Dict[str, str]:
    """Parse "speaker_0:Driver,speaker_1:Guide" into a label mapping.

    Entries without a colon or with an empty side are ignored.
    """
    labels: Dict[str, str] = {}
    for entry in (raw or "").split(","):
        speaker, sep, label = entry.partition(":")
        if sep and speaker.strip() and label.strip():
            labels[speaker.strip()] = label.strip()
    return labels


def apply_speaker_labels(utterances: List[Utterance], labels: Dict[str, str]) -> List[Utterance]:
    """Rename speaker ids using a user-supplied mapping.

    Utterances are immutable, so renamed copies are returned.
    """
    return [
        replace(u, speaker=labels[u.speaker]) if u.speaker and u.speaker in labels else u
        for u in utterances
    ]


def compute_speaker_statistics(utterances: List[Utterance]) -> Optional[dict]:
    """Compute per-speaker utterance count, word count and share of words.

    Returns:
        Dict with per-speaker stats and total_speakers count,
        or None if no speaker labels are present.
    """
    speakers: Dict[str, dict] = {}
    for utterance in utterances:
        if not utterance.speaker or utterance.speaker == "unknown":
            continue
        stats = speakers.setdefault(utterance.speaker, {"utterances": 0, "word_count": 0})
        stats["utterances"] += 1
        stats["word_count"] += len(utterance.source_text.split())

    if not speakers:
        return None

    total_words = sum(s["word_count"] for s in speakers.values())
    for stats in speakers.values():
        share = (stats["word_count"] / total_words * 100) if total_words > 0 else 0
        stats["percentage"] = round(share, 1)

    return {"speakers": speakers, "total_speakers": len(speakers)}


def format_utterance(utterance: Utterance, include_enrichment: bool = True) -> List[str]:
    lines = [utterance.source_text]
    if utterance.target_text:
        lines.append(f"  -> {utterance.target_text}")
    if include_enrichment and utterance.phonetic:
        lines.append(f"     [{utterance.phonetic}]")
    return lines


def format_dialogue(
    utterances: List[Utterance],
    speaker_labels: Optional[Dict[str, str]] = None,
    include_enrichment: bool = True,
) -> str:
    """Render utterances as a running dialogue, one block per speaker turn."""
    blocks = []
    for turn in group_turns(utterances):
        name = display_speaker(turn["speaker"], speaker_labels)
        lines = []
        for utterance in turn["utterances"]:
            body = format_utterance(utterance, include_enrichment)
            lines.append(f"({utterance.detected_language}) {body[0]}")
            lines.extend(body[1:])
        if name:
            lines.insert(0, f"{name}:")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
