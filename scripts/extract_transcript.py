#!/usr/bin/env python3
"""
Run a text transcript through the record -> extract -> review pipeline.

Reads the transcript from a file (or stdin), replays it through a
TranscriptionSession, logs the Entry and prints the resulting review.
With --commit the batch is saved, but only when every mention was
auto-resolved; ambiguous mentions must be settled in the app.

Usage:
    python -m scripts.extract_transcript notes.txt
    python -m scripts.extract_transcript notes.txt --commit
    echo "Met Sarah from Goldman" | python -m scripts.extract_transcript -
"""
import sys
import json
import asyncio
import logging
import argparse
from typing import Iterable

from api.services.contact_store import get_contact_store
from api.services.pipeline import get_pipeline_runner
from api.services.relay_client import RelayError
from api.services.credits import InsufficientCredits
from api.services.reconciliation import ReviewSession
from api.services.transcription import LineStreamProducer, TranscriptionSession

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def transcribe(lines: Iterable[str]) -> str:
    """Replay text lines through a transcription session and return the final transcript."""
    session = TranscriptionSession()
    session.subscribe(lambda state: logger.debug(f"Partial transcript: {state.transcript!r}"))
    session.start(LineStreamProducer(lines))
    return session.stop()


def format_review(review: ReviewSession) -> str:
    """Human-readable summary of a review."""
    out = []
    for i, mention in enumerate(review.mentions):
        selection = mention.selection
        target = f" -> {selection.target_id}" if selection.target_id else ""
        out.append(f"[{i}] {mention.name} ({selection.kind.value}{target})")
        for candidate in mention.candidates:
            out.append(f"      ? {candidate.name or candidate.contact_id} [{candidate.confidence.value}]")
        for fact in mention.facts:
            out.append(f"      - {fact.category}: {fact.content}")
    return "\n".join(out) if out else "(no people mentioned)"


def extract_transcript(lines: Iterable[str], commit: bool = False, as_json: bool = False) -> int:
    """
    Process one transcript.

    Returns:
        Process exit code
    """
    transcript = transcribe(lines)
    if not transcript:
        logger.error("Transcript is empty")
        return 1

    try:
        entry, review = asyncio.run(get_pipeline_runner().record_and_extract(transcript))
    except (RelayError, InsufficientCredits) as e:
        logger.error(f"Extraction failed: {e}")
        return 1

    logger.info(f"Logged entry {entry.id}")
    if as_json:
        print(json.dumps(review.to_dict(), indent=2))
    else:
        print(format_review(review))

    if not commit:
        return 0

    if not review.can_commit:
        names = ", ".join(m.name for m in review.unresolved_mentions)
        logger.warning(f"Not saving: resolve these mentions first: {names}")
        return 2

    summary = review.commit(get_contact_store())
    logger.info(
        f"Saved {summary.facts_created} fact(s): "
        f"{summary.people_created} new, {summary.people_updated} updated"
    )
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Extract people and facts from a text transcript')
    parser.add_argument('path', help="Transcript file, or '-' for stdin")
    parser.add_argument('--commit', action='store_true', help='Save when no mention needs review')
    parser.add_argument('--json', action='store_true', help='Print the review as JSON')
    args = parser.parse_args()

    if args.path == '-':
        source = sys.stdin.read().splitlines()
    else:
        with open(args.path, 'r', encoding='utf-8') as f:
            source = f.read().splitlines()

    sys.exit(extract_transcript(source, commit=args.commit, as_json=args.json))
