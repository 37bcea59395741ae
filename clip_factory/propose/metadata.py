from __future__ import annotations

import re

from clip_factory.models import ClipCandidate, ClipMetadata, ClipType, OnScreenText, ViralTrigger
from clip_factory.signals.simulation import RandomSource

TITLE_POOLS: dict[ClipType, tuple[str, ...]] = {
    ClipType.REACTION: (
        "🔥 HE REACTED LIKE THIS?!",
        "💀 HIS REACTION IS INSANE",
        "😱 YOU WON'T BELIEVE HIS REACTION",
        "🔥 THIS REACTION WENT VIRAL",
        "💀 HE LOST IT WHEN THIS HAPPENED",
        "😱 HIS REACTION IS EVERYTHING",
        "🔥 THIS REACTION IS TOO FUNNY",
        "💀 WAIT FOR HIS REACTION",
        "😱 HIS REACTION SAYS IT ALL",
        "🔥 THIS REACTION IS WILD",
    ),
    ClipType.ACTION: (
        "🔥 HE DID WHAT?!",
        "💀 THIS IS INSANE",
        "😱 YOU HAVE TO SEE THIS",
        "🔥 THIS IS TOO CRAZY",
        "💀 HE WENT OFF",
        "😱 THIS IS WILD",
        "🔥 HE DIDN'T HOLD BACK",
        "💀 THIS IS NEXT LEVEL",
        "😱 YOU WON'T BELIEVE THIS",
        "🔥 THIS IS INSANE",
    ),
    ClipType.FUNNY: (
        "😂 THIS IS TOO FUNNY",
        "💀 I'M DEAD",
        "😭 THIS MADE ME CRY",
        "😂 YOU'LL LAUGH AT THIS",
        "💀 THIS IS HILARIOUS",
        "😭 I CAN'T STOP LAUGHING",
        "😂 THIS IS GOLD",
        "💀 THIS IS TOO GOOD",
        "😭 MY STOMACH HURTS",
        "😂 THIS IS COMEDY",
    ),
    ClipType.DRAMATIC: (
        "🔥 THIS IS DRAMA",
        "💀 THIS IS INTENSE",
        "😱 THIS IS CRAZY",
        "🔥 YOU HAVE TO SEE THIS",
        "💀 THIS IS WILD",
        "😱 THIS IS INSANE",
        "🔥 THIS IS TOO MUCH",
        "💀 THIS IS NEXT LEVEL",
        "😱 YOU WON'T BELIEVE THIS",
        "🔥 THIS IS UNREAL",
    ),
    ClipType.HIGHLIGHT: (
        "🔥 THIS IS THE MOMENT",
        "💀 BEST MOMENT EVER",
        "😱 YOU HAVE TO SEE THIS",
        "🔥 THIS IS INSANE",
        "💀 THIS IS TOO GOOD",
        "😱 THIS IS WILD",
        "🔥 THIS IS THE ONE",
        "💀 THIS IS LEGENDARY",
        "😱 THIS IS UNREAL",
        "🔥 THIS IS FIRE",
    ),
}

CAPTION_POOLS: dict[ViralTrigger, tuple[str, ...]] = {
    ViralTrigger.SHOCK_DISBELIEF: (
        "WAIT WHAT??",
        "This escalated WAY too fast",
        "He didn't see this coming...",
        "Nah this reaction is insane",
        "This went 0 to 100 REAL quick",
        "Bro what just happened",
    ),
    ViralTrigger.ESCALATION: (
        "It keeps getting worse",
        "This is spiraling",
        "It's not stopping",
        "It's getting worse",
        "This is too much",
        "It keeps escalating",
    ),
    ViralTrigger.TIMING_PERFECTION: (
        "The timing is PERFECT",
        "This is too good",
        "The reaction is everything",
        "This is gold",
        "Perfect moment",
    ),
    ViralTrigger.ABSURDITY: (
        "This makes no sense",
        "What is happening",
        "This is too wild",
        "I can't process this",
        "This is chaos",
    ),
    ViralTrigger.STATUS_FLEX: (
        "He got HUMBLED",
        "The ego check",
        "He thought he was safe",
        "Confidence destroyed",
        "The fall from grace",
    ),
    ViralTrigger.RELATABILITY: (
        "We've all been there",
        "This is too real",
        "I felt that",
        "This hits different",
        "Too relatable",
    ),
}

TYPE_HASHTAGS: dict[ClipType, tuple[str, ...]] = {
    ClipType.REACTION: ("#reaction", "#viral", "#fyp", "#foryou", "#reactions", "#funny"),
    ClipType.ACTION: ("#viral", "#fyp", "#foryou", "#crazy", "#insane", "#wild"),
    ClipType.FUNNY: ("#funny", "#comedy", "#viral", "#fyp", "#foryou", "#laugh", "#humor"),
    ClipType.DRAMATIC: ("#drama", "#viral", "#fyp", "#foryou", "#intense", "#crazy"),
    ClipType.HIGHLIGHT: ("#viral", "#fyp", "#foryou", "#bestmoment", "#highlight", "#fire"),
}

HASHTAG_SOURCES = ("caption", "type")
FIRST_TEXT_TIME = 0.3
ON_SCREEN_TEXT_SECONDS = 2.0
ESCALATION_MIN_PEAK_OFFSET = 1.5
ESCALATION_LEAD_SECONDS = 0.5
ELITE_TITLE_SCORE = 90

_HASHTAG_PATTERN = re.compile(r"#\w+")


def generate_metadata(
    candidate: ClipCandidate,
    rng: RandomSource,
    hashtag_source: str = "caption",
) -> ClipMetadata:
    """Attach a title, caption, hashtags and timed on-screen text to a selected clip.

    Captions add drama rather than explain the clip. Draw order from ``rng`` is fixed
    (title, primary caption, escalation caption) so seeded runs repeat exactly.
    """

    if hashtag_source not in HASHTAG_SOURCES:
        raise ValueError(
            f"Unsupported hashtag source '{hashtag_source}'. Expected one of: {', '.join(HASHTAG_SOURCES)}."
        )

    title = rng.choice(TITLE_POOLS[candidate.clip_type])
    if candidate.score >= ELITE_TITLE_SCORE:
        title = f"🔥 {title} 🔥"

    primary_trigger = candidate.triggers[0] if candidate.triggers else ViralTrigger.TIMING_PERFECTION
    drama_line = rng.choice(CAPTION_POOLS[primary_trigger])

    type_tags = list(TYPE_HASHTAGS[candidate.clip_type])
    caption = f"{drama_line}\n\n{' '.join(type_tags)}"
    hashtags = _HASHTAG_PATTERN.findall(caption) if hashtag_source == "caption" else type_tags

    return ClipMetadata(
        title=title,
        caption=caption,
        hashtags=hashtags,
        on_screen_text=_on_screen_text(candidate, drama_line, rng),
    )


def _on_screen_text(candidate: ClipCandidate, primary_text: str, rng: RandomSource) -> list[OnScreenText]:
    entries = [
        OnScreenText(
            time=FIRST_TEXT_TIME,
            text=primary_text,
            duration=round(min(ON_SCREEN_TEXT_SECONDS, candidate.duration - FIRST_TEXT_TIME), 3),
        )
    ]

    # clip-relative, so the overlay lands inside the rendered clip
    relative_peak = candidate.peak_moment - candidate.start_time
    if ViralTrigger.ESCALATION in candidate.triggers and relative_peak > ESCALATION_MIN_PEAK_OFFSET:
        entries.append(
            OnScreenText(
                time=round(relative_peak - ESCALATION_LEAD_SECONDS, 3),
                text=rng.choice(CAPTION_POOLS[ViralTrigger.ESCALATION]),
                duration=ON_SCREEN_TEXT_SECONDS,
            )
        )
    return entries
