"""Rule-based reading of the free-text notes column.

Each note is tested against fixed keyword sets (one note may land in several
classes). The summary sentence comes from a decision table keyed by
(tone, timeline_flag, result_category); the first matching row wins and
`None` in a key position matches anything.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from campdash.config import OutcomeLabels
from campdash.models import CanonicalField, InsightSummary

SENTIMENT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "positive": ("긍정", "관심", "호의", "검토", "좋", "interested", "positive", "considering", "agreed", "keen"),
    "negative": (
        "거절",
        "불가",
        "어렵",
        "부정",
        "싫",
        "관심 없",
        "관심없",
        "관심이 없",
        "좋지 않",
        "안 좋",
        "declined",
        "refused",
        "rejected",
        "not interested",
        "uninterested",
        "no interest",
        "not keen",
        "negative",
    ),
    "neutral": ("보류", "부재", "재연락", "고민", "pending", "on hold", "callback", "no answer"),
    "timeline": ("다음달", "다음 달", "내년", "시즌", "이후", "next week", "next month", "next year", "next season", "later"),
}

# Negated phrases ("관심 없음", "not interested") contain positive keywords, so
# negative matches are cut out of the text before the positive class is tested.
MASKED_BY = {"positive": "negative"}

REASON_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "fees": ("수수료", "비용", "가격", "fee", "commission", "price", "cost"),
    "other_platform": ("타 플랫폼", "타플랫폼", "기존", "다른 앱", "other platform", "already listed", "competitor"),
    "operations": ("운영", "인력", "바쁨", "staff", "capacity", "busy"),
    "closure": ("폐업", "휴업", "공사", "closed", "closing", "renovation"),
    "unreachable": ("부재", "연락 안", "연락안", "no answer", "unreachable", "wrong number"),
}

CATEGORY_LABELS: Dict[str, str] = {
    "fees": "fees",
    "other_platform": "existing platforms",
    "operations": "operating capacity",
    "closure": "closures",
    "unreachable": "unreachable contacts",
}

DOMINANCE_FACTOR = 1.5

# (tone, timeline_flag, result_category) -> template id
INSIGHT_RULES: List[Tuple[Tuple[Optional[str], Optional[bool], Optional[str]], str]] = [
    (("none", None, None), "no_notes"),
    (("positive", True, None), "optimistic_follow_up"),
    (("positive", False, "success"), "optimistic_converting"),
    (("positive", False, None), "optimistic"),
    (("negative", None, "negative"), "pessimistic_confirmed"),
    (("negative", True, None), "pessimistic_follow_up"),
    (("negative", False, None), "pessimistic"),
    (("balanced", True, None), "mixed_follow_up"),
    ((None, None, None), "mixed"),
]

INSIGHT_TEMPLATES: Dict[str, str] = {
    "no_notes": "No notes recorded for the current selection.",
    "optimistic_follow_up": (
        "Notes lean positive ({positive} positive vs {negative} negative) and {timeline} mention a later timeline; "
        "schedule follow-ups to convert them."
    ),
    "optimistic_converting": (
        "Notes lean positive ({positive} positive vs {negative} negative) and results are converting; "
        "keep the current approach."
    ),
    "optimistic": "Notes lean positive ({positive} positive vs {negative} negative) across {notes} notes.",
    "pessimistic_confirmed": (
        "Notes lean negative ({negative} negative vs {positive} positive) and rejections outnumber entries; "
        "the main theme is {top_category}."
    ),
    "pessimistic_follow_up": (
        "Notes lean negative ({negative} negative vs {positive} positive), but {timeline} mention a later timeline; "
        "revisit those sites."
    ),
    "pessimistic": "Notes lean negative ({negative} negative vs {positive} positive); the main theme is {top_category}.",
    "mixed_follow_up": (
        "Notes are mixed ({positive} positive, {negative} negative, {neutral} pending) and {timeline} mention a later "
        "timeline."
    ),
    "mixed": "Notes are mixed ({positive} positive, {negative} negative, {neutral} pending) across {notes} notes.",
}


def _mask(text: str, words: Iterable[str]) -> str:
    for word in sorted((w.lower() for w in words), key=len, reverse=True):
        text = text.replace(word, " ")
    return text


def classify_note(note: str, keyword_sets: Dict[str, Tuple[str, ...]]) -> List[str]:
    text = note.lower()
    classes = []
    for name, words in keyword_sets.items():
        masking = MASKED_BY.get(name)
        haystack = _mask(text, keyword_sets[masking]) if masking in keyword_sets else text
        if any(w.lower() in haystack for w in words):
            classes.append(name)
    return classes


def tally(notes: Iterable[str], keyword_sets: Dict[str, Tuple[str, ...]]) -> Dict[str, int]:
    counts = {name: 0 for name in keyword_sets}
    for note in notes:
        for name in classify_note(note, keyword_sets):
            counts[name] += 1
    return counts


def tone_of(positive: int, negative: int, notes_count: int) -> str:
    if notes_count == 0:
        return "none"
    if positive > negative * DOMINANCE_FACTOR:
        return "positive"
    if negative > positive * DOMINANCE_FACTOR:
        return "negative"
    return "balanced"


def result_category_of(success: int, negative: int) -> str:
    if success > negative:
        return "success"
    if negative > success:
        return "negative"
    return "mixed"


def select_template(tone: str, timeline: bool, result_category: str) -> str:
    key = (tone, timeline, result_category)
    for pattern, template_id in INSIGHT_RULES:
        if all(p is None or p == k for p, k in zip(pattern, key)):
            return template_id
    return "mixed"


def compute_insights(df: pd.DataFrame, outcomes: OutcomeLabels) -> InsightSummary:
    if df.empty:
        notes: List[str] = []
        success = negative_results = 0
    else:
        raw_notes = df[CanonicalField.NOTES.value]
        notes = [str(n).strip() for n in raw_notes if n is not None and not pd.isna(n) and str(n).strip()]
        results = df[CanonicalField.RESULT.value]
        success = int(results.map(outcomes.is_success).sum())
        negative_results = int(results.map(outcomes.is_negative).sum())

    sentiment = tally(notes, SENTIMENT_KEYWORDS)
    categories = tally(notes, REASON_CATEGORIES)

    tone = tone_of(sentiment["positive"], sentiment["negative"], len(notes))
    timeline = sentiment["timeline"] > 0
    result_category = result_category_of(success, negative_results)
    template_id = select_template(tone, timeline, result_category)

    top_category = max(categories, key=lambda k: categories[k]) if any(categories.values()) else None
    summary = INSIGHT_TEMPLATES[template_id].format(
        positive=sentiment["positive"],
        negative=sentiment["negative"],
        neutral=sentiment["neutral"],
        timeline=sentiment["timeline"],
        notes=len(notes),
        top_category=CATEGORY_LABELS.get(top_category, "unclassified reasons") if top_category else "unclassified reasons",
    )
    return InsightSummary(
        notes_count=len(notes),
        sentiment=sentiment,
        categories=categories,
        result_category=result_category,
        template_id=template_id,
        summary=summary,
    )
