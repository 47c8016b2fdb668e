"""
Rule-based task extraction (no LLM needed).

Used by the offline provider when no model is configured, and handy for
fast deterministic extraction in tests. Splits text into sentences, then
for each one:
  - resolves relative due dates against a reference date
  - escalates priority on urgency wording
  - guesses a category from keywords
  - strips date/priority phrases to leave a short title
"""
import re
from datetime import date, timedelta
from typing import Dict, Any, List, Optional

WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_WEEKDAY = (r"(monday|mon|tuesday|tues|tue|wednesday|wed|thursday|thurs|thur|thu|"
            r"friday|fri|saturday|sat|sunday|sun)")
_MONTH = (r"(january|jan|february|feb|march|mar|april|apr|may|june|jun|july|jul|"
          r"august|aug|september|sept|sep|october|oct|november|nov|december|dec)")
_LEAD = r"\b(?:(?:by|on|due|before|until)\s+)?"

HIGH_WORDS = ["urgent", "urgently", "asap", "as soon as possible", "immediately",
              "critical", "emergency", "important", "high priority", "right away"]
LOW_WORDS = ["low priority", "nice to have", "someday", "eventually", "no rush",
             "when i get a chance", "when you get a chance", "whenever"]

CATEGORY_RULES = [
    ("Shopping", ["buy", "purchase", "order", "groceries", "grocery", "pick up", "shop"]),
    ("Home", ["plumber", "clean", "laundry", "repair", "fix", "electrician", "mow", "dishes"]),
    ("Work", ["meeting", "report", "email", "client", "deadline", "presentation",
              "review", "standup", "invoice", "project"]),
    ("Health", ["doctor", "dentist", "gym", "workout", "pharmacy", "prescription"]),
    ("Personal", ["call mom", "call dad", "birthday", "family", "friend"]),
]

DATE_PATTERNS = [
    _LEAD + r"\d{4}-\d{2}-\d{2}\b",
    _LEAD + _MONTH + r"\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s*\d{4})?\b",
    _LEAD + r"\d{1,2}/\d{1,2}(?:/\d{2,4})?\b",
    _LEAD + r"(?:next|this)\s+" + _WEEKDAY + r"\b",
    _LEAD + _WEEKDAY + r"\b",
    _LEAD + r"(?:today|tonight|tomorrow)\b",
    r"\bthis\s+(?:morning|afternoon|evening|weekend)\b",
    r"\bin\s+\d+\s+days?\b",
    _LEAD + r"next\s+week\b",
    r"\bat\s+\d{1,2}(?::\d{2})?\s*(?:am|pm)?\b",
]

FILLER = re.compile(
    r"^(?:i\s+need\s+to|i\s+have\s+to|i\s+should|i\s+must|we\s+need\s+to|"
    r"need\s+to|remember\s+to|don'?t\s+forget\s+to|make\s+sure\s+to|please|also|and|then)\s+",
    re.I,
)
MODIFIER = re.compile(r"\b(?:it'?s|it\s+is|this\s+is|that'?s|very|really|super|pretty|quite|and|so)\b", re.I)


def _month_to_int(name: str) -> int:
    return MONTHS[name[:3].lower()]


def _weekday_to_int(name: str) -> int:
    return WEEKDAYS[name[:3].lower()]


def _next_weekday(d: date, target: int, strictly_after: bool) -> date:
    days_ahead = (target - d.weekday()) % 7
    if days_ahead == 0 and strictly_after:
        days_ahead = 7
    return d + timedelta(days=days_ahead)


def parse_natural_due_date(text: str, reference: date) -> Optional[date]:
    """Resolve the first recognizable due date in text, or None."""
    t = (text or "").lower()

    m = re.search(r"\b(\d{4})-(\d{2})-(\d{2})\b", t)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            pass

    m = re.search(r"\b" + _MONTH + r"\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s*(\d{4}))?\b", t)
    if m:
        year = int(m.group(3)) if m.group(3) else reference.year
        try:
            candidate = date(year, _month_to_int(m.group(1)), int(m.group(2)))
            if m.group(3) is None and candidate < reference:
                candidate = date(year + 1, candidate.month, candidate.day)
            return candidate
        except ValueError:
            pass

    m = re.search(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b", t)
    if m:
        month, day = int(m.group(1)), int(m.group(2))
        try:
            if m.group(3):
                year = int(m.group(3))
                if year < 100:
                    year += 2000
                return date(year, month, day)
            candidate = date(reference.year, month, day)
            if candidate < reference:
                candidate = date(reference.year + 1, month, day)
            return candidate
        except ValueError:
            pass

    m = re.search(r"\bnext\s+" + _WEEKDAY + r"\b", t)
    if m:
        return _next_weekday(reference, _weekday_to_int(m.group(1)), strictly_after=True)

    m = re.search(r"\b(?:this\s+|on\s+|by\s+)?" + _WEEKDAY + r"\b", t)
    if m:
        return _next_weekday(reference, _weekday_to_int(m.group(1)), strictly_after=False)

    if re.search(r"\btomorrow\b", t):
        return reference + timedelta(days=1)
    if re.search(r"\b(today|tonight|this\s+(morning|afternoon|evening))\b", t):
        return reference

    m = re.search(r"\bin\s+(\d+)\s+days?\b", t)
    if m:
        return reference + timedelta(days=int(m.group(1)))

    if re.search(r"\bnext\s+week\b", t):
        return _next_weekday(reference, 0, strictly_after=True)
    if re.search(r"\bthis\s+weekend\b", t):
        return _next_weekday(reference, 5, strictly_after=False)
    return None


def priority_by_rules(text: str) -> str:
    t = (text or "").lower()
    if any(re.search(r"\b" + re.escape(w) + r"\b", t) for w in HIGH_WORDS):
        return "high"
    if any(re.search(r"\b" + re.escape(w) + r"\b", t) for w in LOW_WORDS):
        return "low"
    return "medium"


def category_by_rules(text: str) -> Optional[str]:
    t = (text or "").lower()
    for category, words in CATEGORY_RULES:
        if any(re.search(r"\b" + re.escape(w) + r"\b", t) for w in words):
            return category
    return None


def _strip_phrases(text: str) -> str:
    for pattern in DATE_PATTERNS:
        text = re.sub(pattern, " ", text, flags=re.I)
    for word in HIGH_WORDS + LOW_WORDS:
        text = re.sub(r"\b" + re.escape(word) + r"\b", " ", text, flags=re.I)
    return re.sub(r"\s+", " ", text).strip(" ,;:-")


def _title_from(sentence: str) -> str:
    # Drop trailing comma clauses that only carry date/priority ("..., it's urgent")
    parts = [p.strip() for p in sentence.split(",")]
    while len(parts) > 1 and not MODIFIER.sub(" ", _strip_phrases(parts[-1])).strip(" .!?"):
        parts.pop()
    title = _strip_phrases(", ".join(parts))
    title = FILLER.sub("", title).strip(" .!?,;:")
    return title[:1].upper() + title[1:]


def split_sentences(text: str) -> List[str]:
    chunks = re.split(r"(?<=[.!?;])\s+|\n+", text or "")
    result = []
    for chunk in chunks:
        chunk = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", chunk).strip()
        if len(chunk.split()) >= 2:
            result.append(chunk)
    return result


def extract_by_rules(text: str, reference: date) -> Dict[str, Any]:
    """
    Extract tasks from free text with keyword rules.

    Returns the same shape the model is asked for: {"tasks": [...]}.
    """
    tasks = []
    for sentence in split_sentences(text):
        title = _title_from(sentence)
        if not title:
            continue
        task: Dict[str, Any] = {
            "title": title,
            "priority": priority_by_rules(sentence),
        }
        clean_sentence = sentence.strip()
        if clean_sentence.rstrip(".!?") != title:
            task["description"] = clean_sentence
        due = parse_natural_due_date(sentence, reference)
        if due:
            task["dueDate"] = due.isoformat()
        category = category_by_rules(sentence)
        if category:
            task["category"] = category
        tasks.append(task)
    return {"tasks": tasks}
