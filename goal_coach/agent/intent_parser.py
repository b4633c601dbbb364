import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..schemas.coach import (
    CreateGoalPayload,
    CreateGoalProposal,
    DeleteGoalPayload,
    DeleteGoalProposal,
    IntentParseResult,
    UpdateGoalPayload,
    UpdateGoalProposal,
)
from ..schemas.goal import GoalCandidate
from .utils.dates import offset_date, parse_iso_date, resolve_now
from .utils.strings import collapse_whitespace, strip_wrapping, truncate

DELETE_MARKER = "[intent:delete_goal]"
UPDATE_MARKER = "[intent:update_goal]"
MAX_CLARIFY_CANDIDATES = 5
# only the latest assistant turn can open a disambiguation follow-up
FOLLOW_UP_TURNS = 1
MAX_TITLE_LENGTH = 180
MAX_DETAILS_LENGTH = 2000

POLITE_PREFIXES = [
    re.compile(r"^(?:hi|hello|hey)(?:\s+(?:there|coach))?[\s,!.]+", re.I),
    re.compile(r"^(?:ok(?:ay)?|so|well|alright)[\s,]+", re.I),
    re.compile(r"^(?:please|pls|kindly)[\s,]+", re.I),
    re.compile(r"^(?:can|could|would|will)\s+you(?:\s+please)?\s+", re.I),
    re.compile(r"^i(?:'d|\s+would)\s+like(?:\s+you)?\s+to\s+", re.I),
    re.compile(r"^i\s+(?:want|need)(?:\s+you)?\s+to\s+", re.I),
    re.compile(r"^(?:let's|lets|let\s+us)\s+", re.I),
    re.compile(r"^help\s+me(?:\s+to)?\s+", re.I),
]
POLITE_SUFFIX = re.compile(r"[\s,]+please[\s.!?]*$", re.I)

GOAL_WORD = re.compile(r"\bgoals?\b", re.I)
CREATE_VERB = re.compile(r"\b(?:create|add|start|make|set\s+up|begin)\b|\bnew\s+goal\b", re.I)
DELETE_VERB = re.compile(r"\b(?:delete|remove|drop|archive|get\s+rid\s+of)\b", re.I)
UPDATE_VERB = re.compile(
    r"\b(?:update|change|rename|retitle|edit|modify|move|postpone|extend|set(?!\s+up\b))\b", re.I
)

CREATE_TITLE_PATTERNS = [
    re.compile(r"\bgoal\s+(?:called|named|titled)\s+(.+)$", re.I),
    re.compile(r"\bgoal\s*:\s*(.+)$", re.I),
    re.compile(r"\bgoal\s+(?:to|of)\s+(.+)$", re.I),
]
CREATE_LEADING_FRAME = re.compile(
    r"^(?:create|add|start|make|set\s+up|begin)\s+(?:(?:a|an|my|the|new|another|one)\s+)*(?:goals?\b)?",
    re.I,
)
CREATE_TRAILING_FRAME = re.compile(
    r"\s+(?:as\s+(?:a|an|my|another)?\s*(?:new\s+)?goal|(?:to|in)\s+my\s+goals?)\b.*$", re.I
)

RELATIVE_DATE = re.compile(r"\b(?:in|within)\s+(\d{1,3})\s+(days?|weeks?|months?)\b", re.I)
TRAILING_RELATIVE_CLAUSE = re.compile(r"\s+(?:in|within)\s+\d{1,3}\s+(?:days?|weeks?|months?)\b.*$", re.I)
TRAILING_EXPLICIT_CLAUSE = re.compile(r"\s+(?:by|due(?:\s+on)?|before)\s+\d{4}-\d{2}-\d{2}\b.*$", re.I)
CREATE_EXPLICIT_DATE = re.compile(r"\b(?:by|due(?:\s+on)?|before)\s+(\d{4}-\d{2}-\d{2})\b", re.I)
UPDATE_EXPLICIT_DATE = re.compile(
    r"\b(?:target\s+date|due(?:\s+date)?|deadline)\b[^\d\n]{0,24}?(\d{4}-\d{2}-\d{2})\b", re.I
)

FIELD_BOUNDARY = r"(?=\s*(?:[,;]\s*)?(?:\band\s+)?\b(?:details|description|notes|target\s+date|due(?:\s+date)?|deadline)\b|$)"
RENAME_PATTERN = re.compile(r"\b(?:rename|retitle)\b.*?\bto\s+(.+?)" + FIELD_BOUNDARY, re.I)
TITLE_TO_PATTERN = re.compile(r"\b(?:title|name)\s+(?:to|as)\s+(.+?)" + FIELD_BOUNDARY, re.I)
CHANGE_TO_PATTERN = re.compile(r"\bchange\b(.*?)\bto\s+(.+?)" + FIELD_BOUNDARY, re.I)
NON_TITLE_FIELD = re.compile(r"\b(?:details|description|notes|target\s+date|due|deadline|date)\b", re.I)
DETAILS_PATTERN = re.compile(
    r"\b(?:details|description|notes)\b\s*(?::|=|\bto\b|\bas\b)\s*(.+?)"
    r"(?=\s*(?:[,;]\s*)?(?:\band\s+)?\b(?:target\s+date|due(?:\s+date)?|deadline)\b|$)",
    re.I,
)

QUOTED = re.compile(r"\"([^\"]+)\"|“([^”]+)”|‘([^’]+)’|(?:^|(?<=\s))'([^']+)'(?=$|[\s.,!?;:])")

Span = Tuple[int, int]


def strip_request_framing(text: str) -> str:
    current = collapse_whitespace(text)
    previous = None
    while current != previous:
        previous = current
        for pattern in POLITE_PREFIXES:
            current = pattern.sub("", current, count=1).strip()
        current = POLITE_SUFFIX.sub("", current).strip()
    return current


def extract_quoted(text: str) -> List[str]:
    quoted: List[str] = []
    for match in QUOTED.finditer(text):
        value = next((group for group in match.groups() if group), "")
        cleaned = collapse_whitespace(value)
        if cleaned:
            quoted.append(cleaned)
    return quoted


def latest_marked_turn(turns: Sequence[str], marker: str) -> Optional[str]:
    recent = list(turns)[-FOLLOW_UP_TURNS:]
    return next((turn for turn in reversed(recent) if isinstance(turn, str) and marker in turn), None)


def has_marker(turns: Sequence[str], marker: str) -> bool:
    return latest_marked_turn(turns, marker) is not None


def _format_date(value: datetime) -> str:
    return value.date().isoformat()


def extract_relative_date(text: str, now: datetime) -> Optional[str]:
    match = RELATIVE_DATE.search(text)
    if not match:
        return None
    amount = int(match.group(1))
    return _format_date(offset_date(now, amount, match.group(2)))


def _extract_explicit_date(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    parsed = parse_iso_date(match.group(1))
    return parsed.isoformat() if parsed else None


def normalize_title(raw: str) -> str:
    title = strip_wrapping(raw)
    title = TRAILING_RELATIVE_CLAUSE.sub("", title)
    title = TRAILING_EXPLICIT_CLAUSE.sub("", title)
    return truncate(strip_wrapping(title), MAX_TITLE_LENGTH)


def extract_create_title(text: str) -> str:
    for pattern in CREATE_TITLE_PATTERNS:
        match = pattern.search(text)
        if match:
            return normalize_title(match.group(1))
    fallback = CREATE_LEADING_FRAME.sub("", text, count=1)
    fallback = CREATE_TRAILING_FRAME.sub("", fallback)
    return normalize_title(fallback)


def _mentions_title(text: str, title: str) -> bool:
    cleaned = title.strip()
    if not cleaned:
        return False
    return re.search(rf"(?<!\w){re.escape(cleaned)}(?!\w)", text, flags=re.I) is not None


def _prefer_longest(matches: List[GoalCandidate]) -> List[GoalCandidate]:
    # "Run" and "Run a marathon" both appear in "delete Run a marathon"; keep the longer one.
    return [
        goal
        for goal in matches
        if not any(
            other.id != goal.id
            and len(other.title.strip()) > len(goal.title.strip())
            and goal.title.strip().lower() in other.title.strip().lower()
            for other in matches
        )
    ]


def match_goals(text: str, quoted: List[str], goals: Sequence[GoalCandidate]) -> List[GoalCandidate]:
    if quoted:
        lowered = [value.lower() for value in quoted]
        exact = [goal for goal in goals if goal.title.strip().lower() in lowered]
        if exact:
            return exact
        partial = [goal for goal in goals if any(value in goal.title.lower() for value in lowered)]
        if partial:
            return partial
    mentioned = [goal for goal in goals if _mentions_title(text, goal.title)]
    return _prefer_longest(mentioned)


def _mask_spans(text: str, spans: List[Span]) -> str:
    masked = text
    for start, end in sorted(spans, reverse=True):
        masked = masked[:start] + " " + masked[end:]
    return masked


def _eligible(goals: Sequence[GoalCandidate]) -> List[GoalCandidate]:
    return [goal for goal in goals if goal.status != "ARCHIVED"]


def _candidate_list(goals: Sequence[GoalCandidate]) -> str:
    return ", ".join(f'"{goal.title}"' for goal in list(goals)[:MAX_CLARIFY_CANDIDATES])


def build_clarification(action: str, marker: str, candidates: Sequence[GoalCandidate]) -> str:
    if not candidates:
        return f"I couldn't find an active goal to {action}. Tell me which goal you mean."
    return (
        f"Which goal should I {action}? Reply with the exact title in quotes. "
        f"Options: {_candidate_list(candidates)}. {marker}"
    )


def detect_create(text: str, now: datetime) -> Optional[CreateGoalProposal]:
    if not (CREATE_VERB.search(text) and GOAL_WORD.search(text)):
        return None
    title = extract_create_title(text)
    if not title:
        return None
    target_date = _extract_explicit_date(CREATE_EXPLICIT_DATE, text) or extract_relative_date(text, now)
    return CreateGoalProposal(
        label=f"Create goal: {title}",
        payload=CreateGoalPayload(title=title, targetDate=target_date),
    )


def detect_delete(
    text: str, quoted: List[str], turns: Sequence[str], goals: Sequence[GoalCandidate]
) -> Tuple[Optional[DeleteGoalProposal], Optional[str]]:
    explicit = DELETE_VERB.search(text) is not None and GOAL_WORD.search(text) is not None
    follow_up = bool(quoted) and has_marker(turns, DELETE_MARKER)
    if not (explicit or follow_up):
        return None, None

    eligible = _eligible(goals)
    matches = match_goals(text, quoted, eligible)
    if len(matches) == 1:
        goal = matches[0]
        return (
            DeleteGoalProposal(
                label=f"Delete goal: {goal.title}",
                payload=DeleteGoalPayload(goalId=goal.id, goalTitle=goal.title, previousStatus=goal.status),
            ),
            None,
        )
    return None, build_clarification("delete", DELETE_MARKER, matches or eligible)


def extract_update_fields(text: str, now: datetime) -> Tuple[Dict[str, str], List[Span]]:
    fields: Dict[str, str] = {}
    spans: List[Span] = []

    title_match = RENAME_PATTERN.search(text) or TITLE_TO_PATTERN.search(text)
    title_group = 1
    if not title_match:
        change_match = CHANGE_TO_PATTERN.search(text)
        if change_match and not NON_TITLE_FIELD.search(change_match.group(1)):
            title_match = change_match
            title_group = 2
    if title_match:
        title = normalize_title(title_match.group(title_group))
        if title:
            fields["title"] = title
            spans.append(title_match.span(title_group))

    details_match = DETAILS_PATTERN.search(text)
    if details_match:
        details = truncate(strip_wrapping(details_match.group(1)), MAX_DETAILS_LENGTH)
        if details:
            fields["details"] = details
            spans.append(details_match.span(1))

    target_date = _extract_explicit_date(UPDATE_EXPLICIT_DATE, text) or extract_relative_date(text, now)
    if target_date:
        fields["targetDate"] = target_date

    return fields, spans


def detect_update(
    text: str, quoted: List[str], turns: Sequence[str], goals: Sequence[GoalCandidate], now: datetime
) -> Tuple[Optional[UpdateGoalProposal], Optional[str]]:
    eligible = _eligible(goals)
    marked_turn = latest_marked_turn(turns, UPDATE_MARKER)
    follow_up = bool(quoted) and marked_turn is not None
    if not UPDATE_VERB.search(text) and not follow_up:
        return None, None

    fields, spans = extract_update_fields(text, now)
    search_text = _mask_spans(text, spans)
    new_title = fields.get("title", "").lower()
    target_quotes = [value for value in quoted if value.lower() != new_title]
    matches = match_goals(search_text, target_quotes, eligible)
    if not matches and fields and marked_turn is not None:
        # the prompt being answered quotes the goal it asked about
        matches = match_goals("", extract_quoted(marked_turn), eligible)

    names_goal = GOAL_WORD.search(text) is not None or bool(matches)
    if not (names_goal or follow_up):
        return None, None

    if len(matches) != 1:
        return None, build_clarification("update", UPDATE_MARKER, matches or eligible)

    goal = matches[0]
    if not fields:
        return None, (
            f'What should I change about "{goal.title}"? For example: rename it to "New title", '
            f"set details: your notes, or set the target date to 2030-01-31. {UPDATE_MARKER}"
        )
    return (
        UpdateGoalProposal(
            label=f"Update goal: {goal.title}",
            payload=UpdateGoalPayload(goalId=goal.id, goalTitle=goal.title, **fields),
        ),
        None,
    )


def parse_intent(
    message: str,
    recent_assistant_turns: Optional[Sequence[str]] = None,
    candidate_goals: Optional[Sequence[GoalCandidate]] = None,
    now: Optional[datetime] = None,
) -> IntentParseResult:
    current = resolve_now(now)
    turns = list(recent_assistant_turns or [])
    goals = list(candidate_goals or [])
    text = strip_request_framing(message or "")
    if not text:
        return IntentParseResult()

    quoted = extract_quoted(text)
    create = detect_create(text, current)
    update, update_clarification = detect_update(text, quoted, turns, goals, current)
    delete, delete_clarification = detect_delete(text, quoted, turns, goals)

    proposals = [proposal for proposal in (create, update, delete) if proposal is not None]
    clarifications = [value for value in (update_clarification, delete_clarification) if value]
    return IntentParseResult(
        proposals=proposals,
        clarification="\n\n".join(clarifications) if clarifications else None,
    )
