import pathlib
import sys
from datetime import datetime, timedelta, timezone

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from goal_coach.agent.intent_parser import DELETE_MARKER, UPDATE_MARKER, parse_intent, strip_request_framing  # noqa: E402
from goal_coach.schemas.goal import GoalCandidate  # noqa: E402

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

GOALS = [
    GoalCandidate(id="g-spanish", title="Learn Spanish", status="ACTIVE"),
    GoalCandidate(id="g-books", title="Read more books", status="COMPLETED"),
]


def test_create_with_relative_days():
    result = parse_intent("create a goal called Learn Spanish in 30 days", [], [], NOW)
    assert result.clarification is None
    assert len(result.proposals) == 1
    proposal = result.proposals[0]
    assert proposal.type == "create_goal"
    assert proposal.riskLevel == "low"
    assert proposal.payload.title == "Learn Spanish"
    assert proposal.payload.targetDate == (NOW + timedelta(days=30)).date().isoformat()
    assert proposal.label == "Create goal: Learn Spanish"


def test_create_strips_polite_framing_and_punctuation():
    result = parse_intent("Hi coach, could you please create a goal called Meditate daily?", [], [], NOW)
    assert [proposal.payload.title for proposal in result.proposals] == ["Meditate daily"]
    assert result.proposals[0].payload.targetDate is None


def test_create_with_weeks_and_goal_to_phrase():
    result = parse_intent("start a goal to read 12 books in 2 weeks", [], [], NOW)
    proposal = result.proposals[0]
    assert proposal.payload.title == "read 12 books"
    assert proposal.payload.targetDate == "2026-03-16"


def test_create_with_month_clamps_to_month_end():
    end_of_january = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)
    result = parse_intent("create a goal called Ship beta in 1 month", [], [], end_of_january)
    assert result.proposals[0].payload.targetDate == "2026-02-28"


def test_create_with_explicit_date():
    result = parse_intent("Please add a new goal: Run a half marathon by 2026-09-01", [], [], NOW)
    proposal = result.proposals[0]
    assert proposal.payload.title == "Run a half marathon"
    assert proposal.payload.targetDate == "2026-09-01"


def test_create_without_title_yields_nothing():
    result = parse_intent("create a goal", [], [], NOW)
    assert result.proposals == []
    assert result.clarification is None


def test_plain_question_has_no_intent():
    result = parse_intent("how am I doing this week?", [], GOALS, NOW)
    assert result.proposals == []
    assert result.clarification is None


def test_ambiguous_delete_asks_then_resolves_quoted_follow_up():
    first = parse_intent("delete goal", [], GOALS, NOW)
    assert first.proposals == []
    assert DELETE_MARKER in first.clarification
    assert '"Learn Spanish"' in first.clarification
    assert '"Read more books"' in first.clarification

    second = parse_intent('"Read more books"', [first.clarification], GOALS, NOW)
    assert second.clarification is None
    assert len(second.proposals) == 1
    proposal = second.proposals[0]
    assert proposal.type == "delete_goal"
    assert proposal.riskLevel == "high"
    assert proposal.payload.goalId == "g-books"
    assert proposal.payload.previousStatus == "COMPLETED"


def test_follow_up_only_honours_latest_assistant_turn():
    clarification = parse_intent("delete goal", [], GOALS, NOW).clarification
    result = parse_intent('"Learn Spanish"', [clarification, "Anything else I can help with?"], GOALS, NOW)
    assert result.proposals == []


def test_delete_by_title_mention():
    result = parse_intent("remove my goal Read more books", [], GOALS, NOW)
    assert [proposal.payload.goalId for proposal in result.proposals] == ["g-books"]


def test_delete_skips_archived_goals():
    goals = [GoalCandidate(id="g-old", title="Old habit", status="ARCHIVED")]
    result = parse_intent("delete my goal Old habit", [], goals, NOW)
    assert result.proposals == []
    assert "couldn't find an active goal" in result.clarification
    assert DELETE_MARKER not in result.clarification


def test_rename_with_quotes():
    result = parse_intent('rename my goal "Learn Spanish" to "Learn Portuguese"', [], GOALS, NOW)
    assert result.clarification is None
    proposal = result.proposals[0]
    assert proposal.type == "update_goal"
    assert proposal.payload.goalId == "g-spanish"
    assert proposal.payload.title == "Learn Portuguese"
    assert proposal.payload.details is None
    assert proposal.payload.targetDate is None


def test_update_deadline_only():
    result = parse_intent('move "Learn Spanish" deadline to 2026-06-30', [], GOALS, NOW)
    payload = result.proposals[0].payload
    assert payload.targetDate == "2026-06-30"
    assert payload.title is None


def test_update_details():
    result = parse_intent('update "Learn Spanish" details: practice with a tutor twice a week', [], GOALS, NOW)
    payload = result.proposals[0].payload
    assert payload.details == "practice with a tutor twice a week"
    assert payload.title is None


def test_update_without_fields_asks_for_change():
    result = parse_intent('update my goal "Learn Spanish"', [], GOALS, NOW)
    assert result.proposals == []
    assert UPDATE_MARKER in result.clarification
    assert '"Learn Spanish"' in result.clarification


def test_strip_request_framing():
    assert strip_request_framing("  Hey there!  I want you to delete goal please ") == "delete goal"


def test_update_change_prompt_resolves_follow_up_from_asked_goal():
    prompt = parse_intent('update my goal "Learn Spanish"', [], GOALS, NOW).clarification

    renamed = parse_intent('rename it to "Learn Portuguese"', [prompt], GOALS, NOW)
    assert renamed.clarification is None
    [proposal] = renamed.proposals
    assert proposal.type == "update_goal"
    assert proposal.payload.goalId == "g-spanish"
    assert proposal.payload.title == "Learn Portuguese"

    moved = parse_intent("set the target date to 2030-01-31", [prompt], GOALS, NOW)
    [proposal] = moved.proposals
    assert proposal.payload.goalId == "g-spanish"
    assert proposal.payload.targetDate == "2030-01-31"
    assert proposal.payload.title is None


def test_ambiguous_update_asks_then_resolves_quoted_follow_up():
    first = parse_intent("update my goal deadline to 2026-06-30", [], GOALS, NOW)
    assert first.proposals == []
    assert UPDATE_MARKER in first.clarification
    assert '"Learn Spanish"' in first.clarification
    assert '"Read more books"' in first.clarification

    still_ambiguous = parse_intent('rename it to "Read fewer books"', [first.clarification], GOALS, NOW)
    assert still_ambiguous.proposals == []
    assert UPDATE_MARKER in still_ambiguous.clarification

    second = parse_intent('"Read more books" deadline 2026-06-30', [first.clarification], GOALS, NOW)
    assert second.clarification is None
    [proposal] = second.proposals
    assert proposal.type == "update_goal"
    assert proposal.payload.goalId == "g-books"
    assert proposal.payload.targetDate == "2026-06-30"


def test_message_reading_as_create_and_update_surfaces_both():
    result = parse_intent('add a new goal to change "Learn Spanish" to "Learn Portuguese"', [], GOALS, NOW)
    assert result.clarification is None
    assert [proposal.type for proposal in result.proposals] == ["create_goal", "update_goal"]
    update = result.proposals[1]
    assert update.payload.goalId == "g-spanish"
    assert update.payload.title == "Learn Portuguese"
