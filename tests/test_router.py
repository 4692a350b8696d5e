"""Tests for message routing."""

import asyncio

from agentdesk.agents import LLMClassifier, RouteCandidate, Router
from agentdesk.agents.router import creation_suffix, parse_agent_type

from conftest import ScriptedChatModel


class RecordingClassifier:
    def __init__(self, answer="default", error=None):
        self.answer = answer
        self.error = error
        self.calls = 0

    async def __call__(self, message, candidates):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.answer


def candidates(*specs):
    return [RouteCandidate(id=i, type=t, name=t.title(), connected=c) for i, t, c in specs]


def select(router, cands, message="check my email"):
    return asyncio.run(router.select_agent(message, cands))


def test_single_agent_skips_classifier():
    classifier = RecordingClassifier("gmail")
    router = Router(classifier)

    assert select(router, candidates(("default", "default", False))) == "default"
    assert select(router, []) == "default"
    assert classifier.calls == 0


def test_inactive_agents_do_not_count():
    classifier = RecordingClassifier("gmail")
    router = Router(classifier)
    cands = candidates(("default", "default", False), ("gmail-1", "gmail", False))
    cands[1].active = False

    assert select(router, cands) == "default"
    assert classifier.calls == 0


def test_latest_gmail_agent_wins():
    router = Router(RecordingClassifier("gmail"))
    cands = candidates(
        ("default", "default", False),
        ("gmail-1700000000000", "gmail", False),
        ("gmail-1800000000000", "gmail", False),
        ("gmail-1750000000000", "gmail", False),
    )
    assert select(router, cands) == "gmail-1800000000000"


def test_connected_gmail_agent_preferred():
    router = Router(RecordingClassifier("gmail"))
    cands = candidates(
        ("default", "default", False),
        ("gmail-1700000000000", "gmail", True),
        ("gmail-1800000000000", "gmail", False),
    )
    assert select(router, cands) == "gmail-1700000000000"


def test_ids_without_suffix_rank_lowest():
    router = Router(RecordingClassifier("gmail"))
    cands = candidates(
        ("default", "default", False),
        ("work-mail", "gmail", False),
        ("gmail-5", "gmail", False),
    )
    assert select(router, cands) == "gmail-5"
    assert creation_suffix("work-mail") == -1
    assert creation_suffix("gmail-42") == 42


def test_classifier_failure_falls_back_to_default():
    router = Router(RecordingClassifier(error=RuntimeError("model down")))
    cands = candidates(("default", "default", False), ("gmail-1", "gmail", False))

    assert select(router, cands) == "default"


def test_unmatched_type_falls_back_to_default():
    router = Router(RecordingClassifier("calendar"))
    cands = candidates(("default", "default", False), ("gmail-1", "gmail", False))

    assert select(router, cands) == "default"


def test_non_mail_type_routes_to_first_match():
    router = Router(RecordingClassifier("Airtable."))
    cands = candidates(("default", "default", False), ("airtable-1", "airtable", False))

    assert select(router, cands, "add a row") == "airtable-1"


def test_parse_agent_type():
    assert parse_agent_type("  Gmail\n") == "gmail"
    assert parse_agent_type('"airtable"') == "airtable"
    assert parse_agent_type("gmail agent") == "gmail"
    assert parse_agent_type("") == ""


def test_llm_classifier_prompt_lists_candidates():
    model = ScriptedChatModel("gmail")
    classifier = LLMClassifier(model)
    cands = candidates(("default", "default", False), ("gmail-1", "gmail", False))

    answer = asyncio.run(classifier("any new mail?", cands))

    assert answer == "gmail"
    system = model.calls[0]["messages"][0]["content"]
    assert "- gmail (Gmail)" in system
    assert "- default (Default)" in system
    assert model.calls[0]["max_tokens"] == 50


def test_mail_alias_routes_to_latest_mail_agent():
    """A classifier answering with the generic "mail" name still finds Gmail agents."""
    router = Router(RecordingClassifier("mail"))
    cands = candidates(
        ("default", "default", False),
        ("mail-1700000000000", "gmail", False),
        ("mail-1700000005000", "gmail", False),
    )
    assert select(router, cands) == "mail-1700000005000"


def test_spreadsheet_alias_routes_to_airtable():
    router = Router(RecordingClassifier("Spreadsheet"))
    cands = candidates(("default", "default", False), ("airtable-1", "airtable", False))

    assert select(router, cands, "add a row") == "airtable-1"
