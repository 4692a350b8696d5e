"""Shared test doubles for agentdesk tests."""

from typing import Optional, Dict, List, Any

import pytest

from agentdesk.agents import AgentRegistry, AgentStateStore
from agentdesk.credentials import create_credential_store
from agentdesk.errors import AuthRequiredError, ProviderError


class ScriptedChatModel:
    """ChatModel returning queued replies; queued exceptions are raised."""

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, max_tokens=500, temperature=0.7, json_mode=False):
        self.calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "json_mode": json_mode,
        })
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeMailbox:
    """In-memory MailProvider. Tokens listed in `valid_tokens` are accepted."""

    def __init__(self, valid_tokens=("good-token",), messages=None, labels=None):
        self.valid_tokens = set(valid_tokens)
        self.messages: Dict[str, Dict[str, Any]] = dict(messages or {})
        self.labels: List[Dict[str, Any]] = list(labels or [])
        self.sent: List[str] = []
        self.fail: Optional[Exception] = None

    def client(self, token: str) -> "FakeMailClient":
        return FakeMailClient(self, token)


class FakeMailClient:
    def __init__(self, mailbox: FakeMailbox, token: str):
        self.mailbox = mailbox
        self.token = token

    def _check(self):
        if self.token not in self.mailbox.valid_tokens:
            raise AuthRequiredError("token rejected")
        if self.mailbox.fail is not None:
            raise self.mailbox.fail

    async def get_profile(self):
        if self.token not in self.mailbox.valid_tokens:
            raise AuthRequiredError("token rejected")
        return {"emailAddress": "user@example.com"}

    async def list_messages(self, max_results=5, query=None, label_ids=None):
        self._check()
        refs = []
        for message_id, message in self.mailbox.messages.items():
            if label_ids and not set(label_ids) & set(message.get("labelIds", [])):
                continue
            if query and query.lower() not in message.get("snippet", "").lower():
                continue
            refs.append({"id": message_id})
        return refs[:max_results]

    async def get_message(self, message_id, format="full"):
        self._check()
        if message_id not in self.mailbox.messages:
            raise ProviderError("Requested entity was not found.", status_code=404)
        return self.mailbox.messages[message_id]

    async def send_message(self, raw):
        self._check()
        self.mailbox.sent.append(raw)
        return {"id": f"sent-{len(self.mailbox.sent)}"}

    async def list_labels(self):
        self._check()
        return self.mailbox.labels


class FakeOAuth:
    """GoogleOAuth double; refresh and exchange return canned tokens or raise."""

    def __init__(self, refresh_tokens=None, refresh_error=None, exchange_tokens=None):
        self.refresh_tokens = refresh_tokens
        self.refresh_error = refresh_error
        self.exchange_tokens = exchange_tokens or {
            "access_token": "good-token",
            "refresh_token": "refresh-1",
            "expiry_date": 1_900_000_000_000,
        }
        self.refreshed_with: List[Optional[str]] = []

    def auth_url(self, state, scopes=None):
        return f"https://accounts.example.com/auth?state={state}"

    async def exchange_code(self, code):
        if code == "bad":
            raise ProviderError("invalid_grant")
        return dict(self.exchange_tokens)

    async def refresh(self, refresh_token):
        self.refreshed_with.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        if not self.refresh_tokens:
            raise ProviderError("No refresh token available")
        return dict(self.refresh_tokens)


def make_message(message_id, sender="alice@example.com", subject="Hello", snippet="hi there",
                 body_b64=None, label_ids=("INBOX",)):
    payload = {
        "headers": [
            {"name": "From", "value": sender},
            {"name": "To", "value": "user@example.com"},
            {"name": "Subject", "value": subject},
            {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
        ],
        "body": {"data": body_b64} if body_b64 else {},
    }
    return {"id": message_id, "snippet": snippet, "labelIds": list(label_ids), "payload": payload}


@pytest.fixture
def mailbox():
    return FakeMailbox(
        messages={
            "m1": make_message("m1", subject="Invoice", snippet="your invoice is ready"),
            "m2": make_message("m2", sender="bob@example.com", subject="Lunch", snippet="lunch tomorrow?",
                               label_ids=("Label_1",)),
        },
        labels=[
            {"id": "INBOX", "name": "INBOX", "type": "system", "messagesTotal": 1, "messagesUnread": 1},
            {"id": "Label_1", "name": "Work", "type": "user"},
        ],
    )


@pytest.fixture
def oauth():
    return FakeOAuth(refresh_tokens={"access_token": "good-token", "expiry_date": 1_900_000_000_000})


@pytest.fixture
def credential_store(tmp_path):
    return create_credential_store("file", tmp_path / "credentials")


@pytest.fixture
def storage(tmp_path):
    return AgentStateStore(tmp_path / "agents")


@pytest.fixture
def make_registry(storage, credential_store, mailbox, oauth):
    """Registry factory wired to temp stores and the fake mailbox."""

    def factory(chat_model=None, router=None) -> AgentRegistry:
        return AgentRegistry(
            storage=storage,
            credential_store=credential_store,
            chat_model=chat_model,
            router=router,
            mail_options={
                "provider_factory": mailbox.client,
                "oauth_factory": lambda cid, secret, uri: oauth,
            },
        )

    return factory
