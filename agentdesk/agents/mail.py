"""
Gmail Agent

Classifies each message into a mail intent with the chat model and
runs the matching Gmail operation. Connection state follows a small
state machine:

    unauthenticated --(valid token check)--> authenticated
    authenticated   --(401 from provider)--> expired
    expired         --(refresh ok + check)--> authenticated
    expired         --(refresh fails)-------> unauthenticated (tokens cleared)

Secrets live in the CredentialStore. Agent state snapshots only carry
non-sensitive markers (see CredentialInfo).
"""

import json
import re
import time
import logging
from enum import Enum
from typing import Optional, Dict, List, Any, Callable, Awaitable

from ..credentials import CredentialStore
from ..errors import AuthRequiredError, ProviderError
from ..llm import ChatModel
from ..mail import (
    GmailClient, GoogleOAuth, MailProvider,
    build_raw_message, extract_headers, extract_text,
)
from .base import BaseAgent, APOLOGY
from .models import AgentCommand, AgentKind, AgentState, CommandResult, CredentialInfo

logger = logging.getLogger("agentdesk.agents.mail")

SYSTEM_PROMPT = """You are a Gmail assistant that can help with email management tasks.
You can help the user read, send, and search emails.
Always be helpful, concise, and respectful of the user's privacy."""

INTENT_PROMPT = """You are an intent analyzer for a Gmail assistant.
Analyze the user's message and determine their intent.
Return a JSON object with the intent and any relevant parameters.
Possible intents: get_latest_emails, search_emails, read_email, send_email, list_labels, get_label_emails, other.
For get_latest_emails, include a count parameter.
For search_emails, include query and count parameters.
For read_email, include an id parameter if provided, otherwise set to null.
For send_email, include to, subject, and body parameters.
For list_labels, no additional parameters are needed.
For get_label_emails, include a label parameter (the label name or ID) and an optional count parameter."""

INTENTS = (
    "get_latest_emails",
    "search_emails",
    "read_email",
    "send_email",
    "list_labels",
    "get_label_emails",
    "other",
)

# What the user was trying to do, for apology messages
INTENT_ACTIONS = {
    "get_latest_emails": "retrieving your emails",
    "search_emails": "searching your emails",
    "read_email": "reading the email",
    "send_email": "sending the email",
    "list_labels": "retrieving your labels",
    "get_label_emails": "retrieving emails from the label",
}

MAX_DIGEST_MESSAGES = 5
TOKEN_FIELDS = ("access_token", "refresh_token", "expiry_date")

ProviderFactory = Callable[[str], MailProvider]
OAuthFactory = Callable[[str, str, Optional[str]], GoogleOAuth]


class MailAuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


def parse_intent(text: str) -> Dict[str, Any]:
    """
    Parse the classifier's JSON reply.

    Tolerates code fences and surrounding prose. Anything unparseable or
    naming an unknown intent becomes {"intent": "other"}.
    """
    cleaned = (text or "").strip()
    fence = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
    if fence:
        cleaned = fence.group(1).strip()
    if not cleaned.startswith("{"):
        start, end = cleaned.find("{"), cleaned.rfind("}")
        cleaned = cleaned[start:end + 1] if start != -1 and end > start else ""

    try:
        data = json.loads(cleaned)
    except ValueError:
        logger.warning(f"Unparseable intent response: {text!r}")
        return {"intent": "other"}

    if not isinstance(data, dict):
        return {"intent": "other"}

    intent = str(data.get("intent") or "other").strip().lower()
    data["intent"] = intent if intent in INTENTS else "other"
    return data


def _count(value: Any, default: int = 5) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        return default
    return count if count > 0 else default


def format_digest(title: str, emails: List[Dict[str, str]]) -> str:
    """Numbered, human-readable list of message summaries."""
    lines = [title, ""]
    for index, email in enumerate(emails, start=1):
        lines.append(f"{index}. From: {email['from']}")
        lines.append(f"   Subject: {email['subject']}")
        lines.append(f"   Date: {email['date']}")
        lines.append(f"   Preview: {email['snippet']}")
        lines.append(f"   ID: {email['id']}")
        lines.append("")
    return "\n".join(lines)


def _default_oauth_factory(client_id: str, client_secret: str, redirect_uri: Optional[str]) -> GoogleOAuth:
    return GoogleOAuth(client_id, client_secret, redirect_uri)


class MailAgent(BaseAgent):
    kind = AgentKind.GMAIL
    display_name = "Gmail Assistant"

    def __init__(
        self,
        agent_id: str,
        credentials: Optional[Dict[str, Any]] = None,
        credential_store: Optional[CredentialStore] = None,
        chat_model: Optional[ChatModel] = None,
        provider_factory: Optional[ProviderFactory] = None,
        oauth_factory: Optional[OAuthFactory] = None,
        email_from: str = "me",
        default_redirect_uri: Optional[str] = None,
        name: Optional[str] = None,
    ):
        super().__init__(agent_id, name)
        self.credentials: Dict[str, Any] = dict(credentials or {})
        self.credential_store = credential_store
        self.chat_model = chat_model
        self.provider_factory = provider_factory or (lambda token: GmailClient(token))
        self.oauth_factory = oauth_factory or _default_oauth_factory
        self.email_from = email_from
        self.default_redirect_uri = default_redirect_uri
        self.system_prompt = SYSTEM_PROMPT

        self.provider: Optional[MailProvider] = None
        self.oauth: Optional[GoogleOAuth] = None
        self.auth_state = MailAuthState.UNAUTHENTICATED
        self._restored_info: Optional[CredentialInfo] = None

        self._load_saved_credentials()

    @property
    def connected(self) -> bool:
        """True when a provider connection has been validated."""
        return self.provider is not None and self.auth_state == MailAuthState.AUTHENTICATED

    # =========================================================================
    # Credentials
    # =========================================================================

    def _load_saved_credentials(self):
        if self.credential_store is None:
            return
        saved = self.credential_store.load(self.id)
        if saved:
            self.credentials = {**self.credentials, **saved}
            self._restored_info = None
            logger.info(f"Loaded saved credentials for Gmail agent {self.id}")

    def _save_credentials(self):
        if self.credential_store is None:
            return
        try:
            self.credential_store.save(self.id, self.credentials)
        except OSError as e:
            logger.error(f"Failed to save credentials for {self.id}: {e}")

    def _apply_tokens(self, tokens: Dict[str, Any]):
        self.credentials["access_token"] = tokens["access_token"]
        if tokens.get("refresh_token"):
            self.credentials["refresh_token"] = tokens["refresh_token"]
        if tokens.get("expiry_date"):
            self.credentials["expiry_date"] = tokens["expiry_date"]

    def _clear_tokens(self):
        for key in TOKEN_FIELDS:
            self.credentials.pop(key, None)

    def _build_oauth(self) -> Optional[GoogleOAuth]:
        client_id = self.credentials.get("client_id")
        client_secret = self.credentials.get("client_secret")
        if not client_id or not client_secret:
            return None
        redirect_uri = self.credentials.get("redirect_uri") or self.default_redirect_uri
        return self.oauth_factory(client_id, client_secret, redirect_uri)

    def has_credentials(self) -> bool:
        return bool(self.credentials.get("client_id"))

    def _has_access_token(self) -> bool:
        if self.credentials.get("access_token"):
            return True
        return bool(self._restored_info and self._restored_info.has_access_token)

    # =========================================================================
    # Lifecycle / auth state machine
    # =========================================================================

    async def start(self) -> bool:
        await super().start()

        self._load_saved_credentials()
        self.provider = None
        self.auth_state = MailAuthState.UNAUTHENTICATED
        self.oauth = self._build_oauth()

        if self.oauth is None:
            logger.warning("Gmail API credentials not found or incomplete. Using limited functionality.")
            return True

        if not self.credentials.get("access_token"):
            logger.info(f"Gmail agent {self.id} has no access token. Authentication required.")
            return True

        try:
            await self._check_connection()
        except AuthRequiredError as e:
            logger.warning(f"Gmail token for {self.id} rejected: {e}")
            self.auth_state = MailAuthState.EXPIRED
            await self._refresh()
        except ProviderError as e:
            logger.error(f"Error connecting to Gmail API for {self.id}: {e}")

        return True

    async def _check_connection(self, access_token: Optional[str] = None) -> Dict[str, Any]:
        """Check connectivity with the given (or current) token."""
        provider = self.provider_factory(access_token or self.credentials["access_token"])
        profile = await provider.get_profile()
        self.provider = provider
        self.auth_state = MailAuthState.AUTHENTICATED
        logger.info(f"Connected to Gmail as {profile.get('emailAddress', 'unknown')}")
        return profile

    async def _refresh(self) -> bool:
        """expired -> authenticated, or clear tokens and fall back to unauthenticated."""
        try:
            tokens = await self.oauth.refresh(self.credentials.get("refresh_token"))
            await self._check_connection(tokens["access_token"])
        except ProviderError as e:
            logger.error(f"Error refreshing token for {self.id}: {e}")
            self.provider = None
            self.auth_state = MailAuthState.UNAUTHENTICATED
            self._clear_tokens()
            self._save_credentials()
            logger.info(f"Cleared invalid tokens for Gmail agent {self.id}")
            return False

        self._apply_tokens(tokens)
        self._save_credentials()
        logger.info(f"Refreshed tokens saved for Gmail agent {self.id}")
        return True

    def get_auth_url(self) -> str:
        if self.oauth is None:
            self.oauth = self._build_oauth()
        if self.oauth is None:
            raise AuthRequiredError("Auth client not initialized")
        return self.oauth.auth_url(state=self.id)

    async def handle_auth_code(self, code: str) -> Dict[str, Any]:
        """Exchange an OAuth code for tokens and connect."""
        if self.oauth is None:
            self.oauth = self._build_oauth()
        if self.oauth is None:
            raise AuthRequiredError("Auth client not initialized")

        tokens = await self.oauth.exchange_code(code)
        self._apply_tokens(tokens)
        self._save_credentials()
        logger.info(f"Saved new credentials for Gmail agent {self.id}")

        try:
            await self._check_connection()
        except ProviderError as e:
            # Fresh tokens; keep them and connect anyway
            logger.error(f"Error testing connection after getting tokens: {e}")
            self.provider = self.provider_factory(self.credentials["access_token"])
            self.auth_state = MailAuthState.AUTHENTICATED
        return tokens

    def _auth_instructions(self) -> str:
        try:
            url = self.get_auth_url()
        except AuthRequiredError:
            return (
                "I need access to your Gmail account to help with email tasks, but this agent "
                "has no OAuth client credentials. Please provide a client ID and client secret."
            )
        return (
            "I need access to your Gmail account to help with email tasks. "
            f"Please authenticate by visiting this URL: {url}"
        )

    # =========================================================================
    # Messages
    # =========================================================================

    async def classify_intent(self, message: str) -> Dict[str, Any]:
        text = await self.chat_model.complete(
            [
                {"role": "system", "content": INTENT_PROMPT},
                {"role": "user", "content": message},
            ],
            max_tokens=200,
            temperature=0.3,
            json_mode=True,
        )
        return parse_intent(text)

    async def _reply(self, message: str) -> str:
        if not self.connected:
            return self._auth_instructions()

        if self.chat_model is None:
            return "I can't interpret email requests right now because no language model is configured."

        intent: Dict[str, Any] = {"intent": "other"}
        try:
            intent = await self.classify_intent(message)
            return await self._run_intent(intent)
        except AuthRequiredError as e:
            logger.warning(f"Gmail agent {self.id} lost authorization: {e}")
            if not await self._recover_auth():
                return self._auth_instructions()
        except ProviderError as e:
            return self._apology(intent, e)

        # Token was refreshed; retry the same intent once
        try:
            return await self._run_intent(intent)
        except AuthRequiredError as e:
            logger.warning(f"Gmail agent {self.id} rejected after refresh: {e}")
            self.provider = None
            self.auth_state = MailAuthState.EXPIRED
            return self._auth_instructions()
        except ProviderError as e:
            return self._apology(intent, e)

    async def _run_intent(self, intent: Dict[str, Any]) -> str:
        handler = self._handlers().get(intent["intent"], self._handle_other)
        return await handler(intent)

    async def _recover_auth(self) -> bool:
        """authenticated -> expired, then try the refresh transition."""
        self.provider = None
        self.auth_state = MailAuthState.EXPIRED
        if self.oauth is None or not self.credentials.get("refresh_token"):
            return False
        return await self._refresh()

    def _apology(self, intent: Dict[str, Any], error: Exception) -> str:
        logger.error(f"Gmail agent {self.id} failed on {intent.get('intent')}: {error}")
        action = INTENT_ACTIONS.get(intent.get("intent"))
        if action:
            return f"I'm sorry, I encountered an error while {action}. Please try again later."
        return APOLOGY

    def _handlers(self) -> Dict[str, Callable[[Dict[str, Any]], Awaitable[str]]]:
        return {
            "get_latest_emails": self._handle_latest,
            "search_emails": self._handle_search,
            "read_email": self._handle_read,
            "send_email": self._handle_send,
            "list_labels": self._handle_list_labels,
            "get_label_emails": self._handle_label_emails,
            "other": self._handle_other,
        }

    async def _summaries(self, refs: List[Dict[str, Any]]) -> List[Dict[str, str]]:
        emails = []
        for ref in refs[:MAX_DIGEST_MESSAGES]:
            try:
                data = await self.provider.get_message(ref["id"], format="metadata")
            except AuthRequiredError:
                raise
            except ProviderError as e:
                logger.error(f"Error fetching email details for {ref.get('id')}: {e}")
                continue
            headers = extract_headers(data)
            emails.append({
                "id": ref["id"],
                "subject": headers.get("subject") or "(No subject)",
                "from": headers.get("from") or "(Unknown sender)",
                "date": headers.get("date") or "(Unknown date)",
                "snippet": data.get("snippet", ""),
            })
        return emails

    async def _handle_latest(self, intent: Dict[str, Any]) -> str:
        refs = await self.provider.list_messages(max_results=_count(intent.get("count")))
        if not refs:
            return "You don't have any emails in your inbox."
        emails = await self._summaries(refs)
        return format_digest(f"Here are your {len(emails)} most recent emails:", emails)

    async def _handle_search(self, intent: Dict[str, Any]) -> str:
        query = intent.get("query") or ""
        refs = await self.provider.list_messages(
            max_results=_count(intent.get("count")), query=query
        )
        if not refs:
            return f'No emails found matching "{query}".'
        emails = await self._summaries(refs)
        return format_digest(f'Here are {len(emails)} emails matching "{query}":', emails)

    async def _handle_read(self, intent: Dict[str, Any]) -> str:
        email_id = intent.get("id")
        if not email_id:
            return (
                "I need an email ID to read a specific email. "
                "You can find email IDs in the list of emails I provide."
            )
        data = await self.provider.get_message(str(email_id), format="full")
        if not data:
            return f"I couldn't find an email with ID {email_id}."

        headers = extract_headers(data)
        body = extract_text(data)
        return (
            f"From: {headers.get('from') or 'Unknown'}\n"
            f"To: {headers.get('to') or 'Unknown'}\n"
            f"Subject: {headers.get('subject') or '(No subject)'}\n"
            f"Date: {headers.get('date') or 'Unknown'}\n\n"
            f"{body or 'No content available'}"
        )

    async def _handle_send(self, intent: Dict[str, Any]) -> str:
        to, subject, body = intent.get("to"), intent.get("subject"), intent.get("body")
        if not to:
            return "I need a recipient email address to send an email."
        if not subject:
            return "Please provide a subject for the email."
        if not body:
            return "Please provide the content for the email."

        raw = build_raw_message(self.email_from, to, subject, body)
        await self.provider.send_message(raw)
        return f"Email sent successfully to {to}!"

    async def _handle_list_labels(self, intent: Dict[str, Any]) -> str:
        labels = await self.provider.list_labels()
        if not labels:
            return "You don't have any labels in your Gmail account."

        lines = ["Here are your Gmail labels/folders:", ""]
        for index, label in enumerate(labels, start=1):
            lines.append(f"{index}. {label.get('name')} ({label.get('type', 'user')})")
            if label.get("messagesTotal") is not None:
                lines.append(
                    f"   Messages: {label['messagesTotal']} ({label.get('messagesUnread') or 0} unread)"
                )
            lines.append(f"   ID: {label.get('id')}")
            lines.append("")
        return "\n".join(lines)

    async def _handle_label_emails(self, intent: Dict[str, Any]) -> str:
        wanted = intent.get("label")
        if not wanted:
            return "I need a label name or ID to get emails from a specific label."

        labels = await self.provider.list_labels()
        if not labels:
            return "You don't have any labels in your Gmail account."

        wanted = str(wanted)
        label = next(
            (l for l in labels if str(l.get("name", "")).lower() == wanted.lower() or l.get("id") == wanted),
            None,
        )
        if label is None:
            return f'I couldn\'t find a label named "{wanted}". Please check the label name and try again.'

        refs = await self.provider.list_messages(
            max_results=_count(intent.get("count")), label_ids=[label["id"]]
        )
        if not refs:
            return f'You don\'t have any emails in the "{label["name"]}" label.'
        emails = await self._summaries(refs)
        return format_digest(f'Here are {len(emails)} emails from the "{label["name"]}" label:', emails)

    async def _handle_other(self, intent: Dict[str, Any]) -> str:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(self.memory_as_messages(10))
        return await self.chat_model.complete(messages, max_tokens=500, temperature=0.7)

    # =========================================================================
    # Commands
    # =========================================================================

    async def _handle_command(self, cmd: AgentCommand) -> Optional[CommandResult]:
        if cmd.name == "get_auth_url":
            try:
                url = self.get_auth_url()
            except AuthRequiredError as e:
                return CommandResult(success=False, message=f"Error generating auth URL: {e}")
            return CommandResult(success=True, message="Authentication URL generated", data={"authUrl": url})

        if cmd.name == "save_credentials":
            if not self.credentials.get("client_id"):
                return CommandResult(success=False, message="No credentials to save")
            self._save_credentials()
            return CommandResult(
                success=True,
                message="Credentials saved successfully",
                data={"agentId": self.id, "hasAccessToken": bool(self.credentials.get("access_token"))},
            )

        if cmd.name == "set_manual_tokens":
            return self.set_manual_tokens()

        if cmd.name == "set_auth_code":
            code = cmd.payload.get("code")
            if not code:
                return CommandResult(
                    success=False,
                    message='Authorization code is required as {code: "your_code"}',
                )
            try:
                await self.handle_auth_code(str(code))
            except ProviderError as e:
                return CommandResult(success=False, message=f"Error setting auth code: {e}")
            return CommandResult(
                success=True,
                message="Authorization code accepted",
                data={"agentId": self.id, "hasAccessToken": True, "isConnected": self.connected},
            )

        if cmd.name == "set_tokens_json":
            tokens = cmd.payload.get("tokens")
            if not tokens:
                return CommandResult(
                    success=False,
                    message='Tokens JSON is required as {tokens: "your_tokens_json"}',
                )
            try:
                return await self.set_tokens_from_json(tokens)
            except (ProviderError, ValueError) as e:
                return CommandResult(success=False, message=f"Error setting tokens from JSON: {e}")

        return None

    def set_manual_tokens(self) -> CommandResult:
        """Install placeholder tokens, for testing the auth flow."""
        self._apply_tokens({
            "access_token": "ya29.test_access_token",
            "refresh_token": "1//test_refresh_token",
            "expiry_date": int(time.time() * 1000) + 3600000,
        })
        self._save_credentials()
        self.provider = self.provider_factory(self.credentials["access_token"])
        self.auth_state = MailAuthState.AUTHENTICATED
        return CommandResult(
            success=True,
            message="Manual tokens set successfully",
            data={"agentId": self.id, "hasAccessToken": True},
        )

    async def set_tokens_from_json(self, tokens: Any) -> CommandResult:
        if isinstance(tokens, str):
            tokens = json.loads(tokens)
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise ValueError("Access token is required")

        self._apply_tokens({
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "expiry_date": tokens.get("expiry_date") or int(time.time() * 1000) + 3600000,
        })
        self._save_credentials()
        if self.oauth is None:
            self.oauth = self._build_oauth()

        try:
            profile = await self._check_connection()
        except ProviderError as e:
            self.provider = None
            self.auth_state = MailAuthState.UNAUTHENTICATED
            raise ProviderError("Invalid tokens: Could not connect to Gmail API") from e

        return CommandResult(
            success=True,
            message="Tokens set successfully",
            data={"agentId": self.id, "email": profile.get("emailAddress"), "hasAccessToken": True},
        )

    def status(self) -> Dict[str, Any]:
        data = super().status()
        data.update({
            "hasAccessToken": self._has_access_token(),
            "isConnected": self.connected,
            "authState": self.auth_state.value,
        })
        return data

    # =========================================================================
    # Persistence
    # =========================================================================

    def get_state(self) -> AgentState:
        state = super().get_state()
        if self.credentials or self._restored_info:
            state.credential_info = CredentialInfo(
                has_credentials=self.has_credentials(),
                has_access_token=self._has_access_token(),
                client_id=self.credentials.get("client_id"),
                redirect_uri=self.credentials.get("redirect_uri"),
            )
        return state

    def load_state(self, state: AgentState):
        super().load_state(state)
        info = state.credential_info
        if info is not None:
            seeded = {"client_id": info.client_id, "redirect_uri": info.redirect_uri}
            self.credentials = {
                **{k: v for k, v in seeded.items() if v},
                **{k: v for k, v in self.credentials.items() if k not in seeded},
            }
            self._restored_info = info
