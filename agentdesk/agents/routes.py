"""
Agent API Routes

FastAPI routers for agent listing, creation, messages and commands,
plus the Gmail creation and OAuth callback endpoints.
"""

import time
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from ..errors import (
    AgentDeskError, DuplicateIdError, InvalidIdError, NotFoundError, UnknownTypeError,
)
from .mail import MailAgent
from .models import (
    AgentCommand, AgentCreateRequest, AgentKind, CommandRequest,
    GmailCreateRequest, MessageRequest, resolve_kind,
)
from .registry import AgentRegistry

logger = logging.getLogger("agentdesk.agents.routes")


def new_agent_id(kind: AgentKind) -> str:
    """Ids encode creation time, e.g. gmail-1700000000000."""
    return f"{kind.value}-{int(time.time() * 1000)}"


def create_agent_router(registry: AgentRegistry) -> APIRouter:
    """Create FastAPI router for agent operations."""

    router = APIRouter(prefix="/api/agents", tags=["agents"])

    @router.get("")
    async def list_agents():
        """List all registered agents."""
        return {"success": True, "agents": [a.model_dump(mode="json") for a in registry.list_active()]}

    @router.get("/types")
    async def list_types():
        """Agent types that can be created."""
        return {"success": True, "types": registry.available_types()}

    @router.post("", status_code=201)
    async def create_agent(request: AgentCreateRequest):
        """Create and start a new agent."""
        try:
            kind = resolve_kind(request.type)
            agent_id = request.id or new_agent_id(kind)
            agent = await registry.create(kind, agent_id, {"credentials": request.credentials})
        except DuplicateIdError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except (UnknownTypeError, InvalidIdError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Failed to create agent: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "success": True,
            "agent": {"id": agent.id, "type": agent.type.value, "name": agent.name, "active": agent.active},
        }

    @router.post("/message")
    async def message_with_routing(request: MessageRequest):
        """Send a message and let the router pick the agent."""
        if not request.message:
            raise HTTPException(status_code=400, detail="Message is required")
        try:
            result = await registry.process_with_routing(request.message)
        except AgentDeskError as e:
            logger.error(f"Error processing message with routing: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"success": True, "agentId": result.agent_id, "response": result.response}

    @router.get("/{agent_id}")
    async def get_agent(agent_id: str):
        """Current state snapshot of an agent."""
        agent = registry.get(agent_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found")
        return agent.get_state().model_dump(mode="json", by_alias=True, exclude_none=True)

    @router.delete("/{agent_id}")
    async def delete_agent(agent_id: str):
        """Stop an agent and delete its stored state and credentials."""
        if not await registry.remove(agent_id):
            raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found")
        return {"success": True, "agentId": agent_id}

    @router.post("/{agent_id}/message")
    async def send_message(agent_id: str, request: MessageRequest):
        """Send a message to a specific agent."""
        if not request.message:
            raise HTTPException(status_code=400, detail="Message is required")
        try:
            response = await registry.dispatch_message(agent_id, request.message)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "response": response}

    @router.post("/{agent_id}/command")
    async def execute_command(agent_id: str, request: CommandRequest):
        """Execute a command on a specific agent."""
        if not request.command:
            raise HTTPException(status_code=400, detail="Command is required")
        try:
            command = AgentCommand.parse(request.command)
            result = await registry.dispatch_command(agent_id, command)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "result": result.to_dict()}

    return router


AUTH_PAGE = """<html>
  <head>
    <title>{title}</title>
    <style>
      body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; text-align: center; }}
      .{css} {{ color: {color}; font-size: 24px; margin-bottom: 20px; }}
      .button {{ display: inline-block; padding: 10px 20px; background-color: #2196f3; color: white; text-decoration: none; border-radius: 5px; }}
    </style>
  </head>
  <body>
    <h1>{title}</h1>
    <p class="{css}">{headline}</p>
    <p>{info}</p>
    <a class="button" href="/">Return to Chat</a>
  </body>
</html>"""


def create_gmail_router(registry: AgentRegistry) -> APIRouter:
    """Gmail agent creation and OAuth redirect handling."""

    router = APIRouter(prefix="/api/gmail", tags=["gmail"])

    @router.post("", status_code=201)
    async def create_gmail_agent(request: GmailCreateRequest):
        """Create a Gmail agent from OAuth client credentials."""
        creds = request.credentials
        if not creds.get("client_id") or not creds.get("client_secret"):
            raise HTTPException(status_code=400, detail="Missing required Gmail credentials")

        agent_id = new_agent_id(AgentKind.GMAIL)
        try:
            agent = await registry.create(AgentKind.GMAIL, agent_id, {"credentials": creds})
        except AgentDeskError as e:
            logger.error(f"Error creating Gmail agent: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        # Client secrets must survive restarts; tokens follow after OAuth
        if registry.credential_store is not None:
            registry.credential_store.save(agent_id, agent.credentials)

        return {
            "success": True,
            "message": "Gmail agent created successfully",
            "agent": {"id": agent_id, "type": "gmail", "name": agent.name, "active": agent.active},
        }

    @router.get("/auth/callback", response_class=HTMLResponse)
    async def auth_callback(code: str = None, state: str = None):
        """OAuth redirect target; state carries the agent id."""
        if not code:
            raise HTTPException(status_code=400, detail="Authorization code is required")
        if not state:
            raise HTTPException(status_code=400, detail="Agent ID is required")

        agent = registry.get(state)
        if agent is None:
            raise HTTPException(status_code=404, detail="Agent not found")
        if not isinstance(agent, MailAgent):
            raise HTTPException(status_code=400, detail="Agent is not a Gmail agent")

        logger.info(f"Processing OAuth code for agent {state}")
        try:
            await agent.handle_auth_code(code)
        except AgentDeskError as e:
            logger.error(f"Error handling authorization code for agent {state}: {e}")
            return HTMLResponse(
                AUTH_PAGE.format(
                    title="Gmail Authentication Error",
                    css="error",
                    color="red",
                    headline="&#10007; We couldn't connect your Gmail account.",
                    info="Please return to the chat and request a new authentication link.",
                ),
                status_code=500,
            )

        registry.persist(state)
        return HTMLResponse(
            AUTH_PAGE.format(
                title="Gmail Authentication Successful",
                css="success",
                color="green",
                headline="&#10003; Your Gmail account has been successfully connected!",
                info="You can now close this window and return to the chat to interact with your Gmail agent.",
            )
        )

    return router
