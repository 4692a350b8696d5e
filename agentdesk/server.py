"""
agentdesk Server

FastAPI application: HTTP routes, a WebSocket chat channel, and the
registry lifecycle (restore on startup, stop and flush on shutdown).
"""

import json
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .agents import AgentRegistry, AgentStateStore
from .agents.models import AgentCommand
from .agents.routes import create_agent_router, create_gmail_router, new_agent_id
from .agents.models import resolve_kind
from .config import AppConfig, config_from_env, load_config
from .credentials import create_credential_store
from .errors import AgentDeskError
from .llm import OpenAIChatClient
from .mail import GmailClient, GoogleOAuth

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("agentdesk")


def build_registry(config: AppConfig) -> AgentRegistry:
    """Wire stores, the chat model and mail services into a registry."""
    storage = AgentStateStore(config.storage.agents_dir)
    credential_store = create_credential_store(
        backend=config.credentials.backend,
        directory=config.storage.credentials_dir,
    )

    chat_model = None
    if config.llm.api_key:
        chat_model = OpenAIChatClient(
            api_key=config.llm.api_key,
            base_url=config.llm.base_url,
            model=config.llm.model,
            timeout=config.llm.timeout,
        )
    else:
        logger.warning("No LLM API key configured; routing and chat fall back to defaults")

    gmail = config.gmail
    mail_options = {
        "provider_factory": lambda token: GmailClient(token, timeout=gmail.timeout),
        "oauth_factory": lambda cid, secret, uri: GoogleOAuth(cid, secret, uri, timeout=gmail.timeout),
        "email_from": gmail.email_from,
        "default_redirect_uri": gmail.redirect_uri,
    }

    return AgentRegistry(
        storage=storage,
        credential_store=credential_store,
        chat_model=chat_model,
        mail_options=mail_options,
    )


def create_app(config: AppConfig = None, registry: Optional[AgentRegistry] = None) -> FastAPI:
    """Create FastAPI application."""

    config = config_from_env(config)
    if registry is None:
        registry = build_registry(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("agentdesk starting...")
        await registry.restore_all()

        yield

        logger.info("agentdesk shutting down...")
        await registry.shutdown_all()

    app = FastAPI(
        title="agentdesk",
        description="Chat backend routing messages to pluggable agents",
        version=__version__,
        lifespan=lifespan,
    )

    # Store components in app state
    app.state.registry = registry
    app.state.config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_agent_router(registry))
    app.include_router(create_gmail_router(registry))

    @app.get("/api/health")
    async def health():
        """Health check."""
        return {
            "status": "ok",
            "version": __version__,
            "agents": len(registry),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # -------------------------------------------------------------------------
    # Realtime channel
    # -------------------------------------------------------------------------

    async def emit(ws: WebSocket, event: str, data: Any):
        await ws.send_json({"event": event, "data": data})

    async def emit_agents(ws: WebSocket):
        await emit(ws, "activeAgents", [a.model_dump(mode="json") for a in registry.list_active()])

    async def on_message(ws: WebSocket, data: Dict[str, Any]):
        text = data.get("message")
        if not text:
            await emit(ws, "error", {"message": "Message is required"})
            return
        if data.get("agentId"):
            agent_id = data["agentId"]
            response = await registry.dispatch_message(agent_id, text)
        else:
            routed = await registry.process_with_routing(text)
            agent_id, response = routed.agent_id, routed.response
        await emit(ws, "message", {
            "agentId": agent_id,
            "message": response,
            "sender": "agent",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def on_upload_credentials(ws: WebSocket, data: Dict[str, Any]):
        kind = resolve_kind(data.get("type"))
        agent_id = new_agent_id(kind)
        credentials = data.get("credentials") or {}
        await registry.create(kind, agent_id, {"credentials": credentials})
        if registry.credential_store is not None and credentials:
            registry.credential_store.save(agent_id, credentials)
        await emit_agents(ws)
        await emit(ws, "message", {
            "agentId": agent_id,
            "message": f"{kind.value} agent created. You can now interact with it.",
            "sender": "system",
        })

    async def on_agent_command(ws: WebSocket, data: Dict[str, Any]):
        agent_id = data.get("agentId")
        command = AgentCommand.parse(data.get("command") or "")
        result = await registry.dispatch_command(agent_id, command)
        await emit(ws, "commandResult", {"agentId": agent_id, "result": result.to_dict()})

    handlers = {
        "message": on_message,
        "uploadCredentials": on_upload_credentials,
        "agentCommand": on_agent_command,
    }

    @app.websocket("/ws")
    async def websocket_channel(ws: WebSocket):
        await ws.accept()
        logger.info("Client connected")
        await emit(ws, "availableAgents", registry.available_types())
        await emit_agents(ws)

        try:
            while True:
                try:
                    frame = json.loads(await ws.receive_text())
                except ValueError:
                    await emit(ws, "error", {"message": "Frames must be JSON objects"})
                    continue
                event = frame.get("event") if isinstance(frame, dict) else None
                handler = handlers.get(event)
                if handler is None:
                    await emit(ws, "error", {"message": f"Unknown event: {event}"})
                    continue
                try:
                    await handler(ws, frame.get("data") or {})
                except (AgentDeskError, TypeError, ValueError) as e:
                    logger.error(f"Error handling {event}: {e}")
                    await emit(ws, "error", {"message": str(e)})
        except WebSocketDisconnect:
            logger.info("Client disconnected")

    return app


# =============================================================================
# Main
# =============================================================================

def main(config_path: str = None):
    """Run the agentdesk server."""
    import uvicorn

    config = load_config(config_path) if config_path else AppConfig()
    config = config_from_env(config)
    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
