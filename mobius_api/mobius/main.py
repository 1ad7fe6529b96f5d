from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from .access import AccessManager, CapabilityStore, PathPicker
from .commands import CommandRegistry, load_commands
from .config import Settings, settings
from .errors import ProviderChainExhausted, ServiceUnavailableError, WebSearchError
from .focus import FocusWorkflow
from .handlers import CommandHandlers
from .intent import ActionType, IntentResolver, ResolvedAction
from .logging_utils import log_execution, setup_orchestrator_logger
from .models import AssistantReply, AssistantRequest, ImagePart, ResolveRequest, SelectRequest
from .providers import ProviderChain, build_chain
from .routing import SERVICE_LABELS, parse_ask
from .security import require_api_key
from .services import DriveListing, ServiceRegistry
from .session import SessionContext, SessionStore
from .vault import VaultDocumentStore
from .websearch import WEBSEARCH, TavilySearch, augment, build_web_search

VERSION = "0.1.0"

app = FastAPI(title="Mobius Assistant API", version=VERSION)

origins = (
    [o.strip() for o in settings.cors_origins.split(",")]
    if getattr(settings, "cors_origins", None)
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins if origins != ["*"] else ["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class MobiusOrchestrator:
    """Resolves an utterance and carries out the resulting action.

    One resolved action per request:
    - command: dispatched through the registry (``ask:`` is handed to the AI path)
    - local: answered from the caller's context blob
    - service: summarized by the matching domain service
    - ai: sent down the provider chain, starting at the session's provider
      (``ask: websearch`` first folds web search results into the question)
    """

    registry: CommandRegistry
    resolver: IntentResolver
    chain: ProviderChain
    services: ServiceRegistry
    sessions: SessionStore
    web_search: Optional[TavilySearch] = None
    history_limit: int = 10
    logger: logging.Logger = field(default_factory=lambda: setup_orchestrator_logger("orchestrator"))

    def resolve(self, text: str, context: str = "") -> ResolvedAction:
        return self.resolver.resolve(text, context)

    def run(self, request: AssistantRequest) -> AssistantReply:
        session = self.sessions.get(request.session_id, request.user_id)
        start_time = time.time()
        action = ResolvedAction.ai()
        with session.lock:
            try:
                action = self.resolve(request.text, request.context)
                reply = self._execute(session, action, request)
            except Exception as e:
                self.logger.exception("Unhandled error for session %s", session.session_id[:16])
                reply = AssistantReply(
                    action="error",
                    success=False,
                    reply="❌ Something went wrong while handling that request.",
                )
                duration_ms = (time.time() - start_time) * 1000
                log_execution(self.logger, session.session_id, request.text, action.type.value,
                              False, duration_ms, keyword=action.keyword, error=str(e))
                reply.session_id = session.session_id
                reply.duration_ms = duration_ms
                return reply

        duration_ms = (time.time() - start_time) * 1000
        log_execution(self.logger, session.session_id, request.text, reply.action,
                      reply.success, duration_ms, keyword=reply.keyword,
                      provider=reply.provider, reply=reply.reply)
        reply.session_id = session.session_id
        reply.duration_ms = duration_ms
        return reply

    def select(self, request: SelectRequest) -> AssistantReply:
        """Finish a multiple-match ``focus:`` search with the user's pick."""
        session = self.sessions.find(request.session_id)
        if session is None:
            return AssistantReply(action="command", keyword="focus", success=False,
                                  reply="❌ Unknown session.", session_id=request.session_id)
        with session.lock:
            result = session.focus.select(request.candidate_id)
        return AssistantReply(action="command", keyword="focus", success=result.success,
                              reply=result.message, session_id=session.session_id)

    def _execute(self, session: SessionContext, action: ResolvedAction,
                 request: AssistantRequest) -> AssistantReply:
        if action.type == ActionType.COMMAND:
            result = self.registry.dispatch(session, action.keyword, action.args)
            if result.handled:
                return AssistantReply(
                    action="command",
                    keyword=action.keyword,
                    success=result.success,
                    reply=result.reply,
                    candidates=result.candidates,
                    container_id=result.container_id,
                )
            # "ask:" and any other AI-deferred keyword
            provider, question = parse_ask(action.args, self.chain.names + [WEBSEARCH])
            if provider == WEBSEARCH:
                if not question:
                    return AssistantReply(action="ai", success=False, reply="Usage: Ask: websearch your question")
                return self._ask(session, question, request.context, None, request.images, web=True)
            return self._ask(session, question or action.args, request.context, provider, request.images)

        if action.type == ActionType.LOCAL:
            return AssistantReply(action="local", success=True, reply=action.answer)

        if action.type == ActionType.SERVICE:
            return self._service(session, action.service_id, request.text)

        return self._ask(session, request.text, request.context, None, request.images)

    def _service(self, session: SessionContext, service_id: str, text: str) -> AssistantReply:
        try:
            summary = self.services.summarize(service_id, session.user_id)
        except ServiceUnavailableError as e:
            return AssistantReply(action="service", success=False, provider=service_id,
                                  reply=f"❌ {e.message}")
        session.record(text, summary, SERVICE_LABELS.get(service_id, service_id))
        return AssistantReply(action="service", success=True, provider=service_id, reply=summary)

    def _start_provider(self, session: SessionContext, explicit: Optional[str],
                        images: List[ImagePart]) -> Optional[str]:
        if explicit:
            session.last_provider = explicit
        start = explicit or session.last_provider or self.chain.default
        if images and not self.chain.is_vision(start):
            start = self.chain.first_vision() or start
        return start

    def _ask(self, session: SessionContext, question: str, context: str,
             explicit: Optional[str], images: List[ImagePart], web: bool = False) -> AssistantReply:
        start = self._start_provider(session, explicit, images)

        content = question
        attachment = session.focus.attachment()
        if attachment:
            content = f"{question}\n\n{attachment}"
        messages = session.messages(self.history_limit) + [{"role": "user", "content": content}]
        if context:
            messages.insert(0, {"role": "system", "content": context})

        if web:
            if self.web_search is None:
                return AssistantReply(action="ai", success=False, reply="❌ Web search is not configured.")
            try:
                messages = augment(messages, self.web_search.search(question))
            except WebSearchError as e:
                return AssistantReply(action="ai", success=False, reply=f"❌ Web search failed: {e.message}")

        try:
            outcome = self.chain.complete(messages, start=start, image_parts=images or None)
        except ProviderChainExhausted as e:
            return AssistantReply(action="ai", success=False, reply=f"❌ {e.message}")

        session.record(question, outcome.text, outcome.provider_label)
        return AssistantReply(action="ai", success=True, reply=outcome.text,
                              provider=outcome.provider_label)


def build_orchestrator(cfg: Settings) -> MobiusOrchestrator:
    store = VaultDocumentStore(cfg.vault_root, cfg.workspace_folder)
    access = AccessManager(CapabilityStore(cfg.capability_store), PathPicker(cfg.access_root))
    handlers = CommandHandlers(cfg, access, store)
    registry = CommandRegistry.from_specs(load_commands(Path(cfg.commands_file)), handlers.table(), access)
    return MobiusOrchestrator(
        registry=registry,
        resolver=IntentResolver(detect_command=registry.detect),
        chain=build_chain(cfg),
        services=ServiceRegistry({"google_drive": DriveListing(store)}),
        sessions=SessionStore(lambda: FocusWorkflow(store)),
        web_search=build_web_search(cfg),
        logger=setup_orchestrator_logger("orchestrator", cfg.log_level),
    )


ASSISTANT = build_orchestrator(settings)


@app.get("/health")
def health(response: Response):
    response.headers["Cache-Control"] = "no-store"
    return {
        "status": "ok",
        "service": "mobius-api",
        "version": VERSION,
        "time": datetime.now().astimezone().isoformat()
    }


@app.get("/commands", dependencies=[Depends(require_api_key)])
def commands():
    return {
        "commands": [
            {
                "keyword": kw,
                "bare": d.bare,
                "requires_access": d.requires_access,
                "is_ai": d.is_ai,
                "usage": d.usage,
            }
            for kw in ASSISTANT.registry.keywords
            for d in [ASSISTANT.registry.get(kw)]
        ],
        "providers": ASSISTANT.chain.names,
    }


@app.post("/resolve", dependencies=[Depends(require_api_key)])
def resolve(body: ResolveRequest):
    action = ASSISTANT.resolve(body.text, body.context)
    out = asdict(action)
    out["type"] = action.type.value
    return out


@app.post("/assistant", dependencies=[Depends(require_api_key)], response_model=AssistantReply)
def assistant(body: AssistantRequest):
    return ASSISTANT.run(body)


@app.post("/focus/select", dependencies=[Depends(require_api_key)], response_model=AssistantReply)
def focus_select(body: SelectRequest):
    if ASSISTANT.sessions.find(body.session_id) is None:
        raise HTTPException(404, detail="Session not found")
    return ASSISTANT.select(body)
