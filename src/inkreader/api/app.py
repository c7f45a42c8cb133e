"""FastAPI application exposing story analysis and reading sessions."""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from concurrent.futures import Executor
from typing import Any, Dict, List, Mapping

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..mapping_validation import generate_node_mappings
from ..navigation import NavigationOutcome, NavigationState, ReplayPolicy
from ..node_extraction import extract_story
from ..script_export import export_ink_script
from ..session import CommentCounter, MappingRefresher, NavigatorBackend, ReadingSession
from ..settings import ReaderSettings
from ..story_model import CustomStory

logger = logging.getLogger(__name__)


class StoryDocumentRequest(BaseModel):
    """Raw story JSON submitted for analysis or export."""

    document: Dict[str, Any]


class ChoiceResource(BaseModel):
    """Choice offered on the current page."""

    text: str
    next_node: str


class StoryNodeResource(BaseModel):
    """Normalised node as returned by the analysis endpoint."""

    id: str
    page: int
    text: str
    choices: List[ChoiceResource]
    is_ending: bool
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StoryAnalysisResponse(BaseModel):
    """Structure of a story: nodes, pages and graph findings."""

    format: str
    start_node: str | None
    total_pages: int
    used_fallback: bool
    node_to_page: Dict[str, int]
    page_to_node: Dict[int, str]
    nodes: List[StoryNodeResource]
    orphans: List[str]
    dead_ends: List[str]


class StoryExportResponse(BaseModel):
    """Ink source generated from a story document."""

    script: str


class SessionCreateRequest(BaseModel):
    """Payload used to open a reading session."""

    story_id: str = Field(..., min_length=1)
    document: Dict[str, Any]
    backend: NavigatorBackend | None = None


class ChooseRequest(BaseModel):
    """Selects the choice at ``index`` on the current page."""

    index: int


class PageRequest(BaseModel):
    """Requests a jump to ``page``."""

    page: int


class NavigationStateResource(BaseModel):
    """Serializable view of the navigation state."""

    node: str | None
    page: int
    total_pages: int
    text: str
    choices: List[ChoiceResource]
    can_continue: bool
    can_go_back: bool


class SessionResponse(BaseModel):
    """Current state of a reading session."""

    session_id: str
    story_id: str
    backend: NavigatorBackend
    state: NavigationStateResource
    comment_count: int | None = None


class SessionManager:
    """Keeps a bounded set of reading sessions, evicting the oldest first."""

    def __init__(
        self,
        *,
        max_sessions: int = 256,
        replay_policy: ReplayPolicy = ReplayPolicy.FIRST_CHOICE,
        edit_debounce_seconds: float = 0.5,
        comment_counter: CommentCounter | None = None,
        executor: Executor | None = None,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be greater than zero")
        self.max_sessions = max_sessions
        self.replay_policy = replay_policy
        self.edit_debounce_seconds = edit_debounce_seconds
        self._comment_counter = comment_counter
        self._executor = executor
        self._sessions: "OrderedDict[str, ReadingSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def create_session(
        self,
        story_id: str,
        document: Mapping[str, Any],
        *,
        backend: NavigatorBackend | None = None,
    ) -> tuple[str, ReadingSession]:
        """Open a session on ``document`` and return its identifier."""

        session = ReadingSession.from_document(
            story_id,
            document,
            backend=backend,
            replay_policy=self.replay_policy,
            comment_counter=self._comment_counter,
            executor=self._executor,
            refresher=MappingRefresher(debounce_seconds=self.edit_debounce_seconds),
        )
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted reading session %s", evicted)
        return session_id, session

    def get_session(self, session_id: str) -> ReadingSession:
        return self._sessions[session_id]

    def delete_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise KeyError(session_id)


def _build_choice_resources(state: NavigationState[Any]) -> List[ChoiceResource]:
    return [
        ChoiceResource(text=choice.text, next_node=choice.next_node) for choice in state.choices
    ]


def _build_state_resource(state: NavigationState[Any]) -> NavigationStateResource:
    return NavigationStateResource(
        node=state.node,
        page=state.page,
        total_pages=state.total_pages,
        text=state.text,
        choices=_build_choice_resources(state),
        can_continue=state.can_continue,
        can_go_back=state.can_go_back,
    )


def _build_session_response(session_id: str, session: ReadingSession) -> SessionResponse:
    return SessionResponse(
        session_id=session_id,
        story_id=session.story_id,
        backend=session.backend,
        state=_build_state_resource(session.state),
        comment_count=session.comment_count,
    )


def _extract(document: Mapping[str, Any]) -> CustomStory:
    try:
        return extract_story(document)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(
    settings: ReaderSettings | None = None,
    *,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing story analysis and reading sessions."""

    resolved_settings = settings or ReaderSettings.from_env()
    sessions = session_manager or SessionManager(
        max_sessions=resolved_settings.max_sessions,
        replay_policy=resolved_settings.replay_policy,
        edit_debounce_seconds=resolved_settings.edit_debounce_seconds,
    )

    tags_metadata = [
        {
            "name": "Stories",
            "description": (
                "Normalise story documents, inspect their page mapping and "
                "export them as Ink source."
            ),
        },
        {
            "name": "Sessions",
            "description": (
                "Open reading sessions and move through a story with continue, "
                "choose, back, restart and page jumps."
            ),
        },
    ]

    app = FastAPI(
        title="Ink Reader API",
        version="0.1.0",
        description=(
            "HTTP API that ingests Ink-style story documents, maps their nodes "
            "to reader-facing pages and drives reading sessions."
        ),
        openapi_tags=tags_metadata,
    )

    def _lookup(session_id: str) -> ReadingSession:
        try:
            return sessions.get_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Reading session not found.") from exc

    def _respond(session_id: str, outcome: NavigationOutcome) -> SessionResponse:
        if not outcome.succeeded:
            raise HTTPException(status_code=409, detail=outcome.reason)
        return _build_session_response(session_id, _lookup(session_id))

    @app.get("/api/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post(
        "/api/stories/analyze",
        response_model=StoryAnalysisResponse,
        tags=["Stories"],
    )
    def analyze_story(payload: StoryDocumentRequest) -> StoryAnalysisResponse:
        story = _extract(payload.document)
        result = generate_node_mappings(story)
        mappings = result.mappings
        nodes = [
            StoryNodeResource(
                id=node_id,
                page=mappings.node_to_page[node_id],
                text=story[node_id].text,
                choices=[
                    ChoiceResource(text=choice.text, next_node=choice.next_node)
                    for choice in story[node_id].choices
                ],
                is_ending=story[node_id].is_ending,
                metadata=dict(story[node_id].metadata),
            )
            for node_id in mappings.sequence()
        ]
        return StoryAnalysisResponse(
            format=story.story_format.value,
            start_node=result.start_node,
            total_pages=result.total_pages,
            used_fallback=result.used_fallback,
            node_to_page=dict(mappings.node_to_page),
            page_to_node=dict(mappings.page_to_node),
            nodes=nodes,
            orphans=list(result.structure.orphans),
            dead_ends=list(result.structure.dead_ends),
        )

    @app.post(
        "/api/stories/export",
        response_model=StoryExportResponse,
        tags=["Stories"],
    )
    def export_story(payload: StoryDocumentRequest) -> StoryExportResponse:
        story = _extract(payload.document)
        return StoryExportResponse(script=export_ink_script(story))

    @app.post(
        "/api/sessions",
        response_model=SessionResponse,
        status_code=201,
        tags=["Sessions"],
    )
    def create_session(payload: SessionCreateRequest) -> SessionResponse:
        try:
            session_id, session = sessions.create_session(
                payload.story_id, payload.document, backend=payload.backend
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _build_session_response(session_id, session)

    @app.get(
        "/api/sessions/{session_id}",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def get_session(session_id: str) -> SessionResponse:
        return _build_session_response(session_id, _lookup(session_id))

    @app.post(
        "/api/sessions/{session_id}/continue",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def continue_session(session_id: str) -> SessionResponse:
        return _respond(session_id, _lookup(session_id).continue_story())

    @app.post(
        "/api/sessions/{session_id}/choose",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def choose(session_id: str, payload: ChooseRequest) -> SessionResponse:
        return _respond(session_id, _lookup(session_id).choose(payload.index))

    @app.post(
        "/api/sessions/{session_id}/back",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def back(session_id: str) -> SessionResponse:
        return _respond(session_id, _lookup(session_id).back())

    @app.post(
        "/api/sessions/{session_id}/restart",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def restart(session_id: str) -> SessionResponse:
        return _respond(session_id, _lookup(session_id).restart())

    @app.post(
        "/api/sessions/{session_id}/page",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    def jump_to_page(session_id: str, payload: PageRequest) -> SessionResponse:
        return _respond(session_id, _lookup(session_id).jump_to_page(payload.page))

    @app.delete(
        "/api/sessions/{session_id}",
        status_code=204,
        tags=["Sessions"],
    )
    def delete_session(session_id: str) -> None:
        try:
            sessions.delete_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Reading session not found.") from exc

    return app


__all__ = [
    "SessionManager",
    "create_app",
]
