"""Reading sessions: one story, its mapping and a navigator, plus side effects.

Navigation itself is synchronous. The only asynchronous work is the comment
count refresh submitted to an executor after each successful transition;
its result is written whenever it arrives, so a late answer for an earlier
page can overwrite a newer one. Edits are debounced through
:class:`MappingRefresher` so rapid successive changes only trigger one
regeneration of the mapping.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from .graph_navigation import GraphNavigator
from .mapping_validation import MappingResult, generate_node_mappings
from .navigation import NavigationOutcome, NavigationState, ReplayPolicy, StoryNavigator
from .node_extraction import extract_story
from .runtime_navigation import RuntimeNavigator
from .script_runtime import CompiledStoryRuntime
from .story_model import CustomStory, StoryFormat

logger = logging.getLogger(__name__)

CommentCounter = Callable[[str, int], int]
Clock = Callable[[], float]


class NavigatorBackend(str, Enum):
    """Available navigation strategies."""

    GRAPH = "graph"
    RUNTIME = "runtime"


def default_backend(story: CustomStory) -> NavigatorBackend:
    """Compiled scripts run through the runtime; named graphs are walked directly."""

    if story.story_format is StoryFormat.COMPILED_SCRIPT:
        return NavigatorBackend.RUNTIME
    return NavigatorBackend.GRAPH


def create_navigator(
    story: CustomStory,
    mapping: MappingResult,
    *,
    backend: NavigatorBackend | None = None,
    replay_policy: ReplayPolicy = ReplayPolicy.FIRST_CHOICE,
) -> StoryNavigator[Any]:
    """Build the navigator for ``backend`` (or the story's natural backend)."""

    resolved = backend or default_backend(story)
    if resolved is NavigatorBackend.RUNTIME:
        runtime = CompiledStoryRuntime(story, start_node=mapping.start_node)
        return RuntimeNavigator(
            story, mapping.mappings, runtime=runtime, replay_policy=replay_policy
        )
    return GraphNavigator(story, mapping.mappings, start_node=mapping.start_node)


@dataclass(frozen=True)
class RefreshResult:
    """Regenerated story data tagged with the edit generation it belongs to."""

    generation: int
    story: CustomStory
    mapping: MappingResult


class MappingRefresher:
    """Debounce story edits so only the latest one is remapped.

    ``submit`` records an edit and supersedes any edit still waiting.
    ``poll`` performs the regeneration once no newer edit has arrived for
    ``debounce_seconds``. The clock is injectable so callers (and tests) can
    drive time explicitly.
    """

    def __init__(self, *, debounce_seconds: float = 0.5, clock: Clock = time.monotonic) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds cannot be negative")
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._generation = 0
        self._pending: tuple[int, Mapping[str, Any]] | None = None
        self._due_at = 0.0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def submit(self, document: Mapping[str, Any]) -> int:
        """Queue ``document`` for remapping and return its generation number."""

        if not isinstance(document, Mapping):
            raise ValueError("Story documents must contain an object at the top level.")
        self._generation += 1
        if self._pending is not None:
            logger.debug(
                "Edit generation %d supersedes generation %d",
                self._generation,
                self._pending[0],
            )
        self._pending = (self._generation, document)
        self._due_at = self._clock() + self.debounce_seconds
        return self._generation

    def poll(self) -> RefreshResult | None:
        """Regenerate the pending edit if its quiet period has elapsed."""

        if self._pending is None or self._clock() < self._due_at:
            return None
        return self.flush()

    def flush(self) -> RefreshResult | None:
        """Regenerate the pending edit immediately."""

        if self._pending is None:
            return None
        generation, document = self._pending
        self._pending = None
        story = extract_story(document)
        mapping = generate_node_mappings(story)
        logger.debug("Regenerated mapping for edit generation %d", generation)
        return RefreshResult(generation=generation, story=story, mapping=mapping)


class ReadingSession:
    """Owns the story, its mapping and the active navigator for one reader."""

    def __init__(
        self,
        story_id: str,
        story: CustomStory,
        *,
        backend: NavigatorBackend | None = None,
        replay_policy: ReplayPolicy = ReplayPolicy.FIRST_CHOICE,
        comment_counter: CommentCounter | None = None,
        executor: Executor | None = None,
        refresher: MappingRefresher | None = None,
    ) -> None:
        self.story_id = story_id
        self.backend = backend or default_backend(story)
        self.replay_policy = replay_policy
        self.comment_count: int | None = None
        self._comment_counter = comment_counter
        self._executor = executor
        self.refresher = refresher or MappingRefresher()
        self._applied_generation = 0

        self.story = story
        self.mapping = generate_node_mappings(story)
        self.navigator = create_navigator(
            story, self.mapping, backend=self.backend, replay_policy=replay_policy
        )
        self.refresh_comment_count()

    @classmethod
    def from_document(
        cls, story_id: str, document: Mapping[str, Any], **kwargs: Any
    ) -> "ReadingSession":
        """Extract ``document`` and open a session on it."""

        return cls(story_id, extract_story(document), **kwargs)

    @property
    def state(self) -> NavigationState[Any]:
        return self.navigator.state

    @property
    def total_pages(self) -> int:
        return self.mapping.total_pages

    def continue_story(self) -> NavigationOutcome:
        return self._after(self.navigator.continue_story())

    def choose(self, index: int) -> NavigationOutcome:
        return self._after(self.navigator.choose(index))

    def back(self) -> NavigationOutcome:
        return self._after(self.navigator.back())

    def restart(self) -> NavigationOutcome:
        return self._after(self.navigator.restart())

    def jump_to_page(self, page: int) -> NavigationOutcome:
        return self._after(self.navigator.jump_to_page(page))

    def _after(self, outcome: NavigationOutcome) -> NavigationOutcome:
        if outcome.succeeded:
            self.refresh_comment_count()
        return outcome

    def refresh_comment_count(self) -> Future[int] | None:
        """Ask the comment collaborator for the current page's count.

        The request is fire-and-forget: nothing waits on the returned future.
        """

        if self._comment_counter is None or self._executor is None:
            return None
        page = self.state.page
        future = self._executor.submit(self._comment_counter, self.story_id, page)
        future.add_done_callback(self._apply_comment_count)
        return future

    def _apply_comment_count(self, future: Future[int]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("Comment count refresh failed for %s: %s", self.story_id, error)
            return
        self.comment_count = future.result()

    def apply_edit(self, story: CustomStory, mapping: MappingResult | None = None) -> None:
        """Swap in an edited story, keeping the reader on the same node if possible.

        Raises ``ValueError`` when the edit cannot be navigated; the session
        keeps the previous story in that case.
        """

        mapping = mapping or generate_node_mappings(story)
        previous = self.state
        navigator = create_navigator(
            story, mapping, backend=self.backend, replay_policy=self.replay_policy
        )
        if not navigator.resume_from(previous):
            logger.info("Node %r vanished after edit; restarting at page 1", previous.node)

        self.story = story
        self.mapping = mapping
        self.navigator = navigator

    def submit_edit(self, document: Mapping[str, Any]) -> int:
        """Hand an edited raw document to the debounced refresher."""

        return self.refresher.submit(document)

    def poll_edits(self) -> bool:
        """Apply the latest debounced edit once it is due; return whether one was applied."""

        result = self.refresher.poll()
        if result is None:
            return False
        if result.generation <= self._applied_generation:
            logger.debug("Ignoring stale edit generation %d", result.generation)
            return False
        self._applied_generation = result.generation
        self.apply_edit(result.story, result.mapping)
        return True

    def progress(self) -> Dict[str, Any]:
        """Return the data that outlives the session."""

        return {
            "story_id": self.story_id,
            "total_pages": self.total_pages,
            "page": self.state.page,
        }


__all__ = [
    "CommentCounter",
    "MappingRefresher",
    "NavigatorBackend",
    "ReadingSession",
    "RefreshResult",
    "create_navigator",
    "default_backend",
]
