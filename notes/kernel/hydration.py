"""
Notes Kernel — Hydration Mounter

Static exports render polls as inert markup that still carries the poll data
(`data-lexical-poll-question` / `data-lexical-poll-options`). Hydration finds
those containers and mounts a live `HydratedPoll` widget into each one.

Each container is flagged `data-hydrated="true"` once mounted, so running the
hydrator again over the same tree mounts nothing new. Votes cast on a hydrated
poll are local to that widget: the voter is always "visitor" and nothing is
written back to the stored document.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from bs4 import Tag

from notes.kernel.dom import has_class, parse_html, to_html
from notes.kernel.exporter import POLL_CONTAINER_CLASS, parse_poll_options, poll_markup
from notes.kernel.registry import POLL_OPTIONS_ATTR, POLL_QUESTION_ATTR
from notes.kernel.types import VISITOR_ID, PollOption

logger = logging.getLogger(__name__)

HYDRATED_ATTR = "data-hydrated"


class HydrationError(Exception):
    """A poll container's data could not be turned into a widget."""
    pass


class HydratedPoll:
    """Interactive poll bound to one static container."""

    def __init__(
        self,
        host: Tag,
        question: str,
        options: list[PollOption],
        voter_id: str = VISITOR_ID,
    ) -> None:
        self.host = host
        self.question = question
        self.options = list(options)
        self.voter_id = voter_id

    @classmethod
    def from_container(cls, host: Tag) -> HydratedPoll:
        raw = host.get(POLL_OPTIONS_ATTR) or "[]"
        try:
            options = parse_poll_options(raw)
        except ValueError as e:
            raise HydrationError(f"invalid poll options: {e}") from e
        return cls(host, host.get(POLL_QUESTION_ATTR) or "", options)

    @property
    def total_votes(self) -> int:
        return sum(o.vote_count for o in self.options)

    def has_voted(self, option_uid: str) -> bool:
        return any(o.uid == option_uid and self.voter_id in o.votes for o in self.options)

    def toggle_vote(self, option_uid: str) -> PollOption | None:
        """Toggle the visitor's vote on one option and re-render."""
        for i, option in enumerate(self.options):
            if option.uid == option_uid:
                self.options[i] = option.toggle_vote(self.voter_id)
                self.render()
                return self.options[i]
        return None

    def render(self) -> Tag:
        """Replace the host's content with the interactive markup."""
        self.host.clear()
        self.host.append(poll_markup(self.question, self.options, interactive=True, voter_id=self.voter_id))
        return self.host


def _is_poll_container(node: Tag) -> bool:
    return has_class(node, POLL_CONTAINER_CLASS) and node.has_attr(POLL_OPTIONS_ATTR)


class PollHydrator:
    """Mounts poll widgets into static markup and keeps track of them."""

    def __init__(self) -> None:
        self.widgets: list[HydratedPoll] = []

    def hydrate(self, container: Tag) -> list[HydratedPoll]:
        """
        Mount a widget into every not-yet-hydrated poll container under
        `container`. Returns the widgets mounted by this call.
        """
        mounted: list[HydratedPoll] = []
        candidates = container.select(f".{POLL_CONTAINER_CLASS}[{POLL_OPTIONS_ATTR}]")
        if _is_poll_container(container):
            candidates.insert(0, container)
        for node in candidates:
            if node.get(HYDRATED_ATTR) == "true":
                continue
            try:
                widget = HydratedPoll.from_container(node)
            except HydrationError as e:
                logger.warning("hydration: leaving poll static: %s", e)
                continue
            widget.render()
            node[HYDRATED_ATTR] = "true"
            mounted.append(widget)

        self.widgets.extend(mounted)
        return mounted

    def find(self, host: Tag) -> HydratedPoll | None:
        for widget in self.widgets:
            if widget.host is host:
                return widget
        return None


def hydrate_html(html: str, hydrator: PollHydrator | None = None) -> str:
    """Parse exported HTML, hydrate its polls and return the new markup."""
    soup = parse_html(html)
    (hydrator or PollHydrator()).hydrate(soup)
    return to_html(soup)


def schedule_hydration(
    container: Tag,
    hydrator: PollHydrator | None = None,
    on_done: Callable[[list[HydratedPoll]], None] | None = None,
) -> asyncio.TimerHandle:
    """
    Defer hydration to the next event loop iteration, after the static
    markup has been produced. Must be called with a running loop.
    """
    hydrator = hydrator or PollHydrator()

    def run() -> None:
        mounted = hydrator.hydrate(container)
        logger.debug("hydration: mounted %d poll(s)", len(mounted))
        if on_done is not None:
            on_done(mounted)

    return asyncio.get_running_loop().call_later(0, run)
