"""
Notes Kernel — Document Model

The live, in-memory tree behind one editing surface: a single `root` node
holding ordered block children, a transient selection, and per-node
attribution records on top-level blocks.

All mutation goes through Document methods. Every mutation reports the key of
the top-level block it touched to the registered update listeners, batched per
`update()` block, so the attribution tracker can collect dirty keys without
reaching into the tree.
"""

from __future__ import annotations

import itertools
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from notes.kernel.registry import get_kind
from notes.kernel.types import (
    ROOT_TYPE,
    AttributionRecord,
    PollOption,
)


class NodeNotFound(Exception):
    """No node with that key exists in the document."""
    pass


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Node:
    """
    One node of the tagged union. `fields` holds every content-bearing wire
    field of the kind; `children` is None for leaves.
    """

    type: str
    fields: dict[str, Any] = field(default_factory=dict)
    children: list[Node] | None = None
    key: str = ""
    attribution: AttributionRecord | None = None

    @property
    def is_container(self) -> bool:
        return self.children is not None

    def text_content(self) -> str:
        if self.type == "linebreak":
            return "\n"
        if self.type == "attribution":
            return ""
        if self.children is None:
            text = self.fields.get("text")
            return text if isinstance(text, str) else ""
        sep = "\n" if self.type in (ROOT_TYPE, "list") else ""
        return sep.join(c.text_content() for c in self.children)

    def iter(self) -> Iterator[Node]:
        yield self
        for child in self.children or []:
            yield from child.iter()


def make_node(node_type: str, *children: Node, **fields: Any) -> Node:
    """Build a node with the kind's defaults filled in."""
    kind = get_kind(node_type)
    node = Node(type=node_type, fields=kind.decode_fields(fields))
    if kind.container or children:
        node.children = list(children)
    return node


def text(value: str, *, format: int = 0, style: str = "") -> Node:
    return make_node("text", text=value, format=format, style=style)


def paragraph(*children: Node | str) -> Node:
    return make_node("paragraph", *[text(c) if isinstance(c, str) else c for c in children])


def heading(value: str, tag: str = "h1") -> Node:
    return make_node("heading", text(value), tag=tag)


def list_node(*items: Node, list_type: str = "bullet") -> Node:
    for i, item in enumerate(items, start=1):
        item.fields["value"] = i
        if list_type == "check" and not isinstance(item.fields.get("checked"), bool):
            item.fields["checked"] = False
    return make_node("list", *items, listType=list_type, tag="ol" if list_type == "number" else "ul")


def list_item(*children: Node | str, checked: bool | None = None) -> Node:
    node = make_node("listitem", *[text(c) if isinstance(c, str) else c for c in children])
    if checked is not None:
        node.fields["checked"] = checked
    return node


def quote(*children: Node | str) -> Node:
    return make_node("quote", *[text(c) if isinstance(c, str) else c for c in children])


def mention(name: str) -> Node:
    return make_node("mention", mentionName=name, text=name)


def hashtag(tag: str) -> Node:
    return make_node("hashtag", text=tag if tag.startswith("#") else f"#{tag}")


def datetime_node(raw: str, resolved: str | None = None) -> Node:
    return make_node("datetime", text=raw, dateTime=resolved)


def poll(question: str, options: list[PollOption] | tuple[PollOption, ...] = ()) -> Node:
    return make_node("poll", question=question, options=tuple(options))


def poll_option(value: str = "") -> PollOption:
    return PollOption(uid=uuid.uuid4().hex[:8], text=value)


def youtube(video_id: str) -> Node:
    return make_node("youtube", videoID=video_id)


# ---------------------------------------------------------------------------
# Selection and update notices
# ---------------------------------------------------------------------------


@dataclass
class Selection:
    """Caret/range position. Transient UI state; never serialized."""

    anchor_key: str
    anchor_offset: int = 0
    focus_key: str | None = None
    focus_offset: int = 0

    @property
    def is_collapsed(self) -> bool:
        return self.focus_key is None or (
            self.focus_key == self.anchor_key and self.focus_offset == self.anchor_offset
        )


@dataclass(frozen=True)
class UpdateNotice:
    """What one committed update touched."""

    dirty_keys: frozenset[str]
    tags: frozenset[str] = frozenset()


UpdateListener = Callable[[UpdateNotice], None]


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document:
    """Single-owner document tree. Not shared across writers."""

    def __init__(self, children: list[Node] | None = None) -> None:
        self._keys = itertools.count(1)
        self._nodes: dict[str, Node] = {}
        self._parents: dict[str, str | None] = {}
        self._listeners: list[UpdateListener] = []
        self._pending: set[str] | None = None
        self._tags: set[str] = set()
        self.selection: Selection | None = None
        self.default_attribution: AttributionRecord | None = None
        self.root = Node(type=ROOT_TYPE, fields=get_kind(ROOT_TYPE).decode_fields({}), children=[])
        self._register(self.root, None)
        for child in children or []:
            self.root.children.append(child)
            self._register(child, self.root.key)

    # -- key bookkeeping --

    def _register(self, node: Node, parent_key: str | None) -> None:
        if not node.key or node.key in self._nodes:
            node.key = self._new_key()
        self._nodes[node.key] = node
        self._parents[node.key] = parent_key
        for child in node.children or []:
            self._register(child, node.key)

    def _new_key(self) -> str:
        key = str(next(self._keys))
        while key in self._nodes:
            key = str(next(self._keys))
        return key

    def _unregister(self, node: Node) -> None:
        for n in node.iter():
            self._nodes.pop(n.key, None)
            self._parents.pop(n.key, None)

    # -- listeners --

    def register_update_listener(self, listener: UpdateListener) -> Callable[[], None]:
        """Subscribe to committed updates. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @contextmanager
    def update(self, tag: str | None = None):
        """
        Group mutations into one notice. Nested blocks join the outer one.
        """
        if tag:
            self._tags.add(tag)
        if self._pending is not None:
            yield self
            return
        self._pending = set()
        try:
            yield self
        finally:
            dirty, tags = self._pending, frozenset(self._tags)
            self._pending = None
            self._tags = set()
            if dirty:
                self._notify(UpdateNotice(frozenset(dirty), tags))

    def _notify(self, notice: UpdateNotice) -> None:
        for listener in list(self._listeners):
            listener(notice)

    def _touch(self, key: str) -> None:
        top = self.top_level_key(key)
        if top is None:
            return
        if self._pending is not None:
            self._pending.add(top)
        else:
            self._notify(UpdateNotice(frozenset({top})))

    # -- queries --

    @property
    def children(self) -> list[Node]:
        return self.root.children  # type: ignore[return-value]

    def __len__(self) -> int:
        return len(self.children)

    def has_node(self, key: str) -> bool:
        return key in self._nodes

    def get_node(self, key: str) -> Node:
        node = self._nodes.get(key)
        if node is None:
            raise NodeNotFound(key)
        return node

    def parent_of(self, key: str) -> Node | None:
        if key not in self._parents:
            raise NodeNotFound(key)
        parent_key = self._parents[key]
        return self._nodes[parent_key] if parent_key else None

    def top_level_key(self, key: str) -> str | None:
        """Key of the root child that contains `key` (itself if top-level)."""
        if key not in self._nodes or key == self.root.key:
            return None
        current = key
        while self._parents.get(current) != self.root.key:
            current = self._parents.get(current)  # type: ignore[assignment]
            if current is None:
                return None
        return current

    def walk(self) -> Iterator[Node]:
        return self.root.iter()

    def text_content(self) -> str:
        return self.root.text_content()

    # -- structural mutation --

    def append(self, node: Node, parent_key: str | None = None) -> str:
        parent = self.root if parent_key is None else self.get_node(parent_key)
        if parent.children is None:
            raise ValueError(f"Node {parent.key} ({parent.type}) cannot hold children")
        parent.children.append(node)
        self._register(node, parent.key)
        self._touch(node.key)
        return node.key

    def insert_after(self, sibling_key: str, node: Node) -> str:
        parent = self.parent_of(sibling_key)
        if parent is None or parent.children is None:
            raise NodeNotFound(sibling_key)
        index = next(i for i, c in enumerate(parent.children) if c.key == sibling_key)
        parent.children.insert(index + 1, node)
        self._register(node, parent.key)
        self._touch(node.key)
        return node.key

    def remove(self, key: str) -> Node:
        node = self.get_node(key)
        parent = self.parent_of(key)
        if parent is None or parent.children is None:
            raise ValueError("The root node cannot be removed")
        top = self.top_level_key(key)
        parent.children.remove(node)
        self._unregister(node)
        if top is not None and top != key:
            self._touch(top)
        if self.selection and not self.has_node(self.selection.anchor_key):
            self.selection = None
        return node

    def clear(self) -> None:
        for child in list(self.children):
            self.remove(child.key)

    # -- content mutation --

    def set_text(self, key: str, value: str) -> None:
        node = self.get_node(key)
        if node.is_container:
            raise ValueError(f"Node {key} ({node.type}) has no text of its own")
        node.fields["text"] = value
        self._touch(key)

    def set_fields(self, key: str, **fields: Any) -> None:
        node = self.get_node(key)
        node.fields.update(fields)
        self._touch(key)

    def set_attribution(self, key: str, record: AttributionRecord | None) -> None:
        node = self.get_node(key)
        node.attribution = record
        self._touch(key)

    def toggle_check(self, key: str) -> bool:
        node = self.get_node(key)
        if node.type != "listitem":
            raise ValueError(f"Node {key} is not a list item")
        checked = not bool(node.fields.get("checked"))
        node.fields["checked"] = checked
        self._touch(key)
        return checked

    # -- polls --

    def toggle_vote(self, key: str, option_uid: str, voter_id: str) -> PollOption | None:
        """
        Add or remove `voter_id` from one option's vote set.
        Unknown option uids are a no-op and return None.
        """
        node = self.get_node(key)
        if node.type != "poll":
            raise ValueError(f"Node {key} is not a poll")
        options = list(node.fields.get("options", ()))
        for i, option in enumerate(options):
            if option.uid == option_uid:
                options[i] = option.toggle_vote(voter_id)
                node.fields["options"] = tuple(options)
                self._touch(key)
                return options[i]
        return None

    def add_poll_option(self, key: str, option: PollOption) -> None:
        node = self.get_node(key)
        node.fields["options"] = (*node.fields.get("options", ()), option)
        self._touch(key)

    def set_poll_option_text(self, key: str, option_uid: str, value: str) -> None:
        node = self.get_node(key)
        node.fields["options"] = tuple(
            PollOption(uid=o.uid, text=value, votes=o.votes) if o.uid == option_uid else o
            for o in node.fields.get("options", ())
        )
        self._touch(key)

    # -- selection --

    def select(self, key: str, offset: int = 0) -> Selection:
        self.get_node(key)
        self.selection = Selection(anchor_key=key, anchor_offset=offset)
        return self.selection
