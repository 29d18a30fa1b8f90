"""Change reflection -- coalesce live-document edits into one pass per frame.

A burst of edits to a LiveDocument (a patch batch, a scripted rewrite)
should not re-resolve the composition once per edit. The ChangeReflector
marks work as pending on each edit and schedules a single flush on the
next frame, where it re-binds once and re-serializes once.

Edits inside a subtree marked data-videoml-ignore="true" are not
reflected.
"""

import logging
from typing import Callable

from .clock import FrameSource
from .document import LiveDocument, Mutation
from .player import Player
from .resolver import resolve_composition

logger = logging.getLogger(__name__)

IGNORE_ATTR = "data-videoml-ignore"


class ChangeReflector:
    """Reflect document edits into a re-bind and an optional XML callback.

    Args:
        document: Document to observe.
        frame_source: Scheduler for the coalesced flush.
        on_rebind: Called with the document once per flushed burst.
        on_xml_change: Called with the serialized document once per
            flushed burst.
    """

    def __init__(self, document: LiveDocument, frame_source: FrameSource,
                 on_rebind: Callable[[LiveDocument], None],
                 on_xml_change: Callable[[str], None] | None = None):
        self.document = document
        self.frame_source = frame_source
        self.on_rebind = on_rebind
        self.on_xml_change = on_xml_change
        self.flush_count = 0
        self._pending_rebind = False
        self._pending_serialize = False
        self._handle = None
        self._disconnect = document.observe(self._on_mutation)

    def is_ignored(self, node) -> bool:
        return any(el.get(IGNORE_ATTR) == "true" for el in self.document.ancestors(node))

    def _on_mutation(self, mutation: Mutation) -> None:
        if self.is_ignored(mutation.target):
            return
        self._pending_rebind = True
        if self.on_xml_change is not None:
            self._pending_serialize = True
        if self._handle is None:
            self._handle = self.frame_source.request_frame(self._flush)

    def _flush(self, _ts: float) -> None:
        self._handle = None
        self.flush_count += 1
        if self._pending_rebind:
            self._pending_rebind = False
            self.on_rebind(self.document)
        if self._pending_serialize and self.on_xml_change is not None:
            self._pending_serialize = False
            self.on_xml_change(self.document.serialize())

    def close(self) -> None:
        """Stop observing and drop any pending flush."""
        self._disconnect()
        if self._handle is not None:
            self.frame_source.cancel_frame(self._handle)
            self._handle = None
        self._pending_rebind = self._pending_serialize = False


def reflect_into_player(document: LiveDocument, player: Player, frame_source: FrameSource,
                        on_xml_change: Callable[[str], None] | None = None) -> ChangeReflector:
    """Keep a mounted player in step with edits to its source document.

    Each flush re-resolves the document and rebinds the player. A document
    that no longer resolves is reported through the player's on_error and
    the player keeps its previous composition.
    """
    def rebind(doc: LiveDocument) -> None:
        try:
            composition = resolve_composition(doc.to_element())
        except ValueError as exc:
            if player.options.on_error:
                player.options.on_error(str(exc))
            else:
                logger.error("Edited document no longer resolves: %s", exc)
            return
        player.rebind(composition)

    return ChangeReflector(document, frame_source, rebind, on_xml_change)
