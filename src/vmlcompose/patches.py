"""Structural patch protocol -- id-addressed edits against a live document.

Patch operations (manifest "op" names in parentheses):

  AppendNode (appendNode)          insert parsed node markup under a parent,
                                   before the index-th element child or last
  RemoveNode (removeNode)          detach a node
  SetAttr (setAttr)                set an attribute; value None removes it
  SetText (setText)                replace a node's content with text
  ReplaceSubtree (replaceSubtree)  swap a node for parsed node markup
  SealScene (sealScene)            mark a scene sealed="true"

With enforce_sealed, any patch whose target (the parent, for AppendNode)
sits inside a scene carrying sealed="true" (or, without a sealed
attribute, data-sealed="true") raises SealedSceneError.

A batch is applied all-or-nothing by default: patches run against a copy
that replaces the document only when every patch succeeded. With
atomic=False the batch stops at the first failure and earlier patches
stay applied.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from .document import LiveDocument, is_root_tag, parse_fragment
from .markup import MarkupError, strip_namespace

logger = logging.getLogger(__name__)


class PatchError(ValueError):
    """A patch could not be applied (missing target, bad node markup)."""


class SealedSceneError(PatchError):
    """A patch targeted a node inside a sealed scene."""

    def __init__(self, scene_id: str):
        super().__init__(f"Cannot patch sealed scene \"{scene_id}\".")
        self.scene_id = scene_id


@dataclass(frozen=True)
class AppendNode:
    parent_id: str
    node_xml: str
    index: int | None = None
    op = "appendNode"


@dataclass(frozen=True)
class RemoveNode:
    node_id: str
    op = "removeNode"


@dataclass(frozen=True)
class SetAttr:
    node_id: str
    name: str
    value: str | None = None
    op = "setAttr"


@dataclass(frozen=True)
class SetText:
    node_id: str
    text_content: str
    op = "setText"


@dataclass(frozen=True)
class ReplaceSubtree:
    node_id: str
    node_xml: str
    op = "replaceSubtree"


@dataclass(frozen=True)
class SealScene:
    scene_id: str
    op = "sealScene"


Patch = AppendNode | RemoveNode | SetAttr | SetText | ReplaceSubtree | SealScene

PATCH_OPS = {
    cls.op: cls
    for cls in (AppendNode, RemoveNode, SetAttr, SetText, ReplaceSubtree, SealScene)
}

# op -> (required fields, optional fields), manifest spelling on the left.
_FIELDS = {
    "appendNode": ({"parentId": "parent_id", "nodeXml": "node_xml"}, {"index": "index"}),
    "removeNode": ({"nodeId": "node_id"}, {}),
    "setAttr": ({"nodeId": "node_id", "name": "name"}, {"value": "value"}),
    "setText": ({"nodeId": "node_id", "textContent": "text_content"}, {}),
    "replaceSubtree": ({"nodeId": "node_id", "nodeXml": "node_xml"}, {}),
    "sealScene": ({"sceneId": "scene_id"}, {}),
}


def patch_from_dict(data: dict) -> Patch:
    """Build a patch from its wire form, e.g. {"op": "removeNode", "nodeId": "x"}.

    snake_case keys (node_id, parent_id, ...) are accepted as well.

    Raises:
        PatchError: Unknown op, missing field, or wrongly typed field.
    """
    op = data.get("op")
    if op not in PATCH_OPS:
        raise PatchError(f"Unknown patch op '{op}'. Expected one of {sorted(PATCH_OPS)}")
    required, optional = _FIELDS[op]

    kwargs = {}
    for wire, attr in {**required, **optional}.items():
        if wire in data:
            kwargs[attr] = data[wire]
        elif attr in data:
            kwargs[attr] = data[attr]
        elif wire in required:
            raise PatchError(f"{op}: missing required field '{wire}'")

    if "index" in kwargs and kwargs["index"] is not None:
        if isinstance(kwargs["index"], bool) or not isinstance(kwargs["index"], int):
            raise PatchError(f"{op}: index must be an integer, got {kwargs['index']!r}")
    value = kwargs.get("value")
    if isinstance(value, bool):
        kwargs["value"] = "true" if value else "false"
    elif value is not None:
        kwargs["value"] = str(value)
    for attr, value in kwargs.items():
        if attr not in ("index", "value") and not isinstance(value, str):
            raise PatchError(f"{op}: {attr} must be a string, got {value!r}")
    return PATCH_OPS[op](**kwargs)


# ── Application ───────────────────────────────────────────────────


def apply_patches(document: LiveDocument | str, patches, enforce_sealed: bool = False,
                  atomic: bool = True) -> str:
    """Apply a batch of patches and return the serialized document.

    Args:
        document: LiveDocument to edit in place, or markup text.
        patches: Patch objects or their dict wire form.
        enforce_sealed: Reject patches that touch sealed scenes.
        atomic: All-or-nothing (True) or stop-at-first-failure (False).

    Returns:
        Serialized markup after the batch.

    Raises:
        PatchError: Wrong root tag, missing target, bad node markup.
        SealedSceneError: enforce_sealed and a sealed scene was targeted.
    """
    if isinstance(document, str):
        try:
            document = LiveDocument.from_xml(document)
        except MarkupError as exc:
            raise PatchError(str(exc)) from exc
    if not is_root_tag(document.root.tag):
        raise PatchError("XML root must be <vml>, <videoml>, or <video-ml>.")

    batch = [p if not isinstance(p, dict) else patch_from_dict(p) for p in patches]
    target = document.copy() if atomic else document
    for i, patch in enumerate(batch):
        try:
            _apply_one(target, patch, enforce_sealed)
        except PatchError:
            logger.debug("Patch %d (%s) failed; %s", i, patch.op,
                         "batch discarded" if atomic else f"{i} patches kept")
            raise

    if atomic and batch:
        document.commit(target)
    return document.serialize()


def _apply_one(doc: LiveDocument, patch: Patch, enforce_sealed: bool) -> None:
    if isinstance(patch, AppendNode):
        parent = _require(doc, patch.parent_id, "appendNode", "parent")
        _check_sealed(doc, parent, enforce_sealed)
        doc.insert(parent, _fragment(patch.node_xml, doc), patch.index)
    elif isinstance(patch, RemoveNode):
        node = _require(doc, patch.node_id, "removeNode")
        if node is doc.root:
            raise PatchError(f"removeNode: node \"{patch.node_id}\" not found.")
        _check_sealed(doc, node, enforce_sealed)
        doc.remove(node)
    elif isinstance(patch, SetAttr):
        node = _require(doc, patch.node_id, "setAttr")
        _check_sealed(doc, node, enforce_sealed)
        doc.set_attribute(node, patch.name, patch.value)
    elif isinstance(patch, SetText):
        node = _require(doc, patch.node_id, "setText")
        _check_sealed(doc, node, enforce_sealed)
        doc.set_text(node, patch.text_content)
    elif isinstance(patch, ReplaceSubtree):
        node = _require(doc, patch.node_id, "replaceSubtree")
        if node is doc.root:
            raise PatchError(f"replaceSubtree: node \"{patch.node_id}\" not found.")
        _check_sealed(doc, node, enforce_sealed)
        doc.replace(node, _fragment(patch.node_xml, doc))
    elif isinstance(patch, SealScene):
        scene = doc.find_by_id(patch.scene_id)
        if scene is None or strip_namespace(scene.tag) != "scene":
            raise PatchError(f"sealScene: scene \"{patch.scene_id}\" not found.")
        doc.set_attribute(scene, "sealed", "true")
    else:
        raise PatchError(f"Unsupported patch: {patch!r}")


def _require(doc: LiveDocument, node_id: str, op: str, role: str = "node") -> ET.Element:
    node = doc.find_by_id(node_id)
    if node is None:
        raise PatchError(f"{op}: {role} \"{node_id}\" not found.")
    return node


def _fragment(node_xml: str, doc: LiveDocument) -> ET.Element:
    try:
        return parse_fragment(node_xml, doc.prefixes)
    except MarkupError as exc:
        raise PatchError(str(exc)) from exc


def sealed_scene_of(doc: LiveDocument, node: ET.Element) -> str | None:
    """Id of the sealed scene enclosing node (node included), if any."""
    for el in doc.ancestors(node):
        if strip_namespace(el.tag) != "scene":
            continue
        flag = el.get("sealed")
        if flag is None:
            flag = el.get("data-sealed")
        return el.get("id", "unknown") if flag == "true" else None
    return None


def _check_sealed(doc: LiveDocument, node: ET.Element, enforce_sealed: bool) -> None:
    if not enforce_sealed:
        return
    scene_id = sealed_scene_of(doc, node)
    if scene_id is not None:
        raise SealedSceneError(scene_id)
