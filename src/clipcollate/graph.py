"""Workflow graph resolver: flatten a node/link graph into a field map.

A workflow graph is a JSON object with two arrays:

  nodes: [{id, type | class_type, title?, inputs?, widgets_values?, outputs?}]
  links: [[link_id, src_node_id, src_slot, dst_node_id, dst_slot, ...]]

Nodes come in two shapes (`type` from the editor format, `class_type`
from the API format). normalize_graph() folds both into GraphNode so the
resolver only ever sees one shape.

The resolved field map is keyed by node identity and field name:

  "KSampler #3.widgets_values[0]"        -> 123456
  "Seed (PrimitiveNode #7).inputs.value" -> "X"

Each key also records the type of the node that produced it, so the
allow-list filter works on node types rather than re-parsing keys.

Link resolution is a single hop: an input linked to another node takes
that node's first non-empty widget value. Chains are never followed, so
malformed graphs with cyclic links cannot recurse.
"""

import json
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


UNKNOWN_TYPE = "UnknownType"
UNKNOWN_ID = "UnknownID"

# Node types whose fields are shown when the allow-list filter is on.
DEFAULT_ALLOWED_NODE_TYPES = (
    "KSampler",
    "KSamplerAdvanced",
    "LoraLoaderModelOnly",
    "CR Apply LoRA Stack",
    "Power Lora Loader (rgthree)",
    "ClownsharKSampler_Beta",
    "CheckpointLoaderSimple",
    "WanVideoLoraSelect",
    "WanVideoSampler",
    "WanVideoTextEncode",
)


# ── Canonical graph shape ─────────────────────────────────────────


@dataclass(frozen=True)
class NodeInput:
    name: str
    link: int | None = None
    value: object = None
    has_value: bool = False


@dataclass(frozen=True)
class GraphNode:
    id: object
    type: str
    title: str | None = None
    inputs: tuple[NodeInput, ...] = ()
    widgets: tuple = ()
    outputs: tuple[str, ...] = ()

    @property
    def ident(self) -> str:
        """Display identity: 'title (type #id)' or 'type #id'."""
        if self.title and self.title != self.type:
            return f"{self.title} ({self.type} #{self.id})"
        return f"{self.type} #{self.id}"


@dataclass(frozen=True)
class GraphLink:
    id: int
    source_node: object
    source_slot: int | None = None


@dataclass
class WorkflowGraph:
    nodes: list[GraphNode]
    links: dict[int, GraphLink]


@dataclass
class FieldMap:
    """Resolved fields plus the node type that produced each one."""

    values: dict[str, object] = field(default_factory=dict)
    node_types: dict[str, str] = field(default_factory=dict)

    def add(self, key: str, value, node_type: str) -> None:
        self.values[key] = value
        self.node_types[key] = node_type

    def __len__(self):
        return len(self.values)

    def __contains__(self, key):
        return key in self.values

    def get(self, key, default=None):
        return self.values.get(key, default)

    def keys(self) -> list[str]:
        return sorted(self.values)


@dataclass(frozen=True)
class FieldFilterConfig:
    """Allow-list of node types. Owned and persisted by the caller."""

    allowed_types: frozenset = frozenset(DEFAULT_ALLOWED_NODE_TYPES)
    enabled: bool = True


# ── Value normalization ───────────────────────────────────────────


def normalize_value(value):
    """Serialize dicts and lists to compact JSON; leave scalars alone."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return value


def display_value(value) -> str:
    """String form used for labels, search, and diffing. None -> ''."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return normalize_value(value)
    return str(value)


def _is_present(value) -> bool:
    return value is not None and display_value(value) != ""


# ── Parsing ───────────────────────────────────────────────────────


def load_graph_payload(payload):
    """Parse a payload (JSON string or dict) into a dict, or None."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if not isinstance(payload, str) or not payload.strip():
        return None
    try:
        parsed = json.loads(payload)
    except ValueError:
        logger.debug("workflow payload is not valid JSON")
        return None
    return parsed if isinstance(parsed, dict) else None


def _normalize_node(raw: dict) -> GraphNode:
    node_type = raw.get("type") or raw.get("class_type") or UNKNOWN_TYPE
    node_id = raw.get("id")
    if node_id is None:
        node_id = UNKNOWN_ID

    inputs = []
    raw_inputs = raw.get("inputs")
    if isinstance(raw_inputs, list):
        for inp in raw_inputs:
            if not isinstance(inp, dict):
                continue
            link = inp.get("link")
            inputs.append(NodeInput(
                name=str(inp.get("name") or "input"),
                link=link if isinstance(link, int) and not isinstance(link, bool) else None,
                value=inp.get("value"),
                has_value="value" in inp,
            ))

    widgets = raw.get("widgets_values")
    outputs = []
    for out in raw.get("outputs") or []:
        if isinstance(out, dict):
            outputs.append(str(out.get("name") or f"out_{out.get('slot_index', '')}"))

    return GraphNode(
        id=node_id,
        type=str(node_type),
        title=raw.get("title"),
        inputs=tuple(inputs),
        widgets=tuple(widgets) if isinstance(widgets, list) else (),
        outputs=tuple(outputs),
    )


def _node_sort_key(node: GraphNode):
    # Integer ids first in ascending order, anything else after.
    if isinstance(node.id, int) and not isinstance(node.id, bool):
        return (0, node.id, "")
    return (1, 0, str(node.id))


def normalize_graph(payload) -> WorkflowGraph | None:
    """Build a WorkflowGraph from a payload, or None if it isn't one.

    Requires both a `nodes` and a `links` array. Link rows shorter than
    five entries or with non-integer ids are skipped.
    """
    data = load_graph_payload(payload)
    if data is None:
        return None
    raw_nodes = data.get("nodes")
    raw_links = data.get("links")
    if not isinstance(raw_nodes, list) or not isinstance(raw_links, list):
        logger.debug("workflow payload has no nodes/links arrays")
        return None

    nodes = sorted(
        (_normalize_node(n) for n in raw_nodes if isinstance(n, dict)),
        key=_node_sort_key,
    )

    links = {}
    for row in raw_links:
        if not isinstance(row, list) or len(row) < 5:
            continue
        link_id = row[0]
        if not isinstance(link_id, int) or isinstance(link_id, bool):
            continue
        links[link_id] = GraphLink(id=link_id, source_node=row[1], source_slot=row[2])

    return WorkflowGraph(nodes=nodes, links=links)


# ── Resolution ────────────────────────────────────────────────────


def _resolve_link(graph: WorkflowGraph, link_id: int, nodes_by_id: dict):
    """Value carried by a link: first non-empty widget of its source node.

    Returns (found, value). A source node with no usable widget value
    contributes its own identity string as a placeholder.
    """
    link = graph.links.get(link_id)
    if link is None:
        return False, None
    src = nodes_by_id.get(link.source_node)
    if src is None:
        return False, None
    for w in src.widgets:
        if _is_present(w):
            return True, w
    return True, src.ident


def resolve(payload) -> FieldMap:
    """Flatten a workflow graph into a FieldMap.

    Never raises on bad input: anything that isn't a graph with `nodes`
    and `links` arrays yields an empty map.
    """
    result = FieldMap()
    graph = payload if isinstance(payload, WorkflowGraph) else normalize_graph(payload)
    if graph is None:
        return result

    nodes_by_id = {}
    for n in graph.nodes:
        nodes_by_id.setdefault(n.id, n)

    for node in graph.nodes:
        ident = node.ident
        for inp in node.inputs:
            key = f"{ident}.inputs.{inp.name}"
            if inp.link is not None:
                found, value = _resolve_link(graph, inp.link, nodes_by_id)
                if found:
                    result.add(key, normalize_value(value), node.type)
            elif inp.has_value:
                result.add(key, normalize_value(inp.value), node.type)

        for i, value in enumerate(node.widgets):
            result.add(f"{ident}.widgets_values[{i}]", normalize_value(value), node.type)

    return result


def filter_fields(field_map: FieldMap, config: FieldFilterConfig) -> FieldMap:
    """Keep only fields produced by allow-listed node types.

    Returns the input unchanged when the filter is disabled.
    """
    if not config.enabled:
        return field_map
    allowed = set(config.allowed_types)
    out = FieldMap()
    for key, value in field_map.values.items():
        node_type = field_map.node_types.get(key)
        if node_type in allowed:
            out.add(key, value, node_type)
    return out


def resolve_filtered(payload, config: FieldFilterConfig | None = None) -> FieldMap:
    """resolve() followed by filter_fields(); no filter when config is None."""
    field_map = resolve(payload)
    if config is None:
        return field_map
    return filter_fields(field_map, config)


# ── Node type catalog ─────────────────────────────────────────────


def catalog_node_types(payloads: list, search: str = "") -> list[dict]:
    """Summarize node types across several workflows.

    Returns [{type, files, outputs}] sorted by type, where `files` counts
    the workflows containing that type and `outputs` lists the distinct
    output names seen. `search` filters types by case-insensitive substring.
    """
    acc = {}
    for payload in payloads:
        graph = payload if isinstance(payload, WorkflowGraph) else normalize_graph(payload)
        if graph is None:
            continue
        seen = set()
        for node in graph.nodes:
            rec = acc.setdefault(node.type, {"files": 0, "outputs": set()})
            if node.type not in seen:
                rec["files"] += 1
                seen.add(node.type)
            rec["outputs"].update(node.outputs)

    term = search.strip().lower()
    return [
        {"type": t, "files": rec["files"], "outputs": sorted(rec["outputs"])}
        for t, rec in sorted(acc.items())
        if not term or term in t.lower()
    ]
