"""Command line tools for inspecting flows the way the completions feature sees them.

Usage:
    nr-assistant path flows.json <node-id>
    nr-assistant predict flows.json <node-id> [--port N]
    nr-assistant encode flows.json <node-id> --vocabulary vocabulary.json

``predict`` uses the classifier when NR_ASSISTANT_MODEL_URL and
NR_ASSISTANT_VOCABULARY_URL are set, otherwise only the completion rules.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from typing import Any

from nr_assistant.flow_graph import CircularReferenceError, get_longest_upstream_path

logger = logging.getLogger("nr_assistant.cli")


def _load_json(path: str) -> Any:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _find_node(flow: list[dict[str, Any]], node_id: str) -> dict[str, Any]:
    node = next((n for n in flow if isinstance(n, dict) and n.get("id") == node_id), None)
    if node is None:
        raise SystemExit(f"error: node {node_id!r} not found in flow")
    return node


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_path(args: Namespace) -> None:
    flow = _load_json(args.flow)
    path = get_longest_upstream_path(flow, args.node_id)
    print(json.dumps([{"id": n["id"], "type": n.get("type")} for n in path], indent=2))


async def _predict(args: Namespace) -> dict[str, Any]:
    from dotenv import load_dotenv

    from nr_assistant.completions.loader import load_predictor_or_rules
    from nr_assistant.config import AssistantSettings

    load_dotenv()
    flow = _load_json(args.flow)
    source = _find_node(flow, args.node_id)
    predictor, scorer = await load_predictor_or_rules(AssistantSettings.from_env())
    try:
        result = await predictor.predict(source, flow=flow, source_port=args.port)
    finally:
        if scorer is not None:
            await scorer.close()
    return result.to_dict()


def _cmd_predict(args: Namespace) -> None:
    print(json.dumps(asyncio.run(_predict(args)), indent=2))


def _cmd_encode(args: Namespace) -> None:
    from nr_assistant.completions.vocabulary import CompletionsVocabulary

    flow = _load_json(args.flow)
    source = _find_node(flow, args.node_id)
    vocabulary = CompletionsVocabulary.from_dict(_load_json(args.vocabulary))
    types = [n.get("type") for n in get_longest_upstream_path(flow, args.node_id)] + [source.get("type")]
    window = types[-args.window:]
    print(json.dumps({
        "sequence": window,
        "ids": vocabulary.encode_window(types, args.window),
        "features": vocabulary.labeller().encode_sequence(window),
    }))


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="nr-assistant",
        description="Node-RED assistant: flow traversal and next-node completions",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    path_p = sub.add_parser("path", help="Print the longest upstream path feeding a node")
    path_p.add_argument("flow", help="Path to an exported flow JSON file")
    path_p.add_argument("node_id", help="ID of the node to trace upstream from")
    path_p.set_defaults(handler=_cmd_path)

    predict_p = sub.add_parser("predict", help="Suggest the next node types after a node")
    predict_p.add_argument("flow", help="Path to an exported flow JSON file")
    predict_p.add_argument("node_id", help="ID of the source node")
    predict_p.add_argument("--port", type=int, default=0, metavar="N", help="source output port (default: 0)")
    predict_p.set_defaults(handler=_cmd_predict)

    encode_p = sub.add_parser("encode", help="Print the classifier inputs for a node")
    encode_p.add_argument("flow", help="Path to an exported flow JSON file")
    encode_p.add_argument("node_id", help="ID of the source node")
    encode_p.add_argument("--vocabulary", required=True, help="Path to the completions vocabulary JSON")
    encode_p.add_argument("--window", type=_positive_int, default=5, metavar="N", help="sequence window (default: 5)")
    encode_p.set_defaults(handler=_cmd_encode)

    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args(argv)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    try:
        handler(args)
    except CircularReferenceError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
