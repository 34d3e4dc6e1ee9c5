"""Standard response envelopes and a shortcut for declaring endpoints with them.

    positive: {"status": "success", "data": <output>}
    negative: {"status": "error", "error": {"message": str}}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from contractgen.endpoints import Endpoint, ResponseSpec
from contractgen.schema import SchemaNode, array, literal, object_, string, unwrap

SAMPLE_ERROR_MESSAGE = "Sample error message"


def _examples(node: SchemaNode) -> tuple[Any, ...]:
    inner, wrapping = unwrap(node)
    return wrapping.metadata.examples or inner.metadata.examples


def _default_positive(output: SchemaNode) -> ResponseSpec:
    envelope = object_(
        {"status": literal("success"), "data": output},
        examples=[{"status": "success", "data": example} for example in _examples(output)] or None,
    )
    return ResponseSpec(envelope, (200,), ("application/json",))


def _default_negative() -> ResponseSpec:
    envelope = object_(
        {
            "status": literal("error"),
            "error": object_({"message": string()}),
        },
        examples=[{"status": "error", "error": {"message": SAMPLE_ERROR_MESSAGE}}],
    )
    return ResponseSpec(envelope, (400,), ("application/json",))


def _array_positive(output: SchemaNode) -> ResponseSpec:
    return ResponseSpec(output, (200,), ("application/json",))


def _array_negative() -> ResponseSpec:
    return ResponseSpec(string(examples=[SAMPLE_ERROR_MESSAGE]), (400,), ("text/plain",))


@dataclass(frozen=True)
class ResultHandler:
    """Builds the positive and negative response specs of an endpoint."""
    positive: Callable[[SchemaNode], ResponseSpec]
    negative: Callable[[], ResponseSpec]


default_result_handler = ResultHandler(positive=_default_positive, negative=_default_negative)


def _items_of(output: SchemaNode) -> SchemaNode:
    shape = getattr(unwrap(output)[0], "shape", None)
    if shape is None or "items" not in shape:
        raise TypeError("array_result_handler expects an object schema with an 'items' field")
    return shape["items"]


# Responds with the bare "items" array of the output and plain-text errors.
array_result_handler = ResultHandler(positive=lambda output: _array_positive(_items_of(output)), negative=_array_negative)


def build_endpoint(
    input: SchemaNode,
    output: SchemaNode,
    *,
    result_handler: ResultHandler = default_result_handler,
    **options: Any,
) -> Endpoint:
    """Declare an endpoint whose responses are produced by ``result_handler``."""
    return Endpoint(
        input=input,
        positive=result_handler.positive(output),
        negative=result_handler.negative(),
        **options,
    )


def list_of(item: SchemaNode) -> SchemaNode:
    """Output schema accepted by array_result_handler: {"items": [item, ...]}."""
    return object_({"items": array(item)})
