"""JSON merge strategies.

Pure functions over parsed JSON values (dict, list, str, int, float, bool,
None). Inputs are never mutated; key order follows the first input, with
keys only present in the second appended in their original order.
"""
from enum import Enum
from typing import Any

from filevault.errors import InvalidInputError


class MergeStrategy(str, Enum):
    SHALLOW = "shallow"
    DEEP = "deep"
    OVERRIDE = "override"
    COMBINE = "combine"


def shallow_merge(first: Any, second: Any) -> dict:
    """Union of top-level keys; the second input wins on conflicts."""
    if not isinstance(first, dict) or not isinstance(second, dict):
        raise InvalidInputError("Shallow merge requires both files to contain JSON objects")
    return {**first, **second}


def deep_merge(first: Any, second: Any) -> Any:
    """Objects merge key by key, arrays concatenate, anything else is replaced by second."""
    if isinstance(first, dict) and isinstance(second, dict):
        result = dict(first)
        for key, value in second.items():
            result[key] = deep_merge(result[key], value) if key in result else value
        return result
    if isinstance(first, list) and isinstance(second, list):
        return [*first, *second]
    return second


def override_merge(first: Any, second: Any) -> Any:
    return second


def combine_merge(first: Any, second: Any) -> dict:
    return {"file1": first, "file2": second}


MERGE_STRATEGIES = {
    MergeStrategy.SHALLOW: shallow_merge,
    MergeStrategy.DEEP: deep_merge,
    MergeStrategy.OVERRIDE: override_merge,
    MergeStrategy.COMBINE: combine_merge,
}


def parse_strategy(value) -> MergeStrategy:
    try:
        return MergeStrategy(value)
    except ValueError:
        raise InvalidInputError(f"Unknown merge strategy: {value}")


def merge_documents(first: Any, second: Any, strategy: MergeStrategy) -> Any:
    return MERGE_STRATEGIES[parse_strategy(strategy)](first, second)
