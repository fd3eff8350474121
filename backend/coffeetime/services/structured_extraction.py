"""
Structured data extraction from free-form model replies.

Models are asked for "JSON only" but frequently wrap it in prose or code
fences. The widest brace-delimited span (first `{` to last `}`) is taken
and parsed; nothing smarter than that is attempted.
"""

import json
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from coffeetime.exceptions import MalformedStructuredDataError, NoStructuredDataError

T = TypeVar("T", bound=BaseModel)


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object embedded in `text`.

    Raises:
        NoStructuredDataError: no `{` ... `}` span in the text
        MalformedStructuredDataError: the span is not a valid JSON object
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise NoStructuredDataError(context={"text_length": len(text)})

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise MalformedStructuredDataError(str(e)) from e

    return data


def extract_model(text: str, schema: Type[T]) -> T:
    """extract_json, then validate into `schema`. Incompatible structure counts as malformed."""
    data = extract_json(text)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedStructuredDataError(
            f"{e.error_count()} invalid field(s) for {schema.__name__}"
        ) from e
