from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

from openai import APIError, APIStatusError, OpenAI, OpenAIError, RateLimitError

from ..models.target_fields import TARGET_FIELDS
from ..services.column_mapper import MappingAssistantUnavailable

"""Column mapping assistant backed by an OpenAI chat model (JSON mode).

The model sees the column names, a few sample rows and the target field
catalogue, and answers with
{"mappings": [{"column": ..., "field": ..., "reasoning": ...}, ...]}.
Any failure surfaces as MappingAssistantUnavailable so the caller can fall
back to the keyword mapping.
"""

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You map spreadsheet columns onto a company registry schema. "
    "Answer with a JSON object only."
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def build_prompt(columns: Sequence[str], sample_rows: Sequence[Mapping[str, object]]) -> str:
    fields = [
        {"field": f.name, "label": f.label, "required": f.required}
        for f in TARGET_FIELDS
    ]
    samples = [{k: _jsonable(v) for k, v in row.items()} for row in sample_rows]
    return (
        "Map each spreadsheet column to at most one registry field. "
        "Every field may be used at most once. Use \"skip\" for columns that fit no field.\n\n"
        f"Columns: {json.dumps(list(columns), ensure_ascii=False)}\n"
        f"Sample rows: {json.dumps(samples, ensure_ascii=False)}\n"
        f"Registry fields: {json.dumps(fields, ensure_ascii=False)}\n\n"
        'Return: {"mappings": [{"column": "<column>", "field": "<field or skip>", "reasoning": "<short>"}]}'
    )


def parse_mappings(content: str | None) -> list[tuple[str, str]]:
    """(column, field) pairs from the model answer; "skip" entries are dropped.

    Raises:
        MappingAssistantUnavailable: reason "invalid_response" when the answer is not the expected shape
    """
    if not content:
        raise MappingAssistantUnavailable("assistant returned an empty answer", "invalid_response")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MappingAssistantUnavailable(f"assistant answer is not JSON: {e}", "invalid_response") from e
    entries = data.get("mappings") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise MappingAssistantUnavailable("assistant answer has no 'mappings' list", "invalid_response")

    pairs: list[tuple[str, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        column = entry.get("column")
        target = entry.get("field")
        if not isinstance(column, str) or not isinstance(target, str):
            continue
        if target == "skip":
            continue
        if entry.get("reasoning"):
            logger.debug("assistant: %s -> %s (%s)", column, target, entry["reasoning"])
        pairs.append((column, target))
    return pairs


class OpenAIMappingAssistant:
    """MappingAssistant implementation over the OpenAI chat completions API."""

    def __init__(self, client: Any = None, model: str = "gpt-4o-mini") -> None:
        self._client = client
        self.model = model

    @property
    def client(self) -> Any:
        if self._client is None:
            api_key = os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise MappingAssistantUnavailable("OPENAI_API_KEY is not set", "error")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def suggest_mapping(
        self, columns: Sequence[str], sample_rows: Sequence[Mapping[str, object]]
    ) -> list[tuple[str, str]]:
        client = self.client
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(columns, sample_rows)},
                ],
                response_format={"type": "json_object"},
                temperature=0.0,
            )
        except RateLimitError as e:
            raise MappingAssistantUnavailable(
                "mapping assistant rate limit reached, try again later", "rate_limited"
            ) from e
        except APIStatusError as e:
            if e.status_code == 402:
                raise MappingAssistantUnavailable(
                    "mapping assistant credits exhausted (payment required)", "payment_required"
                ) from e
            raise MappingAssistantUnavailable(f"mapping assistant error: {e}", "error") from e
        except (APIError, OpenAIError) as e:
            raise MappingAssistantUnavailable(f"mapping assistant error: {e}", "error") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise MappingAssistantUnavailable("assistant response has no choices", "invalid_response") from e
        return parse_mappings(content)
