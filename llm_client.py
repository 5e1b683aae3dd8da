"""OpenAI chat client for APA-7 citation formatting and the chat endpoint."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from openai import OpenAI

from models import CITATION_ERROR_PLACEHOLDER, NormalizedRecord, ResultRecord

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4")

LOGGER = logging.getLogger(__name__)

CITATION_SYSTEM_PROMPT = """You are an expert assistant specialized in APA 7 citation format for presentations in English.
When formatting citations, always follow these rules:
1. If the location is not provided, use "CIMMYT" as the default location.
2. Ensure all elements of the citation are correctly formatted according to APA 7 guidelines.
3. Format the response with each citation on a new line, prefixed with a bullet point or a numeral.
4. When the data is sent to you, just reply: "The citations for the data submitted are as follows:" and send the formatted citations.
"""

SYSTEM_MESSAGE: dict[str, str] = {"role": "system", "content": CITATION_SYSTEM_PROMPT}


def _openai_client() -> OpenAI:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is required")
    return OpenAI(api_key=api_key)


def format_record_for_prompt(record: NormalizedRecord) -> str:
    """Render the labeled block the model formats into a citation."""
    return (
        f"Author (s): {record.creator}\n"
        f"Conference Name: {record.conference_name}\n"
        f"Conference Place: {record.conference_place}\n"
        f"Date: {record.date_issued}\n"
        f"URI: {record.identifier_uri}\n"
        f"Title: {record.title}\n"
        f"Type: {record.item_type}\n"
    )


def chat_completion(messages: list[dict[str, str]]) -> str:
    """Send ``messages`` to the configured model and return the first reply.

    Raises RuntimeError when the API key is missing or the reply is empty;
    OpenAI SDK errors propagate unchanged.
    """
    client = _openai_client()
    LOGGER.debug("Calling OpenAI model=%s turns=%s", OPENAI_MODEL, len(messages))
    response = client.chat.completions.create(model=OPENAI_MODEL, messages=messages)

    content = response.choices[0].message.content
    if not content:
        raise RuntimeError("OpenAI returned an empty response")
    return content


def generate_citation(record: NormalizedRecord) -> str:
    """Format one record as an APA-7 citation. Single attempt, raises on failure."""
    prompt = format_record_for_prompt(record)
    LOGGER.debug("Citation request for uri=%s:\n%s", record.identifier_uri, prompt)

    citation = chat_completion([SYSTEM_MESSAGE, {"role": "user", "content": prompt}])
    LOGGER.debug("Citation received for uri=%s:\n%s", record.identifier_uri, citation)
    return citation


def request_citation(
    record: NormalizedRecord,
    requester: Callable[[NormalizedRecord], str] = generate_citation,
) -> ResultRecord:
    """Cite one record without ever raising.

    Any failure from ``requester`` is logged and replaced by the error
    placeholder, with the result tagged ``failed``.
    """
    try:
        return ResultRecord(record=record, citation=requester(record))
    except Exception as exc:
        LOGGER.warning("Citation request failed for uri=%s: %s", record.identifier_uri, exc)
        return ResultRecord(record=record, citation=CITATION_ERROR_PLACEHOLDER, failed=True)
