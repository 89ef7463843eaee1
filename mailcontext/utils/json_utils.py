"""
JSON utilities for cleaning LLM responses.
"""

import json
from typing import Any


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers and surrounding prose.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    response = response.strip()

    # Models sometimes wrap the payload in a sentence; keep the outermost object or array
    if response and response[0] not in '{[':
        starts = [i for i in (response.find('{'), response.find('[')) if i >= 0]
        if starts:
            start = min(starts)
            end = max(response.rfind('}'), response.rfind(']'))
            if end > start:
                response = response[start:end + 1]

    return response


def loads_llm_json(response: str) -> Any:
    """Parse an LLM response as JSON.

    Raises:
        json.JSONDecodeError: If the cleaned response is not valid JSON
    """
    return json.loads(clean_json_response(response))
