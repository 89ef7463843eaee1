"""
Classification provider: structured prompts answered with schema-checked JSON.
"""

import json
from typing import Any, Callable, Optional, TypeVar

from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import BedrockLLMConfig
from ..utils.errors import SchemaViolation
from ..utils.json_utils import loads_llm_json
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class ClassificationService:
    """Ask the LLM for JSON and validate it with a parser.

    Transport failures propagate as ClassificationError. Output that is not
    JSON or fails the parser is downgraded to ``None``.
    """

    def __init__(self, llm: Optional[BedrockLLM] = None, llm_config: Optional[BedrockLLMConfig] = None):
        if llm is None:
            if llm_config is None:
                from ..utils.config import config
                llm_config = config.bedrock_llm
            llm = BedrockLLM(llm_config)
        self.llm = llm

        logger.info('Initialized ClassificationService')

    def classify(self, system_prompt: str, prompt: str, parser: Callable[[Any], T], label: str = 'classification') -> Optional[T]:
        """Return ``parser(json)`` for the model's answer, or None if it does not conform.

        Raises:
            ClassificationError: If the LLM call itself fails
        """
        messages = [{
            'role': 'user',
            'content': [{
                'text': prompt
            }]
        }, {
            'role': 'assistant',
            'content': [{
                'text': '```json'
            }]
        }]

        response, _ = self.llm.generate_response(messages=messages, system_prompt=system_prompt, stop_sequences=['```'])

        try:
            data = loads_llm_json(response)
        except json.JSONDecodeError as e:
            logger.warning(f'Failed to parse {label} JSON: {e}')
            return None

        try:
            return parser(data)
        except SchemaViolation as e:
            logger.warning(f'{label} response failed validation: {e}')
            return None
