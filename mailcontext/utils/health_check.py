"""
Health check utilities for the application.
"""

import os
import tempfile
from typing import Any, Dict, Optional

from .bedrock_llm import BedrockLLM
from .config import AppConfig
from .hashing_embed import HashingEmbed
from .logging_config import get_logger

logger = get_logger(__name__)


def check_health(config: Optional[AppConfig] = None) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(config)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def _check_storage(data_dir: str) -> bool:
    os.makedirs(data_dir, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=data_dir, suffix='.health'):
        pass
    return True


def get_health_status(config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    if config is None:
        from .config import config as default_config
        config = default_config

    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(config.bedrock_llm)
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check embedding provider
    try:
        if config.bedrock_embed.provider == 'hashing':
            embed = HashingEmbed(config.bedrock_embed.dimension)
        else:
            from .bedrock_embed import BedrockEmbed
            embed = BedrockEmbed(config.bedrock_embed)
        health_status['embedding'] = {
            'healthy': embed.health_check(),
            'service': config.bedrock_embed.provider,
            'model': embed.model_id
        }
    except Exception as e:
        health_status['embedding'] = {'healthy': False, 'service': config.bedrock_embed.provider, 'error': str(e)}

    # Check local storage
    try:
        health_status['storage'] = {
            'healthy': _check_storage(config.storage.data_dir),
            'service': 'Local storage',
            'path': config.storage.data_dir
        }
    except Exception as e:
        health_status['storage'] = {'healthy': False, 'service': 'Local storage', 'error': str(e)}

    return health_status


def get_system_info(config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    if config is None:
        from .config import config as default_config
        config = default_config

    return {
        'service_name': 'mailcontext',
        'version': '0.1.0',
        'configuration': {
            'bedrock_llm_model': config.bedrock_llm.model_id,
            'embedding_provider': config.bedrock_embed.provider,
            'embedding_model': config.bedrock_embed.model_id,
            'candidate_strategy': config.correlation.candidate_strategy,
            'candidate_pool_size': config.correlation.candidate_pool_size,
            'aws_region': config.bedrock_llm.region
        },
        'health_status': get_health_status(config)
    }
