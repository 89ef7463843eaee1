"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float
    connect_timeout: int
    read_timeout: int


@dataclass
class BedrockEmbedConfig:
    """Configuration for the embedding provider."""
    provider: str  # bedrock | hashing
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float
    connect_timeout: int
    read_timeout: int


@dataclass
class StorageConfig:
    """Configuration for local persistence of memories, emails and correlations."""
    data_dir: str

    @property
    def memory_dir(self) -> str:
        return os.path.join(self.data_dir, 'memory')

    @property
    def correlation_log_path(self) -> str:
        return os.path.join(self.data_dir, 'correlations.jsonl')

    @property
    def email_path(self) -> str:
        return os.path.join(self.data_dir, 'emails.json')


@dataclass
class CorrelationConfig:
    """Configuration for correlation detection and group analysis."""
    candidate_pool_size: int
    candidate_strategy: str  # recent | semantic
    body_excerpt: int
    quote_excerpt: int
    timeline_excerpt: int


@dataclass
class MemoryConfig:
    """Configuration for the semantic memory store."""
    search_default_limit: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    storage: StorageConfig
    correlation: CorrelationConfig
    memory: MemoryConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '4096')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')),
                                          connect_timeout=int(os.getenv('BEDROCK_LLM_CONNECT_TIMEOUT', '10')),
                                          read_timeout=int(os.getenv('BEDROCK_LLM_READ_TIMEOUT', '120')))

    # Embedding configuration
    bedrock_embed_config = BedrockEmbedConfig(provider=os.getenv('EMBED_PROVIDER', 'bedrock').lower(),
                                              region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')),
                                              connect_timeout=int(os.getenv('BEDROCK_EMBED_CONNECT_TIMEOUT', '10')),
                                              read_timeout=int(os.getenv('BEDROCK_EMBED_READ_TIMEOUT', '30')))

    storage_config = StorageConfig(data_dir=os.getenv('STORAGE_DATA_DIR', os.path.join(os.getcwd(), 'data')))

    # Correlation configuration
    correlation_config = CorrelationConfig(candidate_pool_size=int(os.getenv('CORRELATION_CANDIDATE_POOL_SIZE', '50')),
                                           candidate_strategy=os.getenv('CORRELATION_CANDIDATE_STRATEGY', 'recent').lower(),
                                           body_excerpt=int(os.getenv('CORRELATION_BODY_EXCERPT', '500')),
                                           quote_excerpt=int(os.getenv('ANALYSIS_QUOTE_EXCERPT', '500')),
                                           timeline_excerpt=int(os.getenv('ANALYSIS_TIMELINE_EXCERPT', '300')))

    # Memory configuration
    memory_config = MemoryConfig(search_default_limit=int(os.getenv('MEMORY_SEARCH_DEFAULT_LIMIT', '5')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     storage=storage_config,
                     correlation=correlation_config,
                     memory=memory_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
