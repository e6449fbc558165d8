"""
Configuration management using pydantic-settings.

Settings are read from environment variables with the AGENT_CONNECTION_
prefix, e.g. AGENT_CONNECTION_OPERATION_TIMEOUT=30.
"""
from pydantic_settings import BaseSettings


class AgentConnectionConfig(BaseSettings):
    model_config = {'env_prefix': 'AGENT_CONNECTION_'}

    # seconds an agent round-trip (or a blocking reconnect) may take
    operation_timeout: float = 60.0
    open_timeout: float = 10.0
    close_timeout: float = 5.0

    # first delay of the background reconnect loop, doubled per failed attempt
    reconnect_initial_delay: float = 3.0

    # threads decoding payloads for business consumers
    worker_threads: int = 4

    invite_label: str = ''
