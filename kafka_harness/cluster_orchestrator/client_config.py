"""
Assembly of the client configuration map handed to Kafka clients
"""
from typing import Any, Dict, Optional

BOOTSTRAP_SERVERS = "bootstrap.servers"
SECURITY_PROTOCOL = "security.protocol"
SASL_MECHANISM = "sasl.mechanism"
SASL_JAAS_CONFIG = "sasl.jaas.config"

DEFAULT_SASL_MECHANISM = "PLAIN"

LOGIN_MODULES = {
    "PLAIN": "org.apache.kafka.common.security.plain.PlainLoginModule",
    "SCRAM-SHA-256": "org.apache.kafka.common.security.scram.ScramLoginModule",
    "SCRAM-SHA-512": "org.apache.kafka.common.security.scram.ScramLoginModule",
}


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_jaas_config(mechanism: str, user: str, password: str) -> str:
    """JAAS login line for the given SASL mechanism"""
    login_module = LOGIN_MODULES.get(mechanism.upper())
    if login_module is None:
        raise ValueError(f"Unsupported SASL mechanism: {mechanism}")
    return f"{login_module} required username={_quote(user)} password={_quote(password)};"


def build_client_configuration(bootstrap_servers: str,
                               security_protocol: str,
                               sasl_mechanism: Optional[str] = None,
                               user: Optional[str] = None,
                               password: Optional[str] = None,
                               extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a fresh client configuration dictionary.

    SASL keys are only added when credentials are given. Keys from extra are
    applied first so they can never override the bootstrap address or the
    security settings.
    """
    if (user is None) != (password is None):
        raise ValueError("user and password must be supplied together")

    config: Dict[str, Any] = dict(extra or {})
    config[BOOTSTRAP_SERVERS] = bootstrap_servers
    config[SECURITY_PROTOCOL] = security_protocol

    if user is not None:
        mechanism = (sasl_mechanism or DEFAULT_SASL_MECHANISM).upper()
        config[SASL_MECHANISM] = mechanism
        config[SASL_JAAS_CONFIG] = build_jaas_config(mechanism, user, password)

    return config
