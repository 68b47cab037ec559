"""
NeuroNote - Utility Modules
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    CircuitStats,
    CircuitOpenError,
    get_circuit_health
)

__all__ = [
    'CircuitBreaker',
    'CircuitState',
    'CircuitStats',
    'CircuitOpenError',
    'get_circuit_health'
]
