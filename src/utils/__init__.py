"""
Utility modules for the GB Insurance service
"""
from .log_once import clear_all_logged_errors, clear_logged_error, log_once
from .principal import Principal, PrincipalError, format_principal, validate_principal

__all__ = [
    'log_once',
    'clear_logged_error',
    'clear_all_logged_errors',
    'Principal',
    'PrincipalError',
    'format_principal',
    'validate_principal',
]
