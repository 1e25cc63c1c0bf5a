"""
CallForge - Contract Interaction Engine

Turns a deployed contract's interface into typed form fields, converts
submitted form values into chain-native call arguments, and executes the
call directly, through a relay service or a registered strategy.
"""

__version__ = "0.1.0"

from callforge.config import CallForgeConfig, configure, get_config

__all__ = ["CallForgeConfig", "configure", "get_config", "__version__"]
