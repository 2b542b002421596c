"""Built-in exec plugin."""

from .plugin import ExecPlugin, create_plugin

__all__ = ['ExecPlugin', 'create_plugin']
