# plugin_host: plugin execution and authorization for CLI tools.
#
# Usage:
#   from plugin_host import PluginHost, PluginInput, load_config
#
#   host = PluginHost(load_config())
#   host.discover()
#   output = host.execute("exec", PluginInput(command="echo", args=["hi"]))
#
# Lazy loading: all imports are deferred via __getattr__.

# Mapping from public name -> (module_path, attribute_name)
_LAZY_IMPORTS = {
    "PluginHost": (".host", "PluginHost"),
    "PluginHostConfig": (".config", "PluginHostConfig"),
    "load_config": (".config", "load_config"),
    "CancelToken": (".plugins.cancel", "CancelToken"),
    "CancelledException": (".plugins.cancel", "CancelledException"),
    "PluginInput": (".plugins.types", "PluginInput"),
    "PluginOutput": (".plugins.types", "PluginOutput"),
    "PluginManifest": (".plugins.types", "PluginManifest"),
    "Permission": (".plugins.types", "Permission"),
    "PluginError": (".plugins.errors", "PluginError"),
}


def __getattr__(name):
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = sorted(_LAZY_IMPORTS)
