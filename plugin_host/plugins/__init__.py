# Plugin execution and authorization core.
#
# Lazy loading: imports are deferred via __getattr__ so that leaf modules
# (cancel, errors, types) can be imported without pulling in the executor
# and registry.

# Mapping from public name -> (module_path, attribute_name)
_LAZY_IMPORTS = {
    # Value types
    "Permission": (".types", "Permission"),
    "PermissionType": (".types", "PermissionType"),
    "PluginType": (".types", "PluginType"),
    "PluginManifest": (".types", "PluginManifest"),
    "PluginInput": (".types", "PluginInput"),
    "PluginOutput": (".types", "PluginOutput"),
    # Capability protocol
    "Plugin": (".base", "Plugin"),
    "PluginInfo": (".base", "PluginInfo"),
    "PluginStatus": (".base", "PluginStatus"),
    # Cancellation
    "CancelToken": (".cancel", "CancelToken"),
    "CancelledException": (".cancel", "CancelledException"),
    # Errors
    "PluginError": (".errors", "PluginError"),
    "PermissionDeniedError": (".errors", "PermissionDeniedError"),
    "PluginTimeoutError": (".errors", "PluginTimeoutError"),
    "PluginNotFoundError": (".errors", "PluginNotFoundError"),
    "PluginRegistrationError": (".errors", "PluginRegistrationError"),
    "PluginDiscoveryError": (".errors", "PluginDiscoveryError"),
    "ValidationError": (".errors", "ValidationError"),
    "ManifestValidationError": (".errors", "ManifestValidationError"),
    "PermissionValidationError": (".errors", "PermissionValidationError"),
    "PermissionStoreError": (".errors", "PermissionStoreError"),
    # Permissions
    "PermissionManager": (".permission", "PermissionManager"),
    "PermissionApprover": (".permission", "PermissionApprover"),
    "create_approver": (".permission", "create_approver"),
    "match_permission": (".permission", "match_permission"),
    "validate_permission": (".permission", "validate_permission"),
    # Execution
    "BinaryPlugin": (".binary", "BinaryPlugin"),
    "PluginExecutor": (".executor", "PluginExecutor"),
    "ExecutorConfig": (".executor", "ExecutorConfig"),
    "PluginExecution": (".executor", "PluginExecution"),
    "PluginExecutionResult": (".executor", "PluginExecutionResult"),
    "PluginRegistry": (".registry", "PluginRegistry"),
    "StatsCollector": (".stats", "StatsCollector"),
    "ExecutionStats": (".stats", "ExecutionStats"),
    # Built-in plugins
    "ExecPlugin": (".exec", "ExecPlugin"),
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
