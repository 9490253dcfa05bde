from importlib import import_module

__all__ = [
    "AlliumClient",
    "SignalEvaluator",
    "PollingEngine",
    "SignalSink",
    "TelegramNotifier",
    "build_runtime",
]

_LAZY_EXPORTS = {
    "AlliumClient": ("services.allium_client", "AlliumClient"),
    "SignalEvaluator": ("services.signal_evaluator", "SignalEvaluator"),
    "PollingEngine": ("services.polling_engine", "PollingEngine"),
    "SignalSink": ("services.signal_sink", "SignalSink"),
    "TelegramNotifier": ("services.notifier", "TelegramNotifier"),
    "build_runtime": ("services.runtime", "build_runtime"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
