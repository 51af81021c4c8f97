from myapp.handlers import myappresource, probes

__all__ = ["myappresource", "probes"]
