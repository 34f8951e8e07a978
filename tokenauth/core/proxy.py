"""Reverse-proxy awareness for client addressing."""

from __future__ import annotations

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix


def init_app(app: Flask) -> None:
    """Wrap the WSGI app in :class:`ProxyFix` unless ``USE_PROXYFIX`` is off.

    The login rate limit keys on ``request.remote_addr``, so behind a proxy
    the forwarded client address has to win. ``PROXY_FIX_HOPS`` says how
    many ``X-Forwarded-For``/``X-Forwarded-Proto`` entries to trust; a wrong
    value lets clients spoof their address and dodge the limit.
    """
    if not app.config.get("USE_PROXYFIX", True):
        return
    hops = int(app.config.get("PROXY_FIX_HOPS", 1))
    if hops < 1:
        raise ValueError("PROXY_FIX_HOPS must be at least 1 when USE_PROXYFIX is on.")
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops)
