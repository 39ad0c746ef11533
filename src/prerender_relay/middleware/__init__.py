"""ASGI surface of the prerender relay."""

from prerender_relay.middleware.prerender import PrerenderMiddleware


__all__ = ["PrerenderMiddleware"]
