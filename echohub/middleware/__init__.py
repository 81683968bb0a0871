"""ASGI middleware applied in echohub.main (first added = outermost)."""

from echohub.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
