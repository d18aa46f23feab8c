"""
nounapi runtime.

Storage, event bus, rate limiting, authentication, validation and the REST
request pipeline, plus the FastAPI adapter in ``nounapi.runtime.server``.
"""
