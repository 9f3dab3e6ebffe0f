"""FastAPI routers for the worker.

Routers are grouped by domain (capture, models, dictation, events).
"""
