"""Integration tests for components working together.

Coverage:
    - Streaming chat and generate through the real client and decoder
    - Liveness, model listing and pulling
    - ChatSession conversations and model selection

Runs against the FastAPI fake server in tests/fakes.py.
"""
