"""
Test fixtures for the LLM layer.

Contains:
- fake_backends.py: scripted in-memory backend clients
- sse.py: helpers building server-sent event bodies for httpx.MockTransport
"""
