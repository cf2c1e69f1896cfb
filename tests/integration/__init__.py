"""
Integration tests for the LLM layer.

Test components together without contacting any vendor:
- API endpoints (FastAPI TestClient with an injected dispatcher)
- Real backend clients behind the dispatcher (httpx.MockTransport)
"""
