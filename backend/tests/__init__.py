"""
Pytest suite for the storefront reservation backend.

Test categories:
- unit: pure functions and adapters with mocked HTTP
- api: full FastAPI app with in-memory SQLite
- integration: file-backed SQLite with concurrent sessions
"""
