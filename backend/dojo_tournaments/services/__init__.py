"""
Services Layer

Pure business logic services that:
- Accept domain inputs (IDs, sessions, participant lists)
- Return domain outputs (models, dataclasses, dicts)
- Do NOT depend on HTTP request/response objects
- Raise engine errors from services.errors; routes never see partial writes
"""
