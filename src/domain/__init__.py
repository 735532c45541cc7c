"""
Domain Layer
============
Pure domain model of the expansion planner

Structure:
- entities/: candidates, market analysis, portfolio and scenario models
- interfaces/: Protocols for the external collaborators (cache store, geocoder)
- exceptions.py: error taxonomy

Rules:
- no FastAPI / litellm / aiosqlite imports here
- pydantic and the standard library only
"""
