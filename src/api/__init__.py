"""
API Package
===========
FastAPI inbound API for the expansion planner

Structure:
- app_factory.py: create_app() (middleware, error mapping, routers)
- dependencies.py: rate limiter and container access
- models.py: request/response models
- routes/: health, portfolio, scenarios, expansion
"""
