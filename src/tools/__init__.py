"""
Clients for external services used by the planner

- geocoding.py: batch geocoding over HTTP (httpx)
"""
