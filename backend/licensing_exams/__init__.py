"""Application package for the mock licensing exams backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Exam delivery and scoring rules live in
`services` with their pure helpers under `utils`; individual modules
contain the concrete implementations and documentation.
"""
