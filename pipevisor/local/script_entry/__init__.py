"""Entry-point scripts runnable with python -m."""
