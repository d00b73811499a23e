"""
Pytest configuration shared by the whole suite.
Sets the testing environment before any application module reads it.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_JSON", "False")
os.environ.setdefault("LOG_LEVEL", "WARNING")
