"""
Core business logic for the video knowledge base.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or boto3. This separation means we can test the storage pipeline in
isolation with in-memory collaborators.
"""
