"""Database engine, declarative base and ORM models."""
