"""Adapters exposing loaded tools to third-party agent frameworks."""
