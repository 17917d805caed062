"""Unit tests for the chat translation core.

Tests use pytest with asyncio support; HTTP paths run against local aiohttp test servers.
"""
