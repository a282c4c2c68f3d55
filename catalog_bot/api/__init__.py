"""
API Package
===========
Clients for external services: web pages, search, LLM and image providers, Supabase.
"""
