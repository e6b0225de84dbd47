"""
预售系统 — HTTP API
"""
