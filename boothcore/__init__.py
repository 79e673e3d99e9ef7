"""Booth reservation, pricing and smart-lock access engine."""
