"""Deployable application entry points built on the Pathway runtime."""
