"""Infrastructure layer module.

Configuration, persistence, logging and the catalog client.
"""
