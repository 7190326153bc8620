"""
Core package for configuration, logging and security primitives shared by
the API layer and the services.
"""
