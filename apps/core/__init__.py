"""
Shared infrastructure: base models, exceptions, logging, authentication
and DRF permission classes.
"""
