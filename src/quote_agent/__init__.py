"""
Quote Agent Package

Natural-language pricing agent for trade businesses.
Resolves free-text requests against a configurable service catalog,
prices them with a two-tier labor/cost formula and writes the sales reply.
"""

__version__ = "1.0.0"
