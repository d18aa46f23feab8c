"""
Restricted GraphQL surface: query parser, schema derivation and executor.
"""
