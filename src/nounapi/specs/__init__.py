"""
nounapi specifications.

Noun/verb declarations, engine configuration models and the OpenAPI
document builder.
"""
