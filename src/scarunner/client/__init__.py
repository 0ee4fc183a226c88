"""
SCA service client - endpoints, payload schemas and HTTP transport.
"""
