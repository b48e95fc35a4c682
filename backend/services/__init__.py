"""
Services package - business logic, no HTTP.
"""
