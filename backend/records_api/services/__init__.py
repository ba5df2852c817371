"""
Services module for record operations.

Usage:
    from records_api.services.crud import create_crud_operations, CRUDOptions
"""
